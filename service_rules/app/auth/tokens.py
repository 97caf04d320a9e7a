"""
Session tokens for the Rule Store Service.

Tokens are HS256 JWTs carrying the caller's partition and whether the
caller may see every partition.
"""

import time
from typing import Any, Dict, Optional, Tuple

import jwt

from shared.errors import AuthenticationError
from shared.logging import get_logger

from ..store.repository import Scope


class TokenIssuer:
    """Issues and verifies session tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl_seconds: int = 43200,
                 admin_tenant_id: Optional[str] = "admin"):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds
        self.admin_tenant_id = admin_tenant_id
        self.logger = get_logger("rules.tokens")

    def issue(self, tenant_id: str) -> Tuple[str, Dict[str, Any]]:
        """Return a signed token for ``tenant_id`` and its claims."""
        now = int(time.time())
        claims = {
            "tenant_id": tenant_id,
            "see_all": tenant_id == self.admin_tenant_id,
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        token = jwt.encode(claims, self.secret, algorithm=self.algorithm)
        return token, claims

    def verify(self, token: Optional[str]) -> Scope:
        """Decode a token into the caller's scope."""
        if not token:
            raise AuthenticationError("Unauthorized")

        if token.startswith("Bearer "):
            token = token[7:]

        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Session expired") from exc
        except jwt.InvalidTokenError as exc:
            self.logger.warning("Token verification failed", error=str(exc))
            raise AuthenticationError("Invalid token", details={"error": str(exc)}) from exc

        tenant_id = claims.get("tenant_id")
        if not isinstance(tenant_id, str) or not tenant_id:
            raise AuthenticationError("Token missing tenant_id")

        return Scope(tenant_id=tenant_id, see_all=bool(claims.get("see_all", False)))
