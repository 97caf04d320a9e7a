"""
Remote rule store contract and its HTTP client.

The engine only needs two calls: an ordered slice read and an
all-or-nothing batch commit. Partition scoping is implicit in the caller's
session token.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from .errors import TransportFailure
from .models import Endpoint, Rule, RuleAction, Slice


class RuleStore(Protocol):
    """What the engine consumes from the remote store."""

    async def fetch_ordered_slice(self, skip: int, take: int) -> Slice:
        """Rows ``skip`` .. ``skip + take`` of the unedited order, ascending by key."""
        ...

    async def commit_batch(self, operations: Sequence["CommitOperation"]) -> Dict[str, Any]:
        """Apply every operation or none of them."""
        ...


@dataclass(frozen=True)
class CommitOperation:
    """One entry of a commit batch: create, update by id or delete by id."""
    op: str
    rule: Rule

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    def to_payload(self) -> Dict[str, Any]:
        if self.op == self.CREATE:
            return {"op": self.op, "rule": rule_to_payload(self.rule)}
        if self.op == self.UPDATE:
            return {"op": self.op, "id": self.rule.rule_id, "rule": rule_to_payload(self.rule)}
        return {"op": self.op, "id": self.rule.rule_id}


def rule_to_payload(rule: Rule) -> Dict[str, Any]:
    """Wire representation of a rule."""
    return {
        "id": rule.rule_id,
        "tenant_id": rule.tenant_id,
        "name": rule.name,
        "action": rule.action.value,
        "sources": [{"name": e.name, "address": e.address} for e in rule.sources],
        "destinations": [{"name": e.name, "address": e.address} for e in rule.destinations],
        "priority": rule.key,
        "timestamp": rule.timestamp,
    }


def rule_from_payload(payload: Dict[str, Any]) -> Rule:
    """Build a rule from its wire representation."""
    try:
        return Rule(
            rule_id=payload.get("id"),
            tenant_id=payload.get("tenant_id"),
            name=payload["name"],
            action=RuleAction(payload["action"]),
            sources=tuple(Endpoint(e["name"], e["address"]) for e in payload.get("sources") or []),
            destinations=tuple(Endpoint(e["name"], e["address"]) for e in payload.get("destinations") or []),
            key=float(payload["priority"]),
            timestamp=int(payload.get("timestamp") or 0),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise TransportFailure("Invalid rule payload", details={"error": str(e)})


class HttpRuleStore:
    """Client for the rule store service."""

    def __init__(self, base_url: str, token: Optional[str] = None, *, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 retry_config: Optional[RetryConfig] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport
        self.logger = get_logger("rules_sync.store")

        # Reads are idempotent and may be retried; commits never are
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)
        self._get_slice = retry_on_exception((httpx.TransportError,), config=self.retry_config)(
            self._get_slice_once
        )

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def login(self, tenant_id: str, password: str) -> Dict[str, Any]:
        """Obtain a session token for ``tenant_id`` and keep it for later calls."""
        try:
            async with self._client() as client:
                response = await client.post("/api/login", json={"tenant_id": tenant_id, "password": password})
        except httpx.HTTPError as e:
            self.logger.error("Login request failed", error=str(e))
            raise TransportFailure(f"Login failed: {e}")

        body = self._json_or_fail(response, "login")
        self.token = body["token"]
        self.logger.info("Logged in", tenant_id=tenant_id, see_all=body.get("see_all", False))
        return body

    async def _get_slice_once(self, skip: int, take: int) -> httpx.Response:
        async with self._client() as client:
            return await client.get("/rules", params={"skip": skip, "take": take})

    async def fetch_ordered_slice(self, skip: int, take: int) -> Slice:
        """Read rows ``skip`` .. ``skip + take`` of the unedited order."""
        try:
            response = await self._get_slice(skip, take)
        except RetryError as e:
            self.logger.error("Slice read failed", skip=skip, take=take, error=str(e.last_exception))
            raise TransportFailure(
                f"Slice read failed: {e.last_exception}",
                details={"skip": skip, "take": take, "attempts": e.attempts},
            )
        except httpx.HTTPError as e:
            self.logger.error("Slice read failed", skip=skip, take=take, error=str(e))
            raise TransportFailure(f"Slice read failed: {e}", details={"skip": skip, "take": take})

        body = self._json_or_fail(response, "fetch")
        try:
            rows: List[Rule] = [rule_from_payload(item) for item in body["rules"]]
            total = int(body["total"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportFailure("Invalid slice payload", details={"error": str(e)})

        self.logger.debug("Slice read", skip=skip, take=take, rows=len(rows), total=total)
        return Slice(rows=rows, total_count=total)

    async def commit_batch(self, operations: Sequence[CommitOperation]) -> Dict[str, Any]:
        """Send one all-or-nothing batch."""
        payload = {"operations": [operation.to_payload() for operation in operations]}
        try:
            async with self._client() as client:
                response = await client.post("/rules/bulk-save", json=payload)
        except httpx.HTTPError as e:
            self.logger.error("Commit request failed", operations=len(operations), error=str(e))
            raise TransportFailure(f"Commit failed: {e}", details={"operations": len(operations)})

        body = self._json_or_fail(response, "commit")
        self.logger.info("Batch committed", operations=len(operations))
        return body

    def _json_or_fail(self, response: httpx.Response, operation: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {"message": response.text}

        if response.status_code >= 400:
            self.logger.error(
                "Rule store request rejected",
                operation=operation,
                status_code=response.status_code,
                response=body,
            )
            raise TransportFailure(
                f"{operation} rejected with status {response.status_code}",
                details={"status_code": response.status_code, "body": body},
            )
        return body
