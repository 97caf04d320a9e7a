"""
Rule Store Service for the rule manager.
"""

import json
from typing import Optional

from fastapi import Depends, Query, Request, Response, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import AuthenticationError, AuthorizationError, RulesException
from shared.logging import set_tenant_context

from .auth.tokens import TokenIssuer
from .generator.bulk import BulkRuleGenerator
from .models import (
    BulkSaveRequest,
    BulkSaveResponse,
    GenerateRequest,
    LoginRequest,
    LoginResponse,
    RuleModel,
    RulesPage,
    SessionInfo,
)
from .store.repository import RuleRepository, Scope

TOKEN_COOKIE = "token"


class RulesService(BaseService):
    """Rule store service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, repository: Optional[RuleRepository] = None):
        super().__init__("rules", 4001, config=config or get_config("rules", 4001))

        self.repository = repository or RuleRepository()
        self.tokens = TokenIssuer(
            secret=self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            ttl_seconds=self.config.token_ttl_seconds,
            admin_tenant_id=self.config.admin_tenant_id,
        )
        self.generator = BulkRuleGenerator(
            self.repository,
            batch_size=self.config.dummy_batch_size,
            max_concurrent_batches=self.config.dummy_max_concurrent_batches,
            reset_batch_size=self.config.reset_batch_size,
            metrics=self.metrics,
        )

        self._setup_rules_routes()
        self.app.state.rules_service = self

    def _setup_rules_routes(self):
        """Set up rule store routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "rules",
                "message": "Rule manager - Rule Store Service",
                "version": "1.0.0",
                "capabilities": ["ordered_slices", "bulk_save", "dummy_rules"]
            }

        @self.app.post("/api/login", response_model=LoginResponse)
        async def login(request: LoginRequest, response: Response):
            """Exchange the shared password for a session token."""
            if request.password != self.config.login_password:
                self.logger.warning("Login rejected", tenant_id=request.tenant_id)
                raise AuthenticationError("Invalid credentials")

            token, claims = self.tokens.issue(request.tenant_id)
            response.set_cookie(
                TOKEN_COOKIE,
                token,
                httponly=True,
                max_age=self.config.token_ttl_seconds,
                samesite="lax",
            )
            self.metrics.record_business_event("login")
            self.logger.info("Login succeeded", tenant_id=request.tenant_id, see_all=claims["see_all"])

            return LoginResponse(
                token=token,
                tenant_id=request.tenant_id,
                see_all=claims["see_all"],
                expires_in=self.config.token_ttl_seconds,
            )

        @self.app.post("/api/logout")
        async def logout(response: Response):
            """Drop the session cookie."""
            response.delete_cookie(TOKEN_COOKIE)
            return {"success": True}

        @self.app.get("/api/me", response_model=SessionInfo)
        async def me(scope: Scope = Depends(self._authenticate)):
            """Describe the current session."""
            return SessionInfo(tenant_id=scope.tenant_id, see_all=scope.see_all)

        @self.app.get("/rules", response_model=RulesPage)
        async def get_rules(
            skip: int = Query(0, ge=0),
            take: int = Query(25, ge=0, le=1000),
            scope: Scope = Depends(self._authenticate),
        ):
            """Ordered slice of the caller's rules."""
            rows, total = await self.repository.fetch_slice(scope, skip, take)
            self.metrics.increment_counter("rules_fetched_total", len(rows))

            return RulesPage(
                rules=[RuleModel.from_rule(rule) for rule in rows],
                total=total,
                skip=skip,
                take=take,
            )

        @self.app.post("/rules/bulk-save", response_model=BulkSaveResponse)
        async def bulk_save(request: BulkSaveRequest, scope: Scope = Depends(self._authenticate)):
            """Apply a batch of creates, updates and deletes atomically."""
            with self.metrics.time_operation("commit_duration_seconds"):
                counts = await self.repository.commit(scope, request.operations)

            for op, label in (("create", "created"), ("update", "updated"), ("delete", "deleted")):
                if counts[label]:
                    self.metrics.increment_counter("rules_committed_total", counts[label], op=op)
            self.metrics.record_business_event("bulk_save")

            return BulkSaveResponse(success=True, **counts)

        @self.app.websocket("/ws/dummy-rules")
        async def dummy_rules_endpoint(websocket: WebSocket, token: Optional[str] = Query(None)):
            """Bulk dummy-data generator."""
            await websocket.accept()

            try:
                scope = self.tokens.verify(token or websocket.cookies.get(TOKEN_COOKIE))
            except AuthenticationError as e:
                await websocket.send_json({"error": e.code, "message": e.message})
                await websocket.close(code=1008)
                return

            set_tenant_context(scope.tenant_id)
            self.logger.info("Generator connection opened", tenant_id=scope.tenant_id)

            try:
                while True:
                    message_text = await websocket.receive_text()
                    try:
                        request = GenerateRequest.model_validate(json.loads(message_text))
                        tenant_id = self._generator_tenant(scope, request.tenant_id)
                        await self.generator.run(request.count, tenant_id, websocket.send_json)
                    except (ValueError, PayloadError) as e:
                        await websocket.send_json({"error": "INVALID_REQUEST", "message": str(e)})
                    except RulesException as e:
                        await websocket.send_json({"error": e.code, "message": e.message})
            except WebSocketDisconnect:
                self.logger.info("Generator connection closed", tenant_id=scope.tenant_id)

    async def _authenticate(self, request: Request) -> Scope:
        """Authentication dependency: token cookie or Bearer header."""
        token = request.cookies.get(TOKEN_COOKIE) or request.headers.get("Authorization")
        scope = self.tokens.verify(token)
        set_tenant_context(scope.tenant_id)
        return scope

    def _generator_tenant(self, scope: Scope, requested: Optional[str]) -> str:
        """Partition a generator request may target."""
        if requested is None or requested == scope.tenant_id:
            return scope.tenant_id
        if not scope.see_all:
            raise AuthorizationError("Cannot generate rules for another tenant", {"tenant_id": requested})
        return requested

    async def _check_dependencies(self):
        """Check rule store dependencies."""
        count = await self.repository.count(Scope(tenant_id=None, see_all=True))
        return {"repository": "ok" if count >= 1 else "error"}


def create_app(config: Optional[ServiceConfig] = None, repository: Optional[RuleRepository] = None):
    """Create rule store service application."""
    service = RulesService(config=config, repository=repository)
    return service.app


if __name__ == "__main__":
    service = RulesService()
    service.run()
