"""
Request and response models for the rule store API.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from rules_sync.models import Endpoint, Rule, RuleAction


class EndpointModel(BaseModel):
    """A named source or destination address."""
    name: str = ""
    address: str = ""


class RuleModel(BaseModel):
    """Wire form of a rule."""
    id: Optional[str] = None
    tenant_id: Optional[str] = None
    name: str
    action: RuleAction = RuleAction.ALLOW
    sources: List[EndpointModel] = Field(default_factory=list)
    destinations: List[EndpointModel] = Field(default_factory=list)
    priority: float
    timestamp: int = 0

    def to_rule(self) -> Rule:
        return Rule(
            rule_id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            action=self.action,
            sources=tuple(Endpoint(e.name, e.address) for e in self.sources),
            destinations=tuple(Endpoint(e.name, e.address) for e in self.destinations),
            key=self.priority,
            timestamp=self.timestamp,
        )

    @classmethod
    def from_rule(cls, rule: Rule) -> "RuleModel":
        return cls(
            id=rule.rule_id,
            tenant_id=rule.tenant_id,
            name=rule.name,
            action=rule.action,
            sources=[EndpointModel(name=e.name, address=e.address) for e in rule.sources],
            destinations=[EndpointModel(name=e.name, address=e.address) for e in rule.destinations],
            priority=rule.key,
            timestamp=rule.timestamp,
        )


class OperationModel(BaseModel):
    """One entry of a bulk-save batch."""
    op: Literal["create", "update", "delete"]
    id: Optional[str] = None
    rule: Optional[RuleModel] = None

    @model_validator(mode="after")
    def check_fields(self) -> "OperationModel":
        if self.op in ("create", "update") and self.rule is None:
            raise ValueError(f"'{self.op}' requires a rule")
        if self.op in ("update", "delete") and not self.id:
            raise ValueError(f"'{self.op}' requires an id")
        return self


class BulkSaveRequest(BaseModel):
    """All-or-nothing batch of rule operations."""
    operations: List[OperationModel]


class BulkSaveResponse(BaseModel):
    success: bool = True
    created: int = 0
    updated: int = 0
    deleted: int = 0


class RulesPage(BaseModel):
    """Ordered slice of the caller's rules."""
    rules: List[RuleModel]
    total: int
    skip: int
    take: int


class LoginRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    password: str


class SessionInfo(BaseModel):
    tenant_id: str
    see_all: bool = False


class LoginResponse(SessionInfo):
    token: str
    expires_in: int


class GenerateRequest(BaseModel):
    """Bulk generator request received over the WebSocket."""
    count: int = Field(..., gt=0)
    tenant_id: Optional[str] = None
