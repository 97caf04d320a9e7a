"""
Rule data models for the synchronization engine.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

# Key of the sentinel terminator; every other key is strictly below it.
TERMINATOR_KEY = 1_000_000_001.0

# Start of the reserved key range. The store rejects writes at or above it,
# so allocation treats it as the terminator's key.
KEY_CEILING = 1_000_000_000.0

DEFAULT_PAGE_SIZES: Tuple[int, ...] = (10, 25, 50, 100)


class RuleAction(str, Enum):
    """Rule action types."""
    ALLOW = "Allow"
    BLOCK = "Block"
    DEFAULT = "default-action"


@dataclass(frozen=True)
class Endpoint:
    """A named address used as a rule source or destination."""
    name: str
    address: str


@dataclass(frozen=True)
class Rule:
    """A rule record as seen by the engine.

    ``rule_id`` is set once the rule exists in the store; rules created in
    the current session only carry a ``temp_id`` until they are committed.
    """
    name: str
    action: RuleAction = RuleAction.ALLOW
    sources: Tuple[Endpoint, ...] = field(default_factory=tuple)
    destinations: Tuple[Endpoint, ...] = field(default_factory=tuple)
    key: float = 0.0
    timestamp: int = 0
    rule_id: Optional[str] = None
    temp_id: Optional[str] = None
    tenant_id: Optional[str] = None

    @property
    def identity(self) -> str:
        """Stable identity: the persisted id, else the temporary id."""
        identity = self.rule_id or self.temp_id
        if identity is None:
            raise ValueError(f"Rule '{self.name}' has neither id nor temp_id")
        return identity

    @property
    def is_persisted(self) -> bool:
        return self.rule_id is not None

    @property
    def is_terminator(self) -> bool:
        return self.key >= TERMINATOR_KEY

    def with_changes(self, **changes) -> "Rule":
        """Return a copy with the given fields replaced."""
        if "sources" in changes:
            changes["sources"] = tuple(changes["sources"])
        if "destinations" in changes:
            changes["destinations"] = tuple(changes["destinations"])
        return replace(self, **changes)


@dataclass(frozen=True)
class VisibleRule:
    """A rule placed at a 1-based display position of the edited view."""
    rule: Rule
    position: int
    pending: bool = False

    @property
    def identity(self) -> str:
        return self.rule.identity

    @property
    def key(self) -> float:
        return self.rule.key


@dataclass(frozen=True)
class WindowBounds:
    """Where a window sits, in backend and in edited-view terms."""
    backend_skip: int = 0
    backend_take: int = 0
    visible_skip: int = 0
    visible_take: int = 0
    reached_end: bool = False

    @property
    def visible_end(self) -> int:
        return self.visible_skip + self.visible_take


@dataclass(frozen=True)
class Slice:
    """Rows returned by an ordered slice read plus the unedited total."""
    rows: List[Rule]
    total_count: int
