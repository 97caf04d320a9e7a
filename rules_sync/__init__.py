"""
Ordered-list synchronization engine for rule records.

Keeps an edit-aware view of a window of a remotely stored, strictly ordered
rule list consistent while the user pages through it, and lets the user
insert, move, edit or delete rules optimistically without renumbering the
remote order. Pending edits live in a local ledger until they are committed
as one batch or discarded.

Modules of interest:
- models: Rule, Endpoint, VisibleRule and the reserved key constants.
- edits: Tagged pending edit variants (insert, move, in-place edit, delete).
- translator: Visible position to backend position translation.
- keys: Fractional ordering key allocation.
- window: Window cache with adjacent-page reuse.
- overlay: Projection of backend rows and pending edits into display order.
- ledger: Capacity-bounded pending edit ledger.
- session: The browsing session tying everything together.
- store: Remote store protocol and the HTTP client implementing it.
"""

from .errors import (
    CapacityExceeded,
    ImmutableItem,
    InvalidRule,
    KeyExhausted,
    NotFound,
    OutOfRange,
    SyncInProgress,
    TransportFailure,
)
from .models import DEFAULT_PAGE_SIZES, Endpoint, Rule, RuleAction, VisibleRule, KEY_CEILING, TERMINATOR_KEY
from .session import RuleSession
from .store import CommitOperation, HttpRuleStore, RuleStore

__all__ = [
    "CapacityExceeded",
    "CommitOperation",
    "DEFAULT_PAGE_SIZES",
    "Endpoint",
    "HttpRuleStore",
    "ImmutableItem",
    "InvalidRule",
    "KEY_CEILING",
    "KeyExhausted",
    "NotFound",
    "OutOfRange",
    "Rule",
    "RuleAction",
    "RuleSession",
    "RuleStore",
    "SyncInProgress",
    "TERMINATOR_KEY",
    "TransportFailure",
    "VisibleRule",
]
