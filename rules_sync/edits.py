"""
Pending edit variants.

Each variant carries the fully materialized rule state after the edit.
Indices are 0-based positions: ``original_index`` in the unedited backend
order, ``new_index`` in the current edited view. The ledger shifts the
``new_index`` of earlier placements as later edits go past them.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .models import Rule


class _Edit:
    """Read-only accessors shared by every variant."""

    kind = "edit"
    rule: Rule

    @property
    def identity(self) -> str:
        return self.rule.identity

    @property
    def timestamp(self) -> int:
        return self.rule.timestamp

    @property
    def key(self) -> float:
        return self.rule.key

    @property
    def deleted(self) -> bool:
        return False


@dataclass(frozen=True)
class InsertEdit(_Edit):
    """A rule that does not exist in the store yet."""
    rule: Rule
    new_index: int

    kind = "insert"

    @property
    def original_index(self) -> Optional[int]:
        return None


@dataclass(frozen=True)
class MoveEdit(_Edit):
    """A stored rule placed at a new position (fields may change too)."""
    rule: Rule
    original_index: int
    new_index: int

    kind = "move"


@dataclass(frozen=True)
class InPlaceEdit(_Edit):
    """A stored rule whose fields changed without changing its position."""
    rule: Rule
    original_index: int

    kind = "edit"

    @property
    def new_index(self) -> Optional[int]:
        return self.original_index


@dataclass(frozen=True)
class DeleteEdit(_Edit):
    """Tombstone for a stored rule."""
    rule: Rule
    original_index: int

    kind = "delete"

    @property
    def new_index(self) -> Optional[int]:
        return None

    @property
    def deleted(self) -> bool:
        return True


PendingEdit = Union[InsertEdit, MoveEdit, InPlaceEdit, DeleteEdit]
