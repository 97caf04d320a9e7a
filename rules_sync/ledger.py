"""
Pending edit ledger.

Holds at most one entry per rule identity. Re-editing a rule replaces its
entry; causal order is the entry timestamp, never the map order.
"""

from dataclasses import replace
from typing import Dict, Iterator, List, Optional

from shared.logging import get_logger

from .edits import DeleteEdit, InPlaceEdit, InsertEdit, MoveEdit, PendingEdit
from .errors import CapacityExceeded
from .models import Rule
from .translator import causal_order


class PendingEditLedger:
    """Capacity-bounded map of uncommitted edits keyed by rule identity."""

    def __init__(self, capacity: int = 200):
        if capacity < 1:
            raise ValueError("Ledger capacity must be positive")
        self.capacity = capacity
        self.logger = get_logger("rules_sync.ledger")
        self._entries: Dict[str, PendingEdit] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: str) -> bool:
        return identity in self._entries

    def __iter__(self) -> Iterator[PendingEdit]:
        return iter(self.entries())

    @property
    def is_full(self) -> bool:
        return len(self._entries) >= self.capacity

    def get(self, identity: str) -> Optional[PendingEdit]:
        return self._entries.get(identity)

    def entries(self) -> List[PendingEdit]:
        """Entries in causal (timestamp) order."""
        return causal_order(self._entries.values())

    def without(self, identity: str, from_index: Optional[int] = None) -> List[PendingEdit]:
        """Entries in causal order as if the rule were taken out of the view.

        Placements after the rule's current position (its own placement, or
        ``from_index`` for a rule the ledger does not place) move up by one.
        """
        existing = self._entries.get(identity)
        if isinstance(existing, (InsertEdit, MoveEdit)):
            from_index = existing.new_index

        edits: List[PendingEdit] = []
        for edit in self.entries():
            if edit.identity == identity:
                continue
            if from_index is not None and isinstance(edit, (InsertEdit, MoveEdit)) and edit.new_index > from_index:
                edit = replace(edit, new_index=edit.new_index - 1)
            edits.append(edit)
        return edits

    def ensure_capacity(self) -> None:
        """Raise CapacityExceeded when no further structural edit is allowed."""
        if self.is_full:
            raise CapacityExceeded(self.capacity)

    def _shift(self, start: int, delta: int, skip: str) -> None:
        """Move every other placement at or after ``start`` by ``delta``."""
        for identity, edit in list(self._entries.items()):
            if identity == skip or not isinstance(edit, (InsertEdit, MoveEdit)):
                continue
            if edit.new_index >= start:
                self._entries[identity] = replace(edit, new_index=edit.new_index + delta)

    def insert_or_move(self, rule: Rule, new_index: int, original_index: Optional[int] = None,
                       from_index: Optional[int] = None) -> PendingEdit:
        """Record a rule placed at ``new_index`` of the edited view.

        ``from_index`` is the rule's current position when the ledger does
        not place it yet (a stored rule being moved). Other placements shift
        so that every ``new_index`` stays a current position. An existing
        entry keeps its original position: a rule inserted in this session
        stays an insertion however often it moves.
        """
        self.ensure_capacity()

        existing = self._entries.get(rule.identity)
        if existing is not None:
            original_index = existing.original_index
        if isinstance(existing, (InsertEdit, MoveEdit)):
            from_index = existing.new_index

        if original_index is None:
            edit: PendingEdit = InsertEdit(rule=rule, new_index=new_index)
        else:
            edit = MoveEdit(rule=rule, original_index=original_index, new_index=new_index)

        if from_index is not None:
            self._shift(from_index + 1, -1, skip=rule.identity)
        self._shift(new_index, 1, skip=rule.identity)

        self._entries[rule.identity] = edit
        self.logger.debug("Placement recorded", identity=rule.identity, kind=edit.kind,
                          new_index=new_index, key=rule.key)
        return edit

    def mark_deleted(self, rule: Rule, original_index: Optional[int] = None,
                     from_index: Optional[int] = None) -> Optional[PendingEdit]:
        """Tombstone a stored rule, or forget a rule the store never saw.

        ``from_index`` is the rule's current position when the ledger does
        not place it; placements after it move up by one.
        """
        self.ensure_capacity()

        existing = self._entries.get(rule.identity)
        if isinstance(existing, (InsertEdit, MoveEdit)):
            from_index = existing.new_index

        if not rule.is_persisted:
            self._entries.pop(rule.identity, None)
            if from_index is not None:
                self._shift(from_index + 1, -1, skip=rule.identity)
            self.logger.debug("Local rule dropped", identity=rule.identity)
            return None

        if existing is not None and existing.original_index is not None:
            original_index = existing.original_index
        if original_index is None:
            raise ValueError(f"Stored rule {rule.identity} needs its original position")

        if from_index is not None:
            self._shift(from_index + 1, -1, skip=rule.identity)

        edit = DeleteEdit(rule=rule, original_index=original_index)
        self._entries[rule.identity] = edit
        self.logger.debug("Deletion recorded", identity=rule.identity, original_index=original_index)
        return edit

    def record_in_place_edit(self, rule: Rule, original_index: Optional[int] = None) -> PendingEdit:
        """Record changed fields of a rule that keeps its position."""
        self.ensure_capacity()

        existing = self._entries.get(rule.identity)
        if isinstance(existing, InsertEdit):
            edit: PendingEdit = InsertEdit(rule=rule, new_index=existing.new_index)
        elif isinstance(existing, MoveEdit):
            edit = MoveEdit(rule=rule, original_index=existing.original_index, new_index=existing.new_index)
        elif isinstance(existing, InPlaceEdit):
            edit = InPlaceEdit(rule=rule, original_index=existing.original_index)
        else:
            if isinstance(existing, DeleteEdit):
                raise ValueError(f"Rule {rule.identity} is already deleted")
            if original_index is None:
                raise ValueError(f"Stored rule {rule.identity} needs its original position")
            edit = InPlaceEdit(rule=rule, original_index=original_index)

        self._entries[rule.identity] = edit
        self.logger.debug("In-place edit recorded", identity=rule.identity, kind=edit.kind)
        return edit

    def clear(self) -> None:
        """Drop every entry."""
        dropped = len(self._entries)
        self._entries.clear()
        if dropped:
            self.logger.info("Pending edits cleared", dropped=dropped)
