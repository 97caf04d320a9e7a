"""
Fractional ordering key allocation.

A rule placed between two neighbors gets the midpoint of their keys, so the
remote order never has to be renumbered. Repeated placement into the same
gap halves it each time until floating point can no longer produce a key
distinct from both neighbors; that case is rejected with KeyExhausted.
"""

from typing import Optional, Sequence

from shared.logging import get_logger

from .edits import DeleteEdit, MoveEdit, PendingEdit
from .errors import KeyExhausted, OutOfRange
from .models import KEY_CEILING, Rule, VisibleRule, WindowBounds
from .store import RuleStore
from .translator import translate


def midpoint(prev_key: float, next_key: float) -> float:
    """Key strictly between two neighbors."""
    key = (prev_key + next_key) / 2
    if not prev_key < key < next_key:
        raise KeyExhausted(prev_key, next_key)
    return key


class KeyAllocator:
    """Computes keys from the projected window, asking the store when a
    neighbor lies outside it."""

    def __init__(self, store: RuleStore):
        self.store = store
        self.logger = get_logger("rules_sync.keys")

    async def allocate(self, position: int, view: Sequence[VisibleRule], bounds: WindowBounds,
                       edits: Sequence[PendingEdit]) -> float:
        """Key for a rule placed at 0-based ``position`` of the edited view.

        ``view`` and ``edits`` must already exclude the rule being placed so
        that its own stale entry cannot influence its new key.
        """
        if position < 0:
            raise OutOfRange("Position must be at least 1", {"position": position + 1})

        prev_rule: Optional[Rule] = None
        if position > 0:
            prev_rule = await self._neighbor(position - 1, view, bounds, edits)
            if prev_rule is None or prev_rule.is_terminator:
                raise OutOfRange("Cannot insert rule after the last rule", {"position": position + 1})

        next_rule = await self._neighbor(position, view, bounds, edits)
        if next_rule is None:
            raise OutOfRange("Cannot insert rule after the last rule", {"position": position + 1})

        prev_key = prev_rule.key if prev_rule is not None else 0.0
        next_key = KEY_CEILING if next_rule.is_terminator else next_rule.key

        # Pending rules outside the window can sit in the same gap
        for edit in edits:
            if edit.deleted or edit.new_index is None or not prev_key < edit.key < next_key:
                continue
            if edit.new_index < position:
                prev_key = edit.key
            else:
                next_key = edit.key

        key = midpoint(prev_key, next_key)
        self.logger.debug("Key allocated", position=position, prev_key=prev_key, next_key=next_key, key=key)
        return key

    async def _neighbor(self, index: int, view: Sequence[VisibleRule], bounds: WindowBounds,
                        edits: Sequence[PendingEdit]) -> Optional[Rule]:
        """Rule at 0-based ``index`` of the edited view, or None past the end."""
        local = index - bounds.visible_skip
        if 0 <= local < len(view):
            return view[local].rule
        if local >= len(view) and bounds.reached_end:
            return None

        placed = [edit for edit in edits if not edit.deleted and edit.new_index == index]
        if placed:
            return placed[-1].rule
        return await self._remote_neighbor(index, edits)

    async def _remote_neighbor(self, index: int, edits: Sequence[PendingEdit]) -> Optional[Rule]:
        backend_index = translate(index, edits)
        displaced = {
            edit.identity for edit in edits
            if isinstance(edit, (DeleteEdit, MoveEdit))
        }
        self.logger.debug("Fetching out-of-window neighbor", index=index, backend_index=backend_index)
        fetched = await self.store.fetch_ordered_slice(backend_index, 1 + len(displaced))
        for row in fetched.rows:
            if row.identity not in displaced:
                return row
        return None
