"""
Translation between edited-view positions and backend positions.

The store only knows the unedited order, so every skip/take sent to it has
to be expressed in backend terms. The ledger keeps each placement's
``new_index`` equal to its current position in the edited view, so the
translation only needs the current set of edits, not their history.
"""

from typing import Iterable, List, Tuple

from .edits import DeleteEdit, InsertEdit, MoveEdit, PendingEdit


def causal_order(edits: Iterable[PendingEdit]) -> List[PendingEdit]:
    """Return edits sorted by timestamp, oldest first."""
    return sorted(edits, key=lambda edit: edit.timestamp)


def translate(visible_position: int, edits: Iterable[PendingEdit]) -> int:
    """Map a 0-based position of the edited view to the backend order.

    Placed rows (insertions and move targets) before the position hold no
    backend slot, and every removed row (tombstone or move source) at or
    before the running backend position still does. Recomputed from scratch
    on every call; the result depends only on the given edit set.
    """
    offset = 0
    vacated: List[int] = []

    for edit in causal_order(edits):
        if isinstance(edit, (InsertEdit, MoveEdit)) and edit.new_index < visible_position:
            # Placed row: one backend row fewer before the target
            offset -= 1
        if isinstance(edit, (DeleteEdit, MoveEdit)):
            vacated.append(edit.original_index)

    backend_position = visible_position + offset
    for original in sorted(vacated):
        if original <= backend_position:
            backend_position += 1

    return backend_position


def adjusted_skip_and_take(skip: int, take: int, edits: Iterable[PendingEdit]) -> Tuple[int, int]:
    """Translate a visible skip/take pair into backend skip/take."""
    edits = list(edits)
    real_skip = translate(skip, edits)
    real_until = translate(skip + take, edits)
    return real_skip, max(0, real_until - real_skip)
