"""
Overlay projection: backend rows plus pending edits, in display order.

This is the only place where the order shown to the user is decided.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .edits import PendingEdit
from .models import Rule, VisibleRule, WindowBounds
from .translator import causal_order


def _belongs_to_window(edit: PendingEdit, bounds: WindowBounds,
                       first_key: Optional[float], last_key: Optional[float]) -> bool:
    """Whether a placed rule falls inside the key range held by the window.

    A key in the gap before the first held row (or after the last one) can
    belong to this window or to its neighbor; the position the rule was
    placed at decides.
    """
    new_index = edit.new_index
    seam_owned = new_index is not None and bounds.visible_skip <= new_index < bounds.visible_end

    if first_key is None or last_key is None:
        return seam_owned
    if edit.key < first_key:
        return bounds.backend_skip == 0 or seam_owned
    if edit.key > last_key:
        return bounds.reached_end or seam_owned
    return True


def project(rows: Sequence[Rule], edits: Iterable[PendingEdit], bounds: WindowBounds) -> List[VisibleRule]:
    """Merge window rows with pending edits.

    Edits are applied oldest first: a tombstone removes its rule, any other
    edit removes the stale backend copy and, when the new key lies inside
    the window, adds the edited rule. The result is sorted by key (ties by
    timestamp) and numbered from ``bounds.visible_skip + 1``. Inputs are
    never mutated.
    """
    first_key = rows[0].key if rows else None
    last_key = rows[-1].key if rows else None

    merged: Dict[str, Tuple[Rule, bool]] = {rule.identity: (rule, False) for rule in rows}

    for edit in causal_order(edits):
        merged.pop(edit.identity, None)
        if edit.deleted:
            continue
        if _belongs_to_window(edit, bounds, first_key, last_key):
            merged[edit.identity] = (edit.rule, True)

    ordered = sorted(merged.values(), key=lambda entry: (entry[0].key, entry[0].timestamp))

    return [
        VisibleRule(rule=rule, position=bounds.visible_skip + offset + 1, pending=pending)
        for offset, (rule, pending) in enumerate(ordered)
    ]
