"""
Window cache over the remote order.

The window holds backend rows (unedited truth) for two pages of the edited
view starting at the current page. Stepping to an adjacent page reuses the
held rows that still overlap and fetches only the missing remainder; any
other move replaces the window wholesale.
"""

from enum import Enum
from typing import Callable, Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from shared.logging import get_logger

from .edits import PendingEdit
from .models import Rule, Slice, WindowBounds
from .store import RuleStore
from .translator import adjusted_skip_and_take

T = TypeVar("T")

PAGES_HELD = 2


class NavigationKind(str, Enum):
    """How a page request relates to the window currently held."""
    NEXT = "next"
    PREVIOUS = "previous"
    DISJOINT = "disjoint"
    PAGE_SIZE_CHANGED = "page_size_changed"


def classify(prev_page: Optional[int], page: int,
             prev_page_size: Optional[int], page_size: int) -> NavigationKind:
    """Classify a page request relative to the previous one."""
    if prev_page_size is not None and prev_page_size != page_size:
        return NavigationKind.PAGE_SIZE_CHANGED
    if prev_page is not None and prev_page == page - 1:
        return NavigationKind.NEXT
    if prev_page is not None and prev_page == page + 1:
        return NavigationKind.PREVIOUS
    return NavigationKind.DISJOINT


def merge_unique_keep_first(arrays: Iterable[Iterable[T]], get_key: Callable[[T], Hashable]) -> List[T]:
    """Concatenate, keeping only the first occurrence of each key."""
    seen = set()
    result: List[T] = []
    for array in arrays:
        for item in array:
            key = get_key(item)
            if key not in seen:
                seen.add(key)
                result.append(item)
    return result


class WindowCache:
    """Contiguous slice of the remote order held for one session."""

    def __init__(self, store: RuleStore):
        self.store = store
        self.logger = get_logger("rules_sync.window")
        self.rows: List[Rule] = []
        self.bounds = WindowBounds()
        self.total_count = 0
        self._loaded: Optional[Tuple[int, int]] = None

    @property
    def loaded(self) -> bool:
        return self._loaded is not None

    def backend_index_of(self, identity: str) -> Optional[int]:
        """Backend position of a held row, if the window holds it."""
        for offset, row in enumerate(self.rows):
            if row.identity == identity:
                return self.bounds.backend_skip + offset
        return None

    async def load(self, prev_page: Optional[int], page: int,
                   prev_page_size: Optional[int], page_size: int,
                   edits: Sequence[PendingEdit] = (), *, force: bool = False) -> List[Rule]:
        """Make the window cover ``page`` and return the held backend rows.

        A request for the page and size already held is a no-op unless
        ``force`` is set, which always takes the disjoint path.
        """
        if page < 1 or page_size < 1:
            raise ValueError(f"Invalid page request: page={page}, page_size={page_size}")

        if not force and self._loaded == (page, page_size):
            return self.rows

        if force or not self.loaded:
            kind = NavigationKind.DISJOINT
        else:
            kind = classify(prev_page, page, prev_page_size, page_size)

        edits = list(edits)
        visible_skip = (page - 1) * page_size
        visible_take = page_size * PAGES_HELD
        backend_skip, backend_take = adjusted_skip_and_take(visible_skip, visible_take, edits)

        rows: Optional[List[Rule]] = None
        total = self.total_count
        if kind in (NavigationKind.NEXT, NavigationKind.PREVIOUS):
            reused = await self._reuse_adjacent(kind, backend_skip, backend_take)
            if reused is not None:
                rows, total = reused

        if rows is None:
            fetched = await self._fetch(backend_skip, backend_take)
            rows, total = list(fetched.rows), fetched.total_count

        self.rows = rows
        self.total_count = total
        self.bounds = WindowBounds(
            backend_skip=backend_skip,
            backend_take=backend_take,
            visible_skip=visible_skip,
            visible_take=visible_take,
            reached_end=backend_skip + len(rows) >= total,
        )
        self._loaded = (page, page_size)

        self.logger.debug(
            "Window loaded",
            kind=kind.value,
            page=page,
            page_size=page_size,
            backend_skip=backend_skip,
            backend_take=backend_take,
            rows=len(rows),
            total=total,
        )
        return self.rows

    async def _reuse_adjacent(self, kind: NavigationKind, backend_skip: int,
                              backend_take: int) -> Optional[Tuple[List[Rule], int]]:
        """Keep the overlapping held rows and fetch the remainder.

        Returns None when nothing overlaps, in which case the caller falls
        back to a full fetch.
        """
        backend_end = backend_skip + backend_take
        held_skip = self.bounds.backend_skip
        held_end = held_skip + len(self.rows)

        kept = [
            row for offset, row in enumerate(self.rows)
            if backend_skip <= held_skip + offset < backend_end
        ]
        if not kept:
            return None

        total = self.total_count
        if kind is NavigationKind.NEXT:
            fetch_skip = max(backend_skip, held_end)
            fetch_take = backend_end - fetch_skip
            if fetch_take <= 0 or self.bounds.reached_end:
                return kept, total
            fetched = await self._fetch(fetch_skip, fetch_take)
            return merge_unique_keep_first([kept, fetched.rows], lambda rule: rule.identity), fetched.total_count

        fetch_skip = backend_skip
        fetch_take = min(backend_end, held_skip) - fetch_skip
        if fetch_take <= 0:
            return kept, total
        fetched = await self._fetch(fetch_skip, fetch_take)
        held_ids = {row.identity for row in kept}
        # Held copies win over fresh duplicates at the seam
        earlier = [row for row in fetched.rows if row.identity not in held_ids]
        return earlier + kept, fetched.total_count

    async def _fetch(self, skip: int, take: int) -> Slice:
        self.logger.debug("Fetching slice", skip=skip, take=take)
        return await self.store.fetch_ordered_slice(skip, take)
