"""
Browsing session over the remote rule order.

A RuleSession owns one window and one pending edit ledger. Every user
action goes through it: page navigation, optimistic structural edits, and
the commit/discard of the accumulated edits. Positions at this surface are
1-based display positions; the ledger and translator work with 0-based
indices.

Only one remote call is in flight at a time. While it runs the session is
``syncing`` and every further navigation or edit is rejected with
SyncInProgress instead of being queued.
"""

import math
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence

from shared.config import BaseConfig
from shared.logging import get_logger

from .edits import DeleteEdit, InsertEdit, PendingEdit
from .errors import ImmutableItem, NotFound, OutOfRange, SyncInProgress
from .keys import KeyAllocator
from .ledger import PendingEditLedger
from .models import Endpoint, Rule, RuleAction, VisibleRule
from .overlay import project
from .store import CommitOperation, HttpRuleStore, RuleStore
from .validation import validate_rule
from .window import WindowCache


def to_commit_operation(edit: PendingEdit) -> CommitOperation:
    """Map a ledger entry to the batch operation that persists it."""
    if isinstance(edit, InsertEdit):
        return CommitOperation(CommitOperation.CREATE, edit.rule)
    if isinstance(edit, DeleteEdit):
        return CommitOperation(CommitOperation.DELETE, edit.rule)
    return CommitOperation(CommitOperation.UPDATE, edit.rule)


class RuleSession:
    """Edit-aware paging session for one user."""

    def __init__(self, store: RuleStore, page_size: int = 25, max_pending_changes: int = 200):
        if page_size < 1:
            raise ValueError("Page size must be positive")

        self.store = store
        self.page = 1
        self.page_size = page_size
        self.window = WindowCache(store)
        self.ledger = PendingEditLedger(capacity=max_pending_changes)
        self.keys = KeyAllocator(store)
        self.logger = get_logger("rules_sync.session")

        self._rows: List[VisibleRule] = []
        self._syncing = False
        self._last_timestamp = 0

    @classmethod
    def from_config(cls, config: BaseConfig, token: Optional[str] = None) -> "RuleSession":
        """Session against the HTTP rule store named in ``config``."""
        store = HttpRuleStore(config.store_url, token, timeout=config.store_timeout_seconds)
        return cls(store, page_size=config.page_size, max_pending_changes=config.max_pending_changes)

    # State

    @property
    def rows(self) -> List[VisibleRule]:
        """Projected window: backend rows with pending edits applied."""
        return list(self._rows)

    @property
    def page_rows(self) -> List[VisibleRule]:
        """Rows of the current page."""
        return self._rows[:self.page_size]

    @property
    def syncing(self) -> bool:
        return self._syncing

    @property
    def has_pending_changes(self) -> bool:
        return len(self.ledger) > 0

    @property
    def has_max_pending_changes(self) -> bool:
        return self.ledger.is_full

    @property
    def pending_edits(self) -> List[PendingEdit]:
        return self.ledger.entries()

    @property
    def total_count(self) -> int:
        """Length of the edited order, terminator included."""
        delta = 0
        for edit in self.ledger.entries():
            if isinstance(edit, InsertEdit):
                delta += 1
            elif isinstance(edit, DeleteEdit):
                delta -= 1
        return max(0, self.window.total_count + delta)

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total_count / self.page_size))

    # Navigation

    async def open(self) -> List[VisibleRule]:
        """Load the first page."""
        return await self._load(1, self.page_size, force=True)

    async def go_to_page(self, page: int) -> List[VisibleRule]:
        """Show ``page`` (1-based); loading the page already shown does nothing."""
        self._ensure_idle("change page")
        if page < 1 or (self.window.loaded and page > self.total_pages):
            raise OutOfRange(f"Page {page} does not exist", {"page": page, "total_pages": self.total_pages})
        return await self._load(page, self.page_size)

    async def next_page(self) -> List[VisibleRule]:
        self._ensure_idle("change page")
        if self.page >= self.total_pages:
            return self.page_rows
        return await self._load(self.page + 1, self.page_size)

    async def previous_page(self) -> List[VisibleRule]:
        self._ensure_idle("change page")
        if self.page <= 1:
            return self.page_rows
        return await self._load(self.page - 1, self.page_size)

    async def set_page_size(self, page_size: int) -> List[VisibleRule]:
        """Change the page size, staying on the page of the first visible row."""
        self._ensure_idle("change page size")
        if page_size < 1:
            raise OutOfRange("Page size must be positive", {"page_size": page_size})
        if page_size == self.page_size:
            return self.page_rows

        first_row = (self.page - 1) * self.page_size
        return await self._load(first_row // page_size + 1, page_size)

    # Structural edits

    async def add_rule(self, rule: Rule, position: int) -> Rule:
        """Insert a new rule so that it shows at display ``position``."""
        self._ensure_idle("add rule")
        self.ledger.ensure_capacity()
        rule = validate_rule(rule)
        index = self._index_of_position(position)

        edits = self.ledger.entries()
        async with self._remote_call("add rule"):
            key = await self.keys.allocate(index, self._rows, self.window.bounds, edits)

        new_rule = rule.with_changes(
            rule_id=None,
            temp_id=f"temp-{uuid.uuid4().hex}",
            key=key,
            timestamp=self._next_timestamp(),
        )
        self.ledger.insert_or_move(new_rule, index)
        await self._refresh_after_placement(index)

        self.logger.info("Rule added", identity=new_rule.identity, position=position, key=key)
        return new_rule

    async def move_rule(self, identity: str, position: int) -> Rule:
        """Place an existing rule at display ``position``."""
        self._ensure_idle("move rule")
        current = self._find(identity)
        if current.rule.is_terminator:
            raise ImmutableItem("move")
        self.ledger.ensure_capacity()
        index = self._index_of_position(position)

        original_index = self._original_index(current.rule)
        from_index = current.position - 1

        # Neighbors are read from the order without the rule being moved; the
        # stand-in tombstone is the newest change to that order
        edits: List[PendingEdit] = self.ledger.without(identity, from_index)
        if original_index is not None:
            vacated = current.rule.with_changes(timestamp=self._last_timestamp + 1)
            edits.append(DeleteEdit(rule=vacated, original_index=original_index))
        view = project(self.window.rows, edits, self.window.bounds)

        async with self._remote_call("move rule"):
            key = await self.keys.allocate(index, view, self.window.bounds, edits)

        moved = current.rule.with_changes(key=key, timestamp=self._next_timestamp())
        self.ledger.insert_or_move(moved, index, original_index, from_index)
        await self._refresh_after_placement(index)

        self.logger.info("Rule moved", identity=identity, position=position, key=key)
        return moved

    async def edit_rule(self, identity: str, name: Optional[str] = None,
                        action: Optional[RuleAction] = None,
                        sources: Optional[Sequence[Endpoint]] = None,
                        destinations: Optional[Sequence[Endpoint]] = None) -> Rule:
        """Change a rule's fields without changing its position."""
        self._ensure_idle("edit rule")
        current = self._find(identity)
        if current.rule.is_terminator:
            raise ImmutableItem("edit")
        self.ledger.ensure_capacity()

        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if action is not None:
            changes["action"] = RuleAction(action)
        if sources is not None:
            changes["sources"] = sources
        if destinations is not None:
            changes["destinations"] = destinations
        edited = validate_rule(current.rule.with_changes(**changes))

        # An existing entry keeps its place in the causal order
        existing = self.ledger.get(identity)
        timestamp = existing.timestamp if existing is not None else self._next_timestamp()
        edited = edited.with_changes(timestamp=timestamp)

        self.ledger.record_in_place_edit(edited, self._original_index(current.rule))
        self._reproject()

        self.logger.info("Rule edited", identity=identity, fields=sorted(changes))
        return edited

    async def delete_rule(self, identity: str) -> None:
        """Remove a rule from the edited order."""
        self._ensure_idle("delete rule")
        current = self._find(identity)
        if current.rule.is_terminator:
            raise ImmutableItem("delete")
        self.ledger.ensure_capacity()

        deleted = current.rule.with_changes(timestamp=self._next_timestamp())
        self.ledger.mark_deleted(deleted, self._original_index(current.rule), current.position - 1)
        self._reproject()
        self.logger.info("Rule deleted", identity=identity, persisted=current.rule.is_persisted)

        if len(self._rows) < self.page_size and not self.window.bounds.reached_end:
            await self._load(self.page, self.page_size, force=True)

    # Commit and discard

    async def commit(self) -> Dict[str, Any]:
        """Persist every pending edit as one batch, then reload the page.

        On failure the ledger is kept so the commit can be retried.
        """
        self._ensure_idle("commit")
        if not self.has_pending_changes:
            return {"success": True, "created": 0, "updated": 0, "deleted": 0}

        operations = [to_commit_operation(edit) for edit in self.ledger.entries()]
        async with self._remote_call("commit"):
            result = await self.store.commit_batch(operations)
            self.ledger.clear()
            await self.window.load(self.page, self.page, self.page_size, self.page_size, force=True)

        self._reproject()
        self.logger.info("Pending edits committed", operations=len(operations))
        return result

    async def discard(self) -> List[VisibleRule]:
        """Drop every pending edit and show backend truth for the page."""
        self._ensure_idle("discard")
        async with self._remote_call("discard"):
            await self.window.load(self.page, self.page, self.page_size, self.page_size, force=True)
            self.ledger.clear()

        self._reproject()
        self.logger.info("Pending edits discarded", page=self.page)
        return self.page_rows

    # Internals

    @asynccontextmanager
    async def _remote_call(self, operation: str):
        self._ensure_idle(operation)
        self._syncing = True
        try:
            yield
        finally:
            self._syncing = False

    def _ensure_idle(self, operation: str) -> None:
        if self._syncing:
            raise SyncInProgress(operation)

    async def _load(self, page: int, page_size: int, force: bool = False) -> List[VisibleRule]:
        async with self._remote_call("load page"):
            await self.window.load(
                self.page if self.window.loaded else None,
                page,
                self.page_size if self.window.loaded else None,
                page_size,
                self.ledger.entries(),
                force=force,
            )
        self.page, self.page_size = page, page_size
        self._reproject()
        return self.page_rows

    def _reproject(self) -> None:
        self._rows = project(self.window.rows, self.ledger.entries(), self.window.bounds)

    async def _refresh_after_placement(self, index: int) -> None:
        """Show a new placement; one before the window shifts every held row."""
        if index < self.window.bounds.visible_skip:
            await self._load(self.page, self.page_size, force=True)
        else:
            self._reproject()

    def _find(self, identity: str) -> VisibleRule:
        for row in self._rows:
            if row.identity == identity:
                return row
        raise NotFound(identity)

    def _original_index(self, rule: Rule) -> Optional[int]:
        """Position of a rule in the unedited order, if it has one."""
        existing = self.ledger.get(rule.identity)
        if existing is not None:
            return existing.original_index
        if not rule.is_persisted:
            return None
        return self.window.backend_index_of(rule.identity)

    def _index_of_position(self, position: int) -> int:
        if position < 1:
            raise OutOfRange("Position must be at least 1", {"position": position})
        return position - 1

    def _next_timestamp(self) -> int:
        now = int(time.time() * 1000)
        self._last_timestamp = max(now, self._last_timestamp + 1)
        return self._last_timestamp
