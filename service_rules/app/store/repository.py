"""
In-memory rule repository.

Rules are kept sorted by ordering key. Exactly one terminator rule with the
maximum reserved key closes the order and is visible to every partition.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger

from rules_sync.models import KEY_CEILING, TERMINATOR_KEY, Rule, RuleAction

from ..models import OperationModel

ProgressCallback = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class Scope:
    """Partition a caller may read and write."""
    tenant_id: Optional[str]
    see_all: bool = False

    def includes(self, rule: Rule) -> bool:
        if self.see_all:
            return True
        return rule.tenant_id is None or rule.tenant_id == self.tenant_id


def make_terminator() -> Rule:
    return Rule(
        rule_id=str(uuid.uuid4()),
        tenant_id=None,
        name="Allow",
        action=RuleAction.DEFAULT,
        key=TERMINATOR_KEY,
    )


def _sort_key(rule: Rule) -> Tuple[float, int]:
    return rule.key, rule.timestamp


class RuleRepository:
    """Ordered rule storage guarded by a single asyncio lock."""

    def __init__(self, rules: Optional[Sequence[Rule]] = None):
        self.logger = get_logger("rules.repository")
        self._lock = asyncio.Lock()
        self._rules: List[Rule] = sorted(rules or [], key=_sort_key)
        self._ensure_terminator()

    @property
    def terminator(self) -> Rule:
        return self._rules[-1]

    def _ensure_terminator(self) -> None:
        terminators = [rule for rule in self._rules if rule.is_terminator]
        if len(terminators) == 1:
            return
        rules = [rule for rule in self._rules if not rule.is_terminator]
        rules.append(terminators[0] if terminators else make_terminator())
        self._rules = rules
        self.logger.info("Terminator rule ensured", terminator_id=rules[-1].rule_id)

    async def fetch_slice(self, scope: Scope, skip: int, take: int) -> Tuple[List[Rule], int]:
        """Rows ``skip`` .. ``skip + take`` of the caller's order and its length."""
        async with self._lock:
            visible = [rule for rule in self._rules if scope.includes(rule)]
        return visible[skip:skip + take], len(visible)

    async def count(self, scope: Scope) -> int:
        async with self._lock:
            return sum(1 for rule in self._rules if scope.includes(rule))

    async def max_key(self) -> float:
        """Highest non-terminator key across every partition, 0 when empty."""
        async with self._lock:
            return max((rule.key for rule in self._rules if not rule.is_terminator), default=0.0)

    async def commit(self, scope: Scope, operations: Sequence[OperationModel]) -> Dict[str, int]:
        """Apply a batch on a copy and swap it in only if every operation is valid."""
        counts = {"created": 0, "updated": 0, "deleted": 0}
        touched = set()

        async with self._lock:
            working: Dict[str, Rule] = {rule.rule_id: rule for rule in self._rules}

            for index, operation in enumerate(operations):
                if operation.rule is not None and operation.rule.priority >= KEY_CEILING:
                    raise ValidationError(
                        "Priority is inside the reserved range",
                        {"operation": index, "priority": operation.rule.priority},
                        code="RESERVED_KEY",
                    )

                if operation.op == "create":
                    rule_id = str(uuid.uuid4())
                    created = operation.rule.to_rule().with_changes(
                        rule_id=rule_id, temp_id=None, tenant_id=scope.tenant_id
                    )
                    working[rule_id] = created
                    touched.add(scope.tenant_id)
                    counts["created"] += 1
                    continue

                existing = working.get(operation.id)
                if existing is None or not scope.includes(existing):
                    raise NotFoundError("Rule not found", {"operation": index, "id": operation.id})
                if existing.is_terminator:
                    raise ValidationError(
                        "Cannot modify the last fixed rule",
                        {"operation": index, "id": operation.id},
                        code="IMMUTABLE_ITEM",
                    )

                if operation.op == "delete":
                    del working[operation.id]
                    counts["deleted"] += 1
                else:
                    incoming = operation.rule.to_rule()
                    touched.add(existing.tenant_id)
                    working[operation.id] = existing.with_changes(
                        name=incoming.name,
                        action=incoming.action,
                        sources=incoming.sources,
                        destinations=incoming.destinations,
                        key=incoming.key,
                        timestamp=incoming.timestamp,
                    )
                    counts["updated"] += 1

            candidate = sorted(working.values(), key=_sort_key)
            self._check_unique_keys(candidate, touched)
            self._rules = candidate

        self.logger.info("Batch applied", tenant_id=scope.tenant_id, **counts)
        return counts

    def _check_unique_keys(self, rules: Sequence[Rule], partitions: Set[Optional[str]]) -> None:
        """Keys must be unique within each written partition and the shared rules.

        Writing a shared rule (no tenant) touches every partition.
        """
        if None in partitions:
            partitions = {rule.tenant_id for rule in rules}
        for tenant_id in partitions:
            scope = Scope(tenant_id=tenant_id)
            seen = set()
            for rule in rules:
                if not scope.includes(rule):
                    continue
                if rule.key in seen:
                    raise ConflictError("Two rules would share a priority",
                                        {"priority": rule.key, "tenant_id": tenant_id},
                                        code="DUPLICATE_KEY")
                seen.add(rule.key)

    async def insert_many(self, rules: Sequence[Rule]) -> None:
        """Add already-keyed rules in one step; rules without an id get one."""
        rules = [rule if rule.rule_id else rule.with_changes(rule_id=str(uuid.uuid4())) for rule in rules]
        async with self._lock:
            for rule in rules:
                if rule.key >= KEY_CEILING:
                    raise ValidationError("Priority is inside the reserved range",
                                          {"priority": rule.key}, code="RESERVED_KEY")
            candidate = sorted(list(self._rules) + list(rules), key=_sort_key)
            self._check_unique_keys(candidate, {rule.tenant_id for rule in rules})
            self._rules = candidate

    async def delete_partition(self, tenant_id: Optional[str], progress: Optional[ProgressCallback] = None,
                               batch_size: int = 5000) -> int:
        """Delete every non-terminator rule owned by ``tenant_id``.

        Progress is reported as three coarse fractions: 1/3 once sources are
        cleared, 2/3 once destinations are cleared, then item removal in
        batches up to 1.0.
        """
        def owned(rule: Rule) -> bool:
            return rule.tenant_id == tenant_id and not rule.is_terminator

        async with self._lock:
            self._rules = [rule.with_changes(sources=()) if owned(rule) else rule for rule in self._rules]
        if progress:
            await progress(1 / 3)

        async with self._lock:
            self._rules = [rule.with_changes(destinations=()) if owned(rule) else rule for rule in self._rules]
            total = sum(1 for rule in self._rules if owned(rule))
        if progress:
            await progress(2 / 3)

        deleted = 0
        while deleted < total:
            async with self._lock:
                doomed = {rule.rule_id for rule in self._rules if owned(rule)}
                doomed = set(sorted(doomed)[:batch_size])
                self._rules = [rule for rule in self._rules if rule.rule_id not in doomed]
            if not doomed:
                break
            deleted += len(doomed)
            if progress:
                await progress(2 / 3 + min(deleted / total, 1.0) / 3)

        async with self._lock:
            self._ensure_terminator()

        if progress and total == 0:
            await progress(1.0)

        self.logger.info("Partition cleared", tenant_id=tenant_id, deleted=deleted)
        return deleted
