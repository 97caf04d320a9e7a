"""
Bulk dummy-rule generator.

Clears a partition, then writes ``count`` synthetic rules in fixed-size
batches, keeping at most a fixed number of batches in flight. Keys continue
above the highest key of any partition, so they never collide across tenants.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shared.errors import ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from rules_sync.models import KEY_CEILING, Endpoint, Rule, RuleAction

from ..store.repository import RuleRepository

Emit = Callable[[Dict[str, Any]], Awaitable[None]]


def dummy_rule(index: int, tenant_id: Optional[str], base_key: float = 0.0) -> Rule:
    """Synthetic rule number ``index`` (1-based), keyed ``base_key + index``."""
    return Rule(
        name=f"Dummy Rule {index}",
        action=RuleAction.ALLOW,
        sources=(Endpoint(f"Source {index}", f"source{index}@example.com"),),
        destinations=(Endpoint(f"Dest {index}", f"dest{index}@example.com"),),
        key=base_key + index,
        tenant_id=tenant_id,
    )


class BulkRuleGenerator:
    """Resets a partition and fills it with synthetic rules."""

    def __init__(self, repository: RuleRepository, batch_size: int = 20,
                 max_concurrent_batches: int = 5, reset_batch_size: int = 5000,
                 metrics: Optional[MetricsCollector] = None):
        self.repository = repository
        self.batch_size = max(1, batch_size)
        self.max_concurrent_batches = max(1, max_concurrent_batches)
        self.reset_batch_size = max(1, reset_batch_size)
        self.metrics = metrics
        self.logger = get_logger("rules.generator")

    async def run(self, count: int, tenant_id: Optional[str], emit: Emit) -> int:
        """Replace the partition's rules with ``count`` dummy rules.

        Emits ``{"deleteProgress": f}`` during cleanup, ``{"progress": f}``
        after each written batch and ``{"done": True}`` at the end.
        """
        if count < 1:
            raise ValidationError("Count must be positive", {"count": count})
        if count >= KEY_CEILING:
            raise ValidationError("Count would reach the reserved priority range", {"count": count})

        self.logger.info("Bulk generation started", tenant_id=tenant_id, count=count)

        async def report_cleanup(fraction: float) -> None:
            await emit({"deleteProgress": fraction})

        await self.repository.delete_partition(tenant_id, report_cleanup, self.reset_batch_size)

        base_key = await self.repository.max_key()
        if base_key + count >= KEY_CEILING:
            raise ValidationError(
                "Count would reach the reserved priority range",
                {"count": count, "base_key": base_key},
            )

        semaphore = asyncio.Semaphore(self.max_concurrent_batches)
        progress_lock = asyncio.Lock()
        created = 0

        async def write_batch(start: int) -> None:
            nonlocal created
            async with semaphore:
                stop = min(start + self.batch_size, count + 1)
                batch: List[Rule] = [dummy_rule(i, tenant_id, base_key) for i in range(start, stop)]
                await self.repository.insert_many(batch)

            async with progress_lock:
                created += len(batch)
                if self.metrics:
                    self.metrics.increment_counter("dummy_rules_generated_total", len(batch))
                await emit({"progress": created / count})

        tasks = [write_batch(start) for start in range(1, count + 1, self.batch_size)]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        failures = [outcome for outcome in results if isinstance(outcome, Exception)]
        if failures:
            self.logger.error("Bulk generation failed", tenant_id=tenant_id, errors=[str(f) for f in failures])
            raise failures[0]

        await emit({"done": True})
        self.logger.info("Bulk generation finished", tenant_id=tenant_id, created=created)
        return created
