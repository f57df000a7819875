"""
Per-item outcome tracking for batch mutations.

Every mutation of the graph manager processes its input list item by item. A
handler decides, for one item, whether it was applied or skipped; anything it
raises marks that item as failed without aborting the rest of the batch.

    async def _handler(item) -> ItemOutcome:
        if already_there:
            return ItemOutcome.skipped(item, "already exists")
        return ItemOutcome.applied(item, result)

    outcome = await run_batch("create_entities", items, _handler)
    outcome.applied()  # results of the applied items, in input order
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel, Field

from .kg_logging import logger
from .models import KnowledgeGraphException


class OutcomeStatus(str, Enum):
    """What happened to one item of a batch."""

    APPLIED = "applied"  # The mutation took effect
    SKIPPED = "skipped"  # Nothing to do (duplicate, already absent, ...)
    FAILED = "failed"  # Referential or storage error; nothing was applied


class ItemOutcome(BaseModel):
    """Outcome for a single batch item."""

    input: Any = Field(..., description="The validated input item")
    status: OutcomeStatus
    result: Any = Field(default=None, description="Operation-specific result for the item")
    reason: str | None = Field(default=None, description="Why the item was skipped or failed")

    @classmethod
    def applied(cls, item: Any, result: Any) -> "ItemOutcome":
        return cls(input=item, status=OutcomeStatus.APPLIED, result=result)

    @classmethod
    def skipped(cls, item: Any, reason: str, result: Any = None) -> "ItemOutcome":
        return cls(input=item, status=OutcomeStatus.SKIPPED, result=result, reason=reason)

    @classmethod
    def failed(cls, item: Any, reason: str) -> "ItemOutcome":
        return cls(input=item, status=OutcomeStatus.FAILED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.APPLIED


class BatchOutcome(BaseModel):
    """Outcomes of every item of one batch, in input order."""

    operation: str
    items: list[ItemOutcome] = Field(default_factory=list)

    def applied(self) -> list[Any]:
        """Results of the items that were applied."""
        return [i.result for i in self.items if i.status is OutcomeStatus.APPLIED]

    def skipped(self) -> list[ItemOutcome]:
        return [i for i in self.items if i.status is OutcomeStatus.SKIPPED]

    def failed(self) -> list[ItemOutcome]:
        return [i for i in self.items if i.status is OutcomeStatus.FAILED]

    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in OutcomeStatus}
        for i in self.items:
            counts[i.status.value] += 1
        return counts

    def __str__(self) -> str:
        c = self.counts()
        return f"{self.operation}: {c['applied']} applied, {c['skipped']} skipped, {c['failed']} failed"


async def run_batch(
    operation: str,
    items: Iterable[Any],
    handler: Callable[[Any], Awaitable[ItemOutcome]],
) -> BatchOutcome:
    """
    Run `handler` over each item sequentially and collect the outcomes.

    Knowledge graph errors (e.g. a missing endpoint) and storage errors are recorded
    as failed items and logged; the batch continues with the next item.
    """
    outcome = BatchOutcome(operation=operation)
    for item in items:
        try:
            item_outcome = await handler(item)
        except KnowledgeGraphException as e:
            logger.warning(f"{operation}: item {item!r} failed: {e}")
            item_outcome = ItemOutcome.failed(item, str(e))
        except Exception as e:
            logger.error(f"⛔ {operation}: storage error for item {item!r}: {e}")
            item_outcome = ItemOutcome.failed(item, f"{type(e).__name__}: {e}")
        else:
            if item_outcome.status is OutcomeStatus.SKIPPED:
                logger.debug(f"{operation}: skipped {item!r}: {item_outcome.reason}")
        outcome.items.append(item_outcome)

    logger.debug(str(outcome))
    return outcome


__all__ = ["BatchOutcome", "ItemOutcome", "OutcomeStatus", "run_batch"]
