"""Serialized batch execution with inter-item and inter-batch delays.

The delays keep request rates to rate-limited providers low. One item's
failure is logged and never aborts the rest of the batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 3
DEFAULT_ITEM_DELAY_SECONDS = 1.0
DEFAULT_BATCH_DELAY_SECONDS = 3.0


@dataclass
class BatchReport:
    """Outcome of one ``run_in_batches`` call."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


async def run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[object]],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    item_delay: float = DEFAULT_ITEM_DELAY_SECONDS,
    batch_delay: float = DEFAULT_BATCH_DELAY_SECONDS,
    label: str = "item",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> BatchReport:
    """Run ``worker`` over ``items`` one at a time, in batches.

    Args:
        items: Work items, processed in order.
        worker: Coroutine function called once per item.
        batch_size: Items per batch.
        item_delay: Seconds to wait between items of the same batch.
        batch_delay: Seconds to wait between batches.
        label: Name used in log messages.
        sleep: Sleep function (injected by tests).

    Returns:
        Counts of succeeded and failed items.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    report = BatchReport(total=len(items))
    for start in range(0, len(items), batch_size):
        if start > 0 and batch_delay > 0:
            await sleep(batch_delay)

        batch = items[start : start + batch_size]
        for index, item in enumerate(batch):
            if index > 0 and item_delay > 0:
                await sleep(item_delay)
            try:
                await worker(item)
                report.succeeded += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                report.failed += 1
                report.errors.append(f"{item!r}: {e}")
                logger.warning("Failed to process %s %r: %s", label, item, e)

    return report
