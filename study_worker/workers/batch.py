# =============================================================================
# Bounded Batch Runner — Fixed Worker Pool over a Task List
# =============================================================================
#
# Runs a list of independent zero-argument coroutine factories with at most
# `limit` of them in flight.
#
#   tasks:  [t0, t1, t2, t3, t4, t5]        limit = 3
#
#   worker 0: t0 ──── t3 ─────── t5
#   worker 1: t1 ── t4
#   worker 2: t2 ──────────
#
# `limit` logical workers share one iterator over the task list (the
# cursor). A worker that finishes a task immediately pulls the next one, so
# the concurrency budget stays full until the list runs out. The shared
# iterator is safe without a lock: the event loop never switches coroutines
# between `next()` and the task starting.
#
# A failing task is logged and counted; it never cancels or delays the
# others. Job tasks already handle their own failures, so in practice the
# counter only catches bugs.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[object]]


@dataclass
class BatchSummary:
    """Settlement counts for one `run_bounded` call."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0


async def run_bounded(tasks: Sequence[Task], limit: int) -> BatchSummary:
    """
    Run every task to completion with at most `limit` in flight.

    Returns only after all tasks have settled. Completion order is not
    guaranteed to match list order.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    summary = BatchSummary(total=len(tasks))
    if not tasks:
        return summary

    cursor = iter(enumerate(tasks))

    async def worker(worker_id: int) -> None:
        for index, task in cursor:
            try:
                await task()
            except Exception:
                summary.failed += 1
                logger.exception(
                    "Batch task %d failed (worker %d)", index, worker_id,
                )
            else:
                summary.succeeded += 1

    async with asyncio.TaskGroup() as group:
        for worker_id in range(min(limit, len(tasks))):
            group.create_task(worker(worker_id))

    return summary
