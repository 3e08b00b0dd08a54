# =============================================================================
# Poll Scheduler — Timer-Driven, Non-Overlapping Poll Cycles
# =============================================================================
#
# Every `poll_interval` seconds the scheduler ticks. A tick starts a poll
# cycle only when the scheduler is IDLE:
#
#   tick ──▶ IDLE?  ── yes ──▶ DRAINING ── cycle runs ──▶ IDLE
#              │
#              └── no ──▶ tick dropped (not queued)
#
# A cycle walks the job kinds in order (flashcards, then quizzes). For each
# kind it fetches up to 2 × L oldest PENDING jobs and hands them to the
# Bounded Batch Runner with concurrency L.
#
# The IDLE/DRAINING slot is an instance field: two schedulers (e.g. in
# tests) never share state. Since tick() flips the slot synchronously, no
# lock is needed on the single-threaded event loop.
#
# SHUTDOWN:
#   request_stop() → no new ticks, unclaimed jobs stay PENDING
#                  → wait for the in-flight cycle (bounded by
#                    shutdown_timeout; cancelled after that)
# =============================================================================

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from study_worker.db.repository import JobStore
from study_worker.models.jobs import JobRecord
from study_worker.workers.batch import run_bounded
from study_worker.workers.kinds import JobKind
from study_worker.workers.processor import JobOutcome, JobProcessor
from study_worker.workers.retry import RetryPolicy

logger = logging.getLogger(__name__)


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class CycleSummary:
    """Result of one poll cycle, per kind."""

    fetched: dict[str, int] = field(default_factory=dict)
    outcomes: list[JobOutcome] = field(default_factory=list)
    fetch_errors: int = 0

    @property
    def had_work(self) -> bool:
        return any(self.fetched.values())


class PollScheduler:
    def __init__(
        self,
        store: JobStore,
        processor: JobProcessor,
        kinds: Sequence[JobKind],
        *,
        poll_interval: float = 20.0,
        batch_size_multiplier: int = 2,
        retry: RetryPolicy | None = None,
        shutdown_timeout: float = 120.0,
    ) -> None:
        self._store = store
        self._processor = processor
        self._kinds = list(kinds)
        self._poll_interval = poll_interval
        self._batch_size_multiplier = batch_size_multiplier
        self._retry = retry or RetryPolicy()
        self._shutdown_timeout = shutdown_timeout

        self._state = SchedulerState.IDLE
        self._cycle_task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

        self.dropped_ticks = 0
        self.cycles_completed = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # -------------------------------------------------------------------------
    # Ticks
    # -------------------------------------------------------------------------

    def tick(self) -> bool:
        """
        Handle one timer tick. Must be called from the event loop.

        Returns True if a poll cycle was started, False if the tick was
        dropped (stop requested, or the previous cycle is still draining).
        """
        if self._stop_event.is_set():
            return False
        if self._state is SchedulerState.DRAINING:
            self.dropped_ticks += 1
            logger.info("Previous poll cycle still running; skipping this tick")
            return False

        self._state = SchedulerState.DRAINING
        self._cycle_task = asyncio.create_task(self._run_cycle())
        return True

    async def _run_cycle(self) -> CycleSummary | None:
        try:
            summary = await self.poll_cycle()
            self.cycles_completed += 1
            return summary
        except Exception:
            logger.exception("Poll cycle failed")
            return None
        finally:
            self._state = SchedulerState.IDLE

    # -------------------------------------------------------------------------
    # Poll Cycle
    # -------------------------------------------------------------------------

    async def poll_cycle(self) -> CycleSummary:
        """Fetch and process one batch per job kind."""
        summary = CycleSummary()
        logger.info("Polling for new jobs...")

        for kind in self._kinds:
            if self._stop_event.is_set():
                break

            limit = kind.fetch_limit(self._batch_size_multiplier)
            try:
                jobs = await self._retry.run(
                    lambda kind=kind, limit=limit: self._store.fetch_pending(kind, limit),
                    f"find pending {kind.name} jobs",
                )
            except Exception:
                summary.fetch_errors += 1
                logger.exception("%s polling error", kind.name)
                continue

            summary.fetched[kind.name] = len(jobs)
            if not jobs:
                continue

            logger.info(
                "Found %d pending %s jobs in %s. Processing %d in parallel.",
                len(jobs), kind.name, kind.table_name, min(len(jobs), kind.concurrency),
            )
            tasks = [self._job_task(kind, job, summary.outcomes) for job in jobs]
            await run_bounded(tasks, kind.concurrency)

        if not summary.had_work:
            logger.info("No pending jobs found, waiting for next poll...")
        return summary

    def _job_task(
        self,
        kind: JobKind,
        job: JobRecord,
        outcomes: list[JobOutcome],
    ):
        async def run() -> None:
            # Checked right before the claim: once stop is requested,
            # jobs that have not started are left PENDING.
            if self._stop_event.is_set():
                logger.info(
                    "Shutdown requested; leaving %s job %s pending", kind.name, job.id,
                )
                return
            outcomes.append(await self._processor.process(kind, job))

        return run

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Poll immediately, then every interval, until stop is requested."""
        logger.info(
            "Scheduler started (interval=%.1fs, kinds=%s)",
            self._poll_interval, ", ".join(k.name for k in self._kinds),
        )
        self.tick()

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._poll_interval,
                )
            except asyncio.TimeoutError:
                self.tick()

        await self.drain()

    def request_stop(self) -> None:
        if self._stop_event.is_set():
            return
        logger.info("Shutting down gracefully...")
        self._stop_event.set()

    async def drain(self) -> bool:
        """
        Wait for the in-flight cycle, if any.

        Returns False if it had to be cancelled after shutdown_timeout.
        """
        task = self._cycle_task
        if task is None or task.done():
            return True

        logger.info(
            "Waiting up to %.0fs for the current poll cycle to finish...",
            self._shutdown_timeout,
        )
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._shutdown_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Poll cycle did not finish within %.0fs; cancelling. "
                "In-flight jobs will remain PROCESSING.",
                self._shutdown_timeout,
            )
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            return False

        logger.info("Poll cycle drained")
        return True
