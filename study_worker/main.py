# =============================================================================
# Worker Entry Point
# =============================================================================
#
# STARTUP:
#   1. Configure logging
#   2. Check the database is reachable (SELECT 1, through the Retry Executor)
#        failure → exit 1, nothing is polled
#   3. Install SIGINT/SIGTERM → graceful stop
#   4. Install a loop exception handler: an exception nobody awaited is a
#      fault outside any job boundary → graceful stop, exit 1
#   5. Run the Poll Scheduler until stopped
#   6. Dispose the engine, exit 0 (or 1 after a fault)
#
# USAGE:
#   study-worker            # console script
#   python -m study_worker
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Callable, Sequence
from typing import Any

from study_worker.config import Settings, get_settings
from study_worker.db.repository import JobStore, SqlJobStore
from study_worker.services.extraction import ExtractionStrategy, PdfTextExtractor
from study_worker.services.llm import get_llm_provider
from study_worker.workers.kinds import JobKind, build_job_kinds
from study_worker.workers.processor import JobProcessor
from study_worker.workers.retry import RetryPolicy
from study_worker.workers.scheduler import PollScheduler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    )
    # Per-request lines from the HTTP clients drown out job progress
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_scheduler(
    settings: Settings,
    store: JobStore,
    kinds: Sequence[JobKind],
    extractor: ExtractionStrategy,
    retry: RetryPolicy,
) -> PollScheduler:
    processor = JobProcessor(
        store,
        extractor,
        retry,
        min_content_length=settings.min_content_length,
        error_max_length=settings.error_message_max_length,
        atomic_claim=settings.atomic_claim,
    )
    return PollScheduler(
        store,
        processor,
        kinds,
        poll_interval=settings.poll_interval_seconds,
        batch_size_multiplier=settings.batch_size_multiplier,
        retry=retry,
        shutdown_timeout=settings.shutdown_timeout_seconds,
    )


class _FaultMonitor:
    """Loop exception handler that turns a stray exception into a stop."""

    def __init__(self, on_fault: Callable[[], None]) -> None:
        self._on_fault = on_fault
        self.faulted = False

    def __call__(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.error(
            "Unhandled error outside job processing: %s",
            context.get("message", "unknown"),
            exc_info=exc,
        )
        self.faulted = True
        self._on_fault()


async def run_worker(
    settings: Settings | None = None,
    *,
    store: JobStore | None = None,
    kinds: Sequence[JobKind] | None = None,
    extractor: ExtractionStrategy | None = None,
) -> int:
    """Run the worker until shutdown. Returns the process exit code."""
    settings = settings or get_settings()
    store = store or SqlJobStore()
    retry = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds,
    )

    logger.info(
        "%s v%s started - processing flashcards and quizzes",
        settings.app_name, settings.app_version,
    )

    try:
        await retry.run(store.ping, "database connection test")
    except Exception:
        logger.exception("Database connection failed after retries")
        await _close_store(store)
        return EXIT_FAILURE
    logger.info("Database connection successful")

    exit_code = EXIT_OK
    try:
        if kinds is None:
            kinds = build_job_kinds(settings, get_llm_provider())
        scheduler = build_scheduler(
            settings, store, kinds, extractor or PdfTextExtractor(), retry,
        )

        loop = asyncio.get_running_loop()
        monitor = _FaultMonitor(scheduler.request_stop)
        loop.set_exception_handler(monitor)
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, scheduler.request_stop)
            except NotImplementedError:
                # Not supported on Windows event loops
                pass

        await scheduler.run()
        if monitor.faulted:
            exit_code = EXIT_FAILURE
    except Exception:
        logger.exception("Worker failed")
        exit_code = EXIT_FAILURE
    finally:
        await _close_store(store)

    return exit_code


async def _close_store(store: JobStore) -> None:
    try:
        await store.close()
        logger.info("Disconnected from database")
    except Exception:
        logger.exception("Error disconnecting from database")


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(run_worker(settings)))


if __name__ == "__main__":
    main()
