# =============================================================================
# Retry Executor — Bounded Retry for Connection Exhaustion
# =============================================================================
#
# Wraps a single awaitable operation (usually one database round-trip) and
# retries it ONLY when the failure is transient, i.e. the database refused
# the connection (see errors.is_transient_error). Every other failure is
# propagated on the first attempt.
#
# SCHEDULE (defaults: 3 attempts, 1s base):
#   attempt 1 fails (transient) → sleep 1s
#   attempt 2 fails (transient) → sleep 2s
#   attempt 3 fails (transient) → raise the last error
#
# No sleep follows the final attempt.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from study_worker.errors import is_transient_error

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    operation_name: str = "database operation",
    max_attempts: int = 3,
    base_delay: float = 1.0,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """
    Run `operation` with up to `max_attempts` attempts.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per call.
        operation_name: Label used in retry log messages.
        max_attempts: Total attempts, including the first one.
        base_delay: Backoff unit in seconds; attempt n sleeps n × base_delay.
        is_transient: Classifier deciding which errors are retried.
        sleep: Awaitable sleep function (injected in tests).

    Returns:
        Whatever `operation` returns on its first successful attempt.

    Raises:
        The first permanent error, or the last transient error once
        attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if not is_transient(exc):
                raise
            if attempt == max_attempts:
                logger.error(
                    "%s failed after %d attempts: %s",
                    operation_name, max_attempts, exc,
                )
                raise

            delay = base_delay * attempt
            logger.warning(
                "Connection error in %s (attempt %d/%d), retrying in %.1fs: %s",
                operation_name, attempt, max_attempts, delay, exc,
            )
            await sleep(delay)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry parameters bundled for the processor and scheduler.

    `RetryPolicy.run(op, name)` is `execute_with_retry` with these
    parameters filled in.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], Awaitable[object]] = field(
        default=asyncio.sleep, compare=False, repr=False,
    )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str,
    ) -> T:
        return await execute_with_retry(
            operation,
            operation_name=operation_name,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            sleep=self.sleep,
        )
