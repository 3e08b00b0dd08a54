# =============================================================================
# Error Taxonomy
# =============================================================================
#
# Every failure the worker knows about falls into one of these classes:
#
#   WorkerError
#   ├── TransientInfraError       — connection budget exhausted (retried)
#   ├── InvalidInputError         — malformed / unsupported file reference
#   ├── InsufficientContentError  — text below the minimum length
#   ├── ExtractionError           — PDF download or parse failed
#   ├── GenerationError           — LLM call failed or returned junk
#   └── PersistenceError          — database write/read failed
#
# Only transient errors are retried (see workers/retry.py). Everything else
# fails the job at the processor boundary.
#
# Database drivers do not raise TransientInfraError themselves, so
# `is_transient_error()` also recognises the driver-level signals for a
# rejected connection: SQLSTATE 53300 (too_many_connections), Prisma's
# P2037 code, SQLAlchemy pool checkout timeouts, and the literal
# "too many connections" message.
# =============================================================================

from __future__ import annotations

from sqlalchemy.exc import TimeoutError as PoolTimeoutError

TOO_MANY_CONNECTIONS_SQLSTATE = "53300"
TOO_MANY_CONNECTIONS_CODES = frozenset({TOO_MANY_CONNECTIONS_SQLSTATE, "P2037"})


class WorkerError(Exception):
    """Base class for errors raised by the worker."""


class TransientInfraError(WorkerError):
    """The persistence layer rejected a request for lack of connections."""


class InvalidInputError(WorkerError):
    """A job's file reference is malformed or uses an unsupported scheme."""


class InsufficientContentError(WorkerError):
    """Extracted or inline text is shorter than the minimum length."""


class ExtractionError(WorkerError):
    """Text could not be obtained from the referenced document."""


class GenerationError(WorkerError):
    """The generation backend failed or produced an invalid payload."""


class PersistenceError(WorkerError):
    """A persistence operation failed for a non-transient reason."""


def _error_codes(exc: BaseException) -> set[str]:
    """Collect the error codes a driver exception may carry."""
    codes: set[str] = set()
    for attr in ("code", "sqlstate", "pgcode"):
        value = getattr(exc, attr, None)
        if isinstance(value, str):
            codes.add(value)
    return codes


def is_transient_error(exc: BaseException) -> bool:
    """
    Return True if `exc` means "the database is out of connections".

    Walks the wrapping chain (SQLAlchemy's `orig`, then `__cause__`) since
    the asyncpg error is usually buried one or two levels down.
    """
    seen: set[int] = set()
    current: BaseException | None = exc

    while current is not None and id(current) not in seen:
        seen.add(id(current))

        if isinstance(current, (TransientInfraError, PoolTimeoutError)):
            return True
        if _error_codes(current) & TOO_MANY_CONNECTIONS_CODES:
            return True
        if "too many connections" in str(current).lower():
            return True

        current = getattr(current, "orig", None) or current.__cause__

    return False
