# =============================================================================
# Persistence Gateway — Job & Artifact Storage
# =============================================================================
#
# The worker core talks to the database only through the `JobStore`
# protocol:
#
#   fetch_pending(kind, limit)      oldest-first PENDING jobs
#   update_status(kind, id, ...)    single-row status write
#   create_artifact(kind, job, p)   artifact + ordered children, one txn
#   ping()                          SELECT 1
#   close()                         release pooled connections
#
# `SqlJobStore` implements it with async SQLAlchemy. Each call opens its own
# short-lived session so a pooled connection is held for one round-trip
# only. Retrying is the caller's job (workers/retry.py): transient driver
# errors propagate unchanged so they can be classified, every other
# SQLAlchemy error is raised as PersistenceError.
#
# CLAIM SEMANTICS:
# update_status(..., expected=JobStatus.PENDING) adds
# `AND status = 'PENDING'` to the UPDATE and reports whether a row changed.
# Without `expected` the update is unconditional.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from study_worker.db.engine import dispose_engine, get_session
from study_worker.db.models import JobStatus
from study_worker.errors import PersistenceError, is_transient_error
from study_worker.models.jobs import JobRecord

if TYPE_CHECKING:
    from study_worker.workers.kinds import JobKind

logger = logging.getLogger(__name__)


class JobStore(Protocol):
    """Storage operations the worker core depends on."""

    async def fetch_pending(self, kind: JobKind, limit: int) -> list[JobRecord]:
        ...

    async def update_status(
        self,
        kind: JobKind,
        job_id: str,
        status: JobStatus,
        *,
        result_ref: str | None = None,
        error: str | None = None,
        expected: JobStatus | None = None,
    ) -> bool:
        ...

    async def create_artifact(
        self, kind: JobKind, job: JobRecord, payload: Any,
    ) -> str:
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...


class SqlJobStore:
    """JobStore backed by PostgreSQL through async SQLAlchemy."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with get_session(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            # Connection exhaustion must reach the retry executor unchanged
            if is_transient_error(exc):
                raise
            raise PersistenceError(f"Database error: {exc}") from exc

    async def fetch_pending(self, kind: JobKind, limit: int) -> list[JobRecord]:
        model = kind.job_model
        stmt = (
            select(model)
            .where(model.status == JobStatus.PENDING)
            .order_by(model.created_at.asc())
            .limit(limit)
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            JobRecord(
                id=row.id,
                status=row.status,
                text=row.text,
                file_url=row.file_url,
                parameters={
                    field: getattr(row, field) for field in kind.parameter_fields
                },
                created_at=row.created_at,
            )
            for row in rows
        ]

    async def update_status(
        self,
        kind: JobKind,
        job_id: str,
        status: JobStatus,
        *,
        result_ref: str | None = None,
        error: str | None = None,
        expected: JobStatus | None = None,
    ) -> bool:
        model = kind.job_model
        values: dict[str, Any] = {"status": status}
        if status is JobStatus.DONE:
            values[kind.result_field] = result_ref
            values["error"] = None
        elif status is JobStatus.FAILED:
            values["error"] = error

        stmt = update(model).where(model.id == job_id)
        if expected is not None:
            stmt = stmt.where(model.status == expected)

        async with self._session() as session:
            result = await session.execute(stmt.values(**values))

        return result.rowcount > 0

    async def create_artifact(
        self, kind: JobKind, job: JobRecord, payload: Any,
    ) -> str:
        artifact = kind.build_artifact(job, payload)
        async with self._session() as session:
            session.add(artifact)
            await session.flush()
            artifact_id = artifact.id

        logger.debug(
            "Created %s artifact %s for job %s", kind.name, artifact_id, job.id,
        )
        return artifact_id

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))

    async def close(self) -> None:
        await dispose_engine()
