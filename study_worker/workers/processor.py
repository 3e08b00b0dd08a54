# =============================================================================
# Job Processor — One Job from Claim to Terminal State
# =============================================================================
#
# STATE MACHINE (per job):
#
#   Claimed ──▶ Extracting ──▶ Generating ──▶ Persisting ──▶ Done
#      │             │              │              │
#      └─────────────┴──────┬───────┴──────────────┘
#                           ▼
#                         Failed
#
#   1. Claim       status = PROCESSING (retried on connection exhaustion)
#   2. Acquire     file reference → validate → Extraction Strategy,
#                  otherwise the inline text; must reach the minimum length
#   3. Generate    Generation Strategy → validated, non-empty payload
#   4. Persist     create artifact + children, then status = DONE + result
#                  ref (each write retried)
#   5. Fail        any exception in 1-4 lands in ONE except block, which
#                  writes status = FAILED + error (retried). If that write
#                  fails too, the job stays PROCESSING and we only log.
#
# `process()` never raises (cancellation aside), so one bad job cannot
# disturb its neighbours in the batch.
#
# KNOWN GAPS:
# - Steps 4a and 4b are separate writes. A crash between them leaves an
#   orphaned artifact and a job stuck in PROCESSING; the failure log names
#   the artifact id for manual reconciliation.
# - With atomic_claim off, two workers polling the same table can both
#   claim a job. Turn it on to make the claim conditional on PENDING.
# =============================================================================

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from study_worker.db.models import JobStatus
from study_worker.db.repository import JobStore
from study_worker.errors import GenerationError, InsufficientContentError
from study_worker.models.jobs import JobRecord
from study_worker.services.extraction import ExtractionStrategy, parse_file_reference
from study_worker.workers.kinds import JobKind
from study_worker.workers.retry import RetryPolicy

logger = logging.getLogger(__name__)


class JobState(str, enum.Enum):
    CLAIMED = "claimed"
    EXTRACTING = "extracting"
    GENERATING = "generating"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"
    # Claim matched no row: already taken by another worker, or deleted
    SKIPPED = "skipped"


@dataclass
class JobOutcome:
    """What happened to one job in one processing attempt."""

    job_id: str
    kind: str
    state: JobState
    result_ref: str | None = None
    error: str | None = None
    # True when the FAILED write itself failed and the job is stuck PROCESSING
    orphaned: bool = False


class JobProcessor:
    """Drives a single job through the state machine above."""

    def __init__(
        self,
        store: JobStore,
        extractor: ExtractionStrategy,
        retry: RetryPolicy | None = None,
        *,
        min_content_length: int = 50,
        error_max_length: int = 1000,
        atomic_claim: bool = False,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._retry = retry or RetryPolicy()
        self._min_content_length = min_content_length
        self._error_max_length = error_max_length
        self._atomic_claim = atomic_claim

    async def process(self, kind: JobKind, job: JobRecord) -> JobOutcome:
        logger.info(
            "Processing %s job %s: %s",
            kind.name, job.id, job.file_url or "(inline text)",
        )
        state = JobState.CLAIMED
        artifact_id: str | None = None

        try:
            # --- Step 1: Claim ---
            claimed = await self._retry.run(
                lambda: self._store.update_status(
                    kind,
                    job.id,
                    JobStatus.PROCESSING,
                    expected=JobStatus.PENDING if self._atomic_claim else None,
                ),
                f"update {kind.name} job status",
            )
            if not claimed:
                logger.info(
                    "%s job %s is no longer pending; skipping", kind.name, job.id,
                )
                return JobOutcome(job.id, kind.name, JobState.SKIPPED)

            # --- Step 2: Acquire text ---
            state = JobState.EXTRACTING
            text = await self._acquire_text(kind, job)

            # --- Step 3: Generate ---
            state = JobState.GENERATING
            logger.info("Generating %s with AI for job %s...", kind.display_name, job.id)
            payload = await kind.generator.generate(text, job.parameters)
            items = getattr(payload, "items", None)
            if not items:
                raise GenerationError(
                    f"Generation returned no {kind.display_name} items"
                )
            logger.info("Generated %d items for %s job %s", len(items), kind.name, job.id)

            # --- Step 4: Persist ---
            state = JobState.PERSISTING
            artifact_id = await self._retry.run(
                lambda: self._store.create_artifact(kind, job, payload),
                f"create {kind.name} artifact",
            )
            await self._retry.run(
                lambda: self._store.update_status(
                    kind, job.id, JobStatus.DONE, result_ref=artifact_id,
                ),
                f"update {kind.name} job as done",
            )

        except Exception as exc:
            return await self._fail(kind, job, state, exc, artifact_id)

        logger.info(
            "Processed %s job %s, created artifact %s", kind.name, job.id, artifact_id,
        )
        return JobOutcome(job.id, kind.name, JobState.DONE, result_ref=artifact_id)

    async def _acquire_text(self, kind: JobKind, job: JobRecord) -> str:
        if job.has_file_reference:
            if job.has_text:
                logger.warning(
                    "%s job %s has both text and a file reference; using the file",
                    kind.name, job.id,
                )
            # Raises InvalidInputError before any network access
            parse_file_reference(job.file_url)
            logger.info("Extracting PDF from %s...", job.file_url)
            text = await self._extractor.extract_text(job.file_url)
            logger.info("Extracted %d characters from PDF", len(text))
        else:
            text = job.text or ""
            logger.info("Processing text input (%d chars)", len(text))

        if len(text) < self._min_content_length:
            raise InsufficientContentError(
                f"Content too short to generate {kind.display_name} "
                f"(minimum {self._min_content_length} characters)"
            )
        return text

    def _format_error(self, exc: BaseException) -> str:
        message = str(exc).strip() or type(exc).__name__
        return message[: self._error_max_length]

    async def _fail(
        self,
        kind: JobKind,
        job: JobRecord,
        state: JobState,
        exc: Exception,
        artifact_id: str | None,
    ) -> JobOutcome:
        message = self._format_error(exc)
        logger.error(
            "Failed %s job %s during %s: %s",
            kind.name, job.id, state.value, message, exc_info=exc,
        )
        if artifact_id is not None:
            logger.error(
                "%s artifact %s was created for job %s but the job was not "
                "marked DONE; artifact is orphaned",
                kind.name, artifact_id, job.id,
            )

        try:
            await self._retry.run(
                lambda: self._store.update_status(
                    kind, job.id, JobStatus.FAILED, error=message,
                ),
                f"update {kind.name} job as failed",
            )
        except Exception:
            logger.exception(
                "Failed to update %s job %s as FAILED; job left in PROCESSING",
                kind.name, job.id,
            )
            return JobOutcome(
                job.id, kind.name, JobState.FAILED, error=message, orphaned=True,
            )

        return JobOutcome(job.id, kind.name, JobState.FAILED, error=message)
