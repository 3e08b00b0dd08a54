# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# Nothing here needs a database, an LLM or the network:
#   - FakeJobStore keeps jobs and artifacts in dicts and can be told to
#     fail the next N calls of any operation
#   - generators are AsyncMocks returning canned payloads
#   - the retry policy sleeps for zero seconds and records its delays
# =============================================================================

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from study_worker.db.models import JobStatus
from study_worker.models.artifacts import FlashcardDeck, QuizDraft
from study_worker.models.jobs import JobRecord
from study_worker.workers.kinds import JobKind, flashcard_kind, quiz_kind
from study_worker.workers.retry import RetryPolicy

_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)

STUDY_TEXT = (
    "Photosynthesis converts light energy into chemical energy. "
    "Chlorophyll absorbs mostly blue and red light, and the light reactions "
    "take place in the thylakoid membranes. The Calvin cycle then fixes "
    "carbon dioxide into sugars inside the stroma of the chloroplast."
)


class FakeJobStore:
    """In-memory JobStore. Jobs are keyed by kind name, then job id."""

    def __init__(self) -> None:
        self.jobs: dict[str, dict[str, JobRecord]] = defaultdict(dict)
        self.statuses: dict[str, JobStatus] = {}
        self.errors: dict[str, str | None] = {}
        self.results: dict[str, str] = {}
        self.artifacts: dict[str, Any] = {}
        self.fetch_calls: list[tuple[str, int]] = []
        self.status_calls: list[tuple[str, JobStatus]] = []
        self.ping_calls = 0
        self.closed = False
        self._failures: dict[str, list[BaseException]] = defaultdict(list)

    # --- setup helpers ---

    def add(self, kind: JobKind, job: JobRecord) -> JobRecord:
        self.jobs[kind.name][job.id] = job
        self.statuses[job.id] = job.status
        return job

    def fail_next(self, operation: str, *errors: BaseException) -> None:
        """Queue errors raised by the next calls of `operation`."""
        self._failures[operation].extend(errors)

    def _maybe_fail(self, operation: str) -> None:
        if self._failures[operation]:
            raise self._failures[operation].pop(0)

    # --- JobStore ---

    async def fetch_pending(self, kind: JobKind, limit: int) -> list[JobRecord]:
        self.fetch_calls.append((kind.name, limit))
        self._maybe_fail("fetch_pending")
        pending = [
            job for job in self.jobs[kind.name].values()
            if self.statuses[job.id] is JobStatus.PENDING
        ]
        pending.sort(key=lambda job: job.created_at or _EPOCH)
        return pending[:limit]

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
        self.status_calls.append((job_id, status))
        self._maybe_fail(f"update_status:{status.value}")
        if job_id not in self.statuses:
            return False
        if expected is not None and self.statuses[job_id] is not expected:
            return False

        self.statuses[job_id] = status
        if status is JobStatus.DONE:
            self.results[job_id] = result_ref
            self.errors[job_id] = None
        elif status is JobStatus.FAILED:
            self.errors[job_id] = error
        return True

    async def create_artifact(
        self, kind: JobKind, job: JobRecord, payload: Any,
    ) -> str:
        self._maybe_fail("create_artifact")
        artifact = kind.build_artifact(job, payload)
        artifact.id = str(uuid.uuid4())
        self.artifacts[artifact.id] = artifact
        return artifact.id

    async def ping(self) -> None:
        self.ping_calls += 1
        self._maybe_fail("ping")

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Stands in for asyncio.sleep; remembers the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_job(
    text: str | None = STUDY_TEXT,
    file_url: str | None = None,
    *,
    age: int = 0,
    **parameters: Any,
) -> JobRecord:
    """A PENDING job; larger `age` means created earlier."""
    params = {"user_id": "user-1", "title": "Biology 101"}
    params.update(parameters)
    return JobRecord(
        id=str(uuid.uuid4()),
        status=JobStatus.PENDING,
        text=text,
        file_url=file_url,
        parameters=params,
        created_at=_EPOCH - timedelta(minutes=age),
    )


def deck(*pairs: tuple[str, str]) -> FlashcardDeck:
    pairs = pairs or (("What is chlorophyll?", "A green pigment"),)
    return FlashcardDeck(cards=[{"front": f, "back": b} for f, b in pairs])


def quiz(count: int = 2) -> QuizDraft:
    return QuizDraft(questions=[
        {
            "type": "multiple_choice",
            "question": f"Question {i}?",
            "options": ["A", "B", "C", "D"],
            "correctAnswer": "A",
        }
        for i in range(count)
    ])


@pytest.fixture
def store() -> FakeJobStore:
    return FakeJobStore()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry(sleep: RecordingSleep) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleep)


@pytest.fixture
def flashcards() -> JobKind:
    generator = AsyncMock()
    generator.generate.return_value = deck(
        ("What is chlorophyll?", "A green pigment"),
        ("Where does the Calvin cycle run?", "In the stroma"),
    )
    return flashcard_kind(generator, concurrency=3)


@pytest.fixture
def quizzes() -> JobKind:
    generator = AsyncMock()
    generator.generate.return_value = quiz(3)
    return quiz_kind(generator, concurrency=3)


@pytest.fixture
def extractor() -> AsyncMock:
    mock = AsyncMock()
    mock.extract_text.return_value = STUDY_TEXT
    return mock
