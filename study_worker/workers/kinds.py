# =============================================================================
# Job Kinds — Flashcard and Quiz Descriptors
# =============================================================================
#
# Flashcard and quiz jobs go through identical control flow; they differ
# only in data. A JobKind captures that data:
#
#   ┌────────────┬─────────────────┬──────────────────┬──────────────┐
#   │ kind       │ job table       │ result column    │ generator    │
#   ├────────────┼─────────────────┼──────────────────┼──────────────┤
#   │ flashcard  │ flashcard_jobs  │ flashcard_set_id │ Flashcard... │
#   │ quiz       │ quiz_jobs       │ quiz_id          │ QuizGenerator│
#   └────────────┴─────────────────┴──────────────────┴──────────────┘
#
# plus the parameter columns copied into JobRecord.parameters and the
# mapper that turns a validated payload into ORM rows (artifact + ordered
# children). The processor, scheduler and repository are written once
# against this descriptor.
# =============================================================================

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from study_worker.config import Settings
from study_worker.db.models import (
    Base,
    Flashcard,
    FlashcardJob,
    FlashcardSet,
    JobColumnsMixin,
    Quiz,
    QuizJob,
    QuizQuestion,
)
from study_worker.models.artifacts import FlashcardDeck, QuizDraft
from study_worker.models.jobs import JobRecord
from study_worker.services.generation import (
    FlashcardGenerator,
    GenerationStrategy,
    QuizGenerator,
    parse_quiz_parameters,
)
from study_worker.services.llm import LLMProvider

ArtifactBuilder = Callable[[JobRecord, Any], Base]


@dataclass(frozen=True)
class JobKind:
    """Everything that differs between one job type and another."""

    name: str
    job_model: type[JobColumnsMixin]
    result_field: str
    parameter_fields: tuple[str, ...]
    generator: GenerationStrategy
    build_artifact: ArtifactBuilder
    concurrency: int = 3
    display_name: str = ""  # used in user-facing error messages

    @property
    def table_name(self) -> str:
        return self.job_model.__tablename__

    def fetch_limit(self, batch_size_multiplier: int = 2) -> int:
        return self.concurrency * batch_size_multiplier


# ---------------------------------------------------------------------------
# Artifact Mappers
# ---------------------------------------------------------------------------


def build_flashcard_set(job: JobRecord, deck: FlashcardDeck) -> FlashcardSet:
    params = job.parameters
    return FlashcardSet(
        user_id=params.get("user_id"),
        title=params.get("title"),
        subject=params.get("subject"),
        description=params.get("description"),
        cards=[
            Flashcard(front=card.front, back=card.back, order=index)
            for index, card in enumerate(deck.cards)
        ],
    )


def build_quiz(job: JobRecord, draft: QuizDraft) -> Quiz:
    params = job.parameters
    _, difficulty, _ = parse_quiz_parameters(params)
    count = len(draft.questions)
    return Quiz(
        user_id=params.get("user_id"),
        title=params.get("title"),
        subject=params.get("subject") or "General",
        description=f"Generated quiz with {count} questions ({difficulty} difficulty)",
        questions=[
            QuizQuestion(
                type=question.type,
                question=question.question,
                options=list(question.options),
                correct_answer=question.correct_answer,
                order=index,
            )
            for index, question in enumerate(draft.questions)
        ],
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def flashcard_kind(generator: GenerationStrategy, concurrency: int = 3) -> JobKind:
    return JobKind(
        name="flashcard",
        job_model=FlashcardJob,
        result_field="flashcard_set_id",
        parameter_fields=("user_id", "title", "subject", "description"),
        generator=generator,
        build_artifact=build_flashcard_set,
        concurrency=concurrency,
        display_name="flashcards",
    )


def quiz_kind(generator: GenerationStrategy, concurrency: int = 3) -> JobKind:
    return JobKind(
        name="quiz",
        job_model=QuizJob,
        result_field="quiz_id",
        parameter_fields=(
            "user_id",
            "title",
            "subject",
            "number_of_questions",
            "difficulty",
            "question_types",
        ),
        generator=generator,
        build_artifact=build_quiz,
        concurrency=concurrency,
        display_name="quiz",
    )


def build_job_kinds(settings: Settings, llm: LLMProvider) -> list[JobKind]:
    """The kinds polled by the worker, in polling order."""
    return [
        flashcard_kind(FlashcardGenerator(llm), settings.flashcard_concurrency),
        quiz_kind(QuizGenerator(llm), settings.quiz_concurrency),
    ]
