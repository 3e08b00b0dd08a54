# =============================================================================
# Unit Tests — Job Kinds & Artifact Mappers
# =============================================================================

from __future__ import annotations

from unittest.mock import MagicMock

from conftest import deck, make_job, quiz

from study_worker.config import Settings
from study_worker.db.models import FlashcardJob, QuizJob
from study_worker.workers.kinds import (
    build_flashcard_set,
    build_job_kinds,
    build_quiz,
    flashcard_kind,
    quiz_kind,
)


class TestDescriptors:
    def test_flashcard_kind(self):
        kind = flashcard_kind(MagicMock(), concurrency=4)
        assert kind.job_model is FlashcardJob
        assert kind.table_name == "flashcard_jobs"
        assert kind.result_field == "flashcard_set_id"
        assert kind.fetch_limit(2) == 8

    def test_quiz_kind(self):
        kind = quiz_kind(MagicMock())
        assert kind.job_model is QuizJob
        assert kind.result_field == "quiz_id"
        assert "number_of_questions" in kind.parameter_fields
        assert kind.fetch_limit() == 6

    def test_polling_order_and_concurrency(self):
        settings = Settings(flashcard_concurrency=2, quiz_concurrency=5)
        kinds = build_job_kinds(settings, MagicMock())

        assert [kind.name for kind in kinds] == ["flashcard", "quiz"]
        assert [kind.concurrency for kind in kinds] == [2, 5]


class TestArtifactMappers:
    def test_flashcard_set_copies_job_fields(self):
        job = make_job(subject="Biology", description="Chapter 3")
        card_set = build_flashcard_set(job, deck(("Q1", "A1"), ("Q2", "A2"), ("Q3", "A3")))

        assert card_set.user_id == "user-1"
        assert card_set.title == "Biology 101"
        assert card_set.subject == "Biology"
        assert card_set.description == "Chapter 3"
        assert [(c.front, c.back, c.order) for c in card_set.cards] == [
            ("Q1", "A1", 0), ("Q2", "A2", 1), ("Q3", "A3", 2),
        ]

    def test_quiz_defaults(self):
        built = build_quiz(make_job(), quiz(2))

        assert built.subject == "General"
        assert built.description == "Generated quiz with 2 questions (medium difficulty)"
        assert [q.order for q in built.questions] == [0, 1]
        assert built.questions[0].type == "MULTIPLE_CHOICE"
        assert built.questions[0].options == ["A", "B", "C", "D"]

    def test_quiz_description_counts_generated_questions(self):
        job = make_job(subject="Chemistry", number_of_questions="10", difficulty="hard")
        built = build_quiz(job, quiz(7))

        assert built.subject == "Chemistry"
        assert built.description == "Generated quiz with 7 questions (hard difficulty)"
