# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# Jobs are created by a web app (outside this worker) in PENDING state.
# The worker consumes them and writes the generated study artifacts.
#
# This is the worker's own snake_case schema. A database laid out with
# Prisma-style camelCase names (quiz_job, "fileUrl", "createdAt", ...)
# needs a migration, or explicit mapped_column("fileUrl", ...) names,
# before this worker can read it.
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────┐        ┌──────────────────┐      ┌──────────────┐
# │ flashcard_jobs   │──0..1─▶│ flashcard_sets   │─1:N─▶│ flashcards   │
# ├──────────────────┤        ├──────────────────┤      ├──────────────┤
# │ id, status       │        │ id, user_id      │      │ front, back  │
# │ file_url | text  │        │ title, subject   │      │ order        │
# │ flashcard_set_id │        │ description      │      └──────────────┘
# │ error            │        └──────────────────┘
# └──────────────────┘
#
# ┌──────────────────┐        ┌──────────────────┐      ┌────────────────┐
# │ quiz_jobs        │──0..1─▶│ quizzes          │─1:N─▶│ quiz_questions │
# ├──────────────────┤        ├──────────────────┤      ├────────────────┤
# │ id, status       │        │ id, user_id      │      │ type, question │
# │ file_url | text  │        │ title, subject   │      │ options (json) │
# │ number_of_quest. │        │ description      │      │ correct_answer │
# │ difficulty, ...  │        └──────────────────┘      │ order          │
# │ quiz_id, error   │                                  └────────────────┘
# └──────────────────┘
#
# Invariants maintained by the worker:
#   - result ref (flashcard_set_id / quiz_id) is set iff status == DONE
#   - error is set iff status == FAILED
#   - DONE and FAILED are terminal
#
# The worker never creates or migrates tables; the deploying web app
# provisions this schema before the worker starts.
# =============================================================================

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all worker tables."""

    pass


class JobStatus(str, enum.Enum):
    """
    Job lifecycle.

        PENDING → PROCESSING → DONE
                             → FAILED

    DONE and FAILED are terminal. Values are stored upper-case to match the
    rows the web app writes.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------
# Both job tables share the core columns through this mixin. Each job has
# exactly one input: inline `text` or a `file_url` reference.
# ---------------------------------------------------------------------------


class JobColumnsMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Input: exactly one of these is populated
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status"),
        nullable=False,
        default=JobStatus.PENDING,
    )

    # Set only when status == FAILED
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class FlashcardJob(JobColumnsMixin, Base):
    """A request to turn study material into a flashcard set."""

    __tablename__ = "flashcard_jobs"

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Set only when status == DONE
    flashcard_set_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("flashcard_sets.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_flashcard_jobs_status_created_at", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<FlashcardJob(id={self.id}, status={self.status})>"


class QuizJob(JobColumnsMixin, Base):
    """A request to turn study material into a quiz."""

    __tablename__ = "quiz_jobs"

    # Stored as text by the web app; parsed leniently by the generator
    number_of_questions: Mapped[str | None] = mapped_column(String(16), nullable=True)
    difficulty: Mapped[str | None] = mapped_column(String(32), nullable=True)
    question_types: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Set only when status == DONE
    quiz_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("quizzes.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_quiz_jobs_status_created_at", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<QuizJob(id={self.id}, status={self.status})>"


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------
# Children carry an explicit `order` (0-based generation index). The Python
# attribute is `order`; it is quoted by SQLAlchemy since ORDER is reserved.
# ---------------------------------------------------------------------------


class FlashcardSet(Base):
    __tablename__ = "flashcard_sets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    cards: Mapped[list["Flashcard"]] = relationship(
        "Flashcard",
        back_populates="flashcard_set",
        cascade="all, delete-orphan",
        order_by="Flashcard.order",
    )


class Flashcard(Base):
    __tablename__ = "flashcards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    flashcard_set_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("flashcard_sets.id", ondelete="CASCADE"),
        nullable=False,
    )
    front: Mapped[str] = mapped_column(Text, nullable=False)
    back: Mapped[str] = mapped_column(Text, nullable=False)
    order: Mapped[int] = mapped_column("order", Integer, nullable=False)

    flashcard_set: Mapped["FlashcardSet"] = relationship(
        "FlashcardSet", back_populates="cards",
    )


class Quiz(Base):
    __tablename__ = "quizzes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    questions: Mapped[list["QuizQuestion"]] = relationship(
        "QuizQuestion",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="QuizQuestion.order",
    )


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    quiz_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("quizzes.id", ondelete="CASCADE"),
        nullable=False,
    )
    # e.g. MULTIPLE_CHOICE, TRUE_FALSE, SHORT_ANSWER
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)
    order: Mapped[int] = mapped_column("order", Integer, nullable=False)

    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="questions")
