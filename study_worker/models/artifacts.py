# =============================================================================
# Generation Payloads — Pydantic V2 Schemas
# =============================================================================
#
# The LLM's raw JSON is validated into these models before anything is
# written to the database. A payload that fails validation becomes a
# GenerationError and the job fails; nothing partial is persisted.
#
#   FlashcardDeck ── cards: [FlashcardDraft(front, back), ...]   (≥ 1)
#   QuizDraft     ── questions: [QuestionDraft(...), ...]        (≥ 1)
# =============================================================================

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FlashcardDraft(BaseModel):
    """One generated card, before it is given an order and persisted."""

    front: str = Field(min_length=1)
    back: str = Field(min_length=1)

    @field_validator("front", "back", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class FlashcardDeck(BaseModel):
    cards: list[FlashcardDraft] = Field(min_length=1)

    @property
    def items(self) -> list[FlashcardDraft]:
        return self.cards


class QuestionDraft(BaseModel):
    """
    One generated quiz question.

    Accepts the camelCase `correctAnswer` the prompt asks for. Non-string
    answers (lists for multi-select, booleans for true/false) are stored as
    JSON text.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: str = "MULTIPLE_CHOICE"
    question: str = Field(min_length=1)
    options: list[str] = Field(default_factory=list)
    correct_answer: str = Field(alias="correctAnswer")

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> Any:
        # "multiple choice" / "true-false" → MULTIPLE_CHOICE / TRUE_FALSE
        if isinstance(value, str) and value.strip():
            return "_".join(value.replace("-", " ").split()).upper()
        return "MULTIPLE_CHOICE"

    @field_validator("question", mode="before")
    @classmethod
    def _strip_question(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(option) for option in value]
        return value

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _stringify_answer(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value
        return json.dumps(value)


class QuizDraft(BaseModel):
    questions: list[QuestionDraft] = Field(min_length=1)

    @property
    def items(self) -> list[QuestionDraft]:
        return self.questions


ArtifactPayload = FlashcardDeck | QuizDraft
