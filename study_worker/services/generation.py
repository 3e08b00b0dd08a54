# =============================================================================
# Generation Strategies — Study Text → Flashcards / Quiz
# =============================================================================
#
# Each strategy turns study text plus job parameters into a validated
# payload (models/artifacts.py). The processor only sees the
# `GenerationStrategy` protocol; which strategy runs is decided by the job
# kind (workers/kinds.py).
#
# FLOW:
#   text ──truncate──▶ prompt ──LLM──▶ raw text ──strip fences──▶ JSON
#        ──pydantic──▶ FlashcardDeck | QuizDraft
#
# Every failure on this path (provider error, quota, malformed JSON, empty
# list, missing fields) surfaces as GenerationError.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from pydantic import ValidationError

from study_worker.config import settings
from study_worker.errors import GenerationError
from study_worker.models.artifacts import ArtifactPayload, FlashcardDeck, QuizDraft
from study_worker.services.llm import LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_NUMBER_OF_QUESTIONS = 10
DEFAULT_DIFFICULTY = "medium"
DEFAULT_QUESTION_TYPES = ("multiple_choice",)

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


class GenerationStrategy(Protocol):
    """Produces a validated artifact payload from study text."""

    async def generate(
        self, text: str, parameters: dict[str, Any],
    ) -> ArtifactPayload:
        ...


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

FLASHCARD_SYSTEM_PROMPT = """\
You are an API that outputs ONLY raw JSON.

RULES:
- Output valid JSON ONLY
- No markdown, no code blocks, no comments, no explanations
- Must be exactly an array
- IGNORE all metadata, including authors, dates, page numbers, headers, and \
footers. Focus ONLY on the instructional course material.

FORMAT:
[
  {"front": "question", "back": "answer"}
]"""

QUIZ_SYSTEM_PROMPT = """\
You are an API that outputs ONLY raw JSON.

RULES:
- Output valid JSON ONLY
- No markdown, no code blocks, no comments, no explanations
- Must be exactly one object with a "questions" array
- IGNORE all metadata, including authors, dates, page numbers, headers, and \
footers. Focus ONLY on the instructional course material.
- "options" is required for multiple_choice questions and empty otherwise

FORMAT:
{
  "questions": [
    {
      "type": "multiple_choice",
      "question": "question text",
      "options": ["A", "B", "C", "D"],
      "correctAnswer": "A"
    }
  ]
}"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_json_output(raw: str) -> Any:
    """Parse model output as JSON, tolerating markdown code fences."""
    cleaned = _FENCE_PATTERN.sub("", raw).strip()
    if not cleaned:
        raise GenerationError("Model returned an empty response")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Model returned invalid JSON: {exc}") from exc


def parse_quiz_parameters(parameters: dict[str, Any]) -> tuple[int, str, list[str]]:
    """
    Read quiz settings from job parameters, with lenient defaults.

    `number_of_questions` may arrive as text; anything unparseable or
    non-positive falls back to 10. `question_types` is comma-separated.
    """
    try:
        count = int(parameters.get("number_of_questions") or 0)
    except (TypeError, ValueError):
        count = 0
    if count <= 0:
        count = DEFAULT_NUMBER_OF_QUESTIONS

    difficulty = (parameters.get("difficulty") or "").strip() or DEFAULT_DIFFICULTY

    raw_types = parameters.get("question_types") or ""
    question_types = [t.strip() for t in raw_types.split(",") if t.strip()]
    if not question_types:
        question_types = list(DEFAULT_QUESTION_TYPES)

    return count, difficulty, question_types


class _LLMGenerator:
    """Shared LLM call + truncation for the concrete strategies."""

    def __init__(
        self,
        llm: LLMProvider,
        max_input_chars: int | None = None,
    ) -> None:
        self._llm = llm
        self._max_input_chars = max_input_chars or settings.generation_max_input_chars

    def _truncate(self, text: str) -> str:
        if len(text) > self._max_input_chars:
            logger.info(
                "Truncating study text from %d to %d characters",
                len(text), self._max_input_chars,
            )
            return text[: self._max_input_chars]
        return text

    async def _complete(self, system: str, prompt: str) -> str:
        try:
            response = await self._llm.complete(system=system, prompt=prompt)
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(f"LLM request failed: {exc}") from exc

        logger.debug(
            "LLM completion: model=%s, input_tokens=%d, output_tokens=%d",
            response.model, response.input_tokens, response.output_tokens,
        )
        return response.content


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class FlashcardGenerator(_LLMGenerator):
    """Generates a flashcard deck. Job parameters are not used."""

    async def generate(
        self, text: str, parameters: dict[str, Any],
    ) -> FlashcardDeck:
        prompt = (
            "Convert the following text into flashcards.\n\n"
            f"TEXT:\n\n{self._truncate(text)}"
        )
        data = parse_json_output(await self._complete(FLASHCARD_SYSTEM_PROMPT, prompt))

        # Some models wrap the array: {"flashcards": [...]} / {"cards": [...]}
        if isinstance(data, dict):
            data = data.get("cards", data.get("flashcards", data))

        try:
            return FlashcardDeck.model_validate({"cards": data})
        except ValidationError as exc:
            raise GenerationError(
                f"Model output is not a valid flashcard list: {exc}"
            ) from exc


class QuizGenerator(_LLMGenerator):
    """Generates a quiz honouring question count, difficulty and types."""

    async def generate(
        self, text: str, parameters: dict[str, Any],
    ) -> QuizDraft:
        count, difficulty, question_types = parse_quiz_parameters(parameters)
        logger.info(
            "Quiz parameters: %d questions, %s difficulty, types: %s",
            count, difficulty, ", ".join(question_types),
        )

        prompt = (
            f"Create a quiz with exactly {count} questions of {difficulty} "
            f"difficulty from the following text.\n"
            f"Allowed question types: {', '.join(question_types)}.\n\n"
            f"TEXT:\n\n{self._truncate(text)}"
        )
        data = parse_json_output(await self._complete(QUIZ_SYSTEM_PROMPT, prompt))

        if isinstance(data, list):
            data = {"questions": data}

        try:
            return QuizDraft.model_validate(data)
        except ValidationError as exc:
            raise GenerationError(
                f"Model output is not a valid quiz: {exc}"
            ) from exc
