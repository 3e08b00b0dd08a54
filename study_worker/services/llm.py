# =============================================================================
# Multi-Provider LLM Abstraction — Pluggable AI Backend
# =============================================================================
#
# The generators send one request shape: a system prompt that pins the
# JSON output format, plus one user prompt carrying the study text. Each
# provider maps that onto its SDK:
#
#   AnthropicProvider        — system= top-level kwarg, text blocks joined
#   OpenAICompatibleProvider — leading {"role": "system"} message
#
# Model, temperature and max_tokens come from config (LLM_*). Switching to
# Gemini, DeepSeek, Qwen, ... is a config change via the OpenAI-compatible
# provider.
#
# The generators in generation.py depend only on the `LLMProvider`
# protocol; tests pass an AsyncMock with a `complete()` method.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from study_worker.config import settings

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Normalised completion result from any provider."""

    content: str           # The generated text
    model: str             # Model identifier reported by the provider
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


class LLMProvider(Protocol):
    """What the generation strategies need from a model backend."""

    async def complete(self, system: str, prompt: str) -> LLMResponse:
        """
        Run a single-turn completion.

        Args:
            system: Instructions, including the required JSON format.
            prompt: The user turn (task + study text).
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """Claude via the native async Anthropic SDK."""

    def __init__(self) -> None:
        from anthropic import AsyncAnthropic

        api_key = settings.llm_api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client: Any = AsyncAnthropic(api_key=api_key)
        self._model = settings.llm_model
        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(self, system: str, prompt: str) -> LLMResponse:
        response = await self._client.messages.create(
            model=self._model,
            system=system,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )

        # Long outputs may arrive split over several text blocks
        content = "".join(
            block.text for block in response.content if block.type == "text"
        )
        if response.stop_reason == "max_tokens":
            logger.warning(
                "Completion hit LLM_MAX_TOKENS (%d); output is likely truncated",
                settings.llm_max_tokens,
            )

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Any API following the OpenAI chat-completions format.

        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://generativelanguage.googleapis.com/v1beta/openai/
        LLM_API_KEY=your-key
        LLM_MODEL=gemini-2.5-flash
    """

    def __init__(self) -> None:
        from openai import AsyncOpenAI

        api_key = settings.llm_api_key or settings.openai_api_key
        if not api_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": api_key}
        if settings.llm_base_url:
            client_kwargs["base_url"] = settings.llm_base_url

        self._client: Any = AsyncOpenAI(**client_kwargs)
        self._model = settings.llm_model
        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            settings.llm_base_url or "https://api.openai.com/v1",
        )

    async def complete(self, system: str, prompt: str) -> LLMResponse:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )

        choice = response.choices[0]
        if choice.finish_reason == "length":
            logger.warning(
                "Completion hit LLM_MAX_TOKENS (%d); output is likely truncated",
                settings.llm_max_tokens,
            )

        # Some compatible backends omit usage entirely
        usage = response.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Return the configured LLM provider (lazy singleton).

    - "anthropic" → AnthropicProvider
    - "openai_compatible" → OpenAICompatibleProvider
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        elif settings.llm_provider == "anthropic":
            _provider = AnthropicProvider()
        else:
            raise ValueError(
                f"Unknown LLM provider '{settings.llm_provider}'. "
                "Supported: 'anthropic', 'openai_compatible'"
            )
    return _provider
