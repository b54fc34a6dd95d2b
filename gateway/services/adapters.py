# =============================================================================
# Provider Adapters — Pluggable Completion Backends
# =============================================================================
#
# One adapter per upstream provider, all satisfying the LlmAdapter protocol:
#
#   async complete(request) -> AdapterCompletion(choices, usage)
#
# Adapters return ONLY choices and usage. The response id, creation time and
# echoed model id are composed once, by the CompletionOrchestrator, so there
# is a single source for those fields however many adapters exist.
#
# ARCHITECTURE:
#   LlmAdapter (Protocol)
#   ├── MockAdapter        — deterministic, no network (dev + tests)
#   ├── OpenAIAdapter      — openai SDK; also serves Google through its
#   │                         OpenAI-compatible endpoint
#   └── AnthropicAdapter   — anthropic SDK (system prompt as top-level kwarg)
#
#   AdapterDispatch        — lookup table provider id -> adapter instance
#   build_adapter_dispatch — builds the table from settings ("mock"/"live")
#
# SDK clients own their timeouts and connection pools; the gateway does not
# wrap them in its own.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol

from gateway.config import Settings
from gateway.errors import ServiceError
from gateway.models.requests import CompletionRequest
from gateway.models.responses import AssistantMessage, CompletionChoice, CompletionUsage
from gateway.services.registry import SUPPORTED_PROVIDERS

logger = logging.getLogger(__name__)

_FINISH_REASONS = {"stop", "length", "content_filter"}

# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class AdapterCompletion:
    """What an adapter hands back: choices and token usage, nothing else."""

    choices: list[CompletionChoice]
    usage: CompletionUsage


def make_usage(prompt_tokens: int, completion_tokens: int) -> CompletionUsage:
    return CompletionUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LlmAdapter(Protocol):
    """Uniform completion contract implemented by every provider adapter."""

    async def complete(self, request: CompletionRequest) -> AdapterCompletion:
        """
        Run one chat completion upstream.

        Args:
            request: Validated request. `model` is the gateway model id.

        Returns:
            AdapterCompletion with at least one choice.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Mock
# ---------------------------------------------------------------------------


class MockAdapter:
    """
    Deterministic adapter for development and tests.

    Echoes the last user message. Token counts are whitespace word counts,
    and max_tokens truncates the reply with finish_reason="length".
    """

    async def complete(self, request: CompletionRequest) -> AdapterCompletion:
        last_user = next(
            (m.content for m in reversed(request.messages) if m.role == "user"),
            "",
        )
        words = (
            f'This is a mock response for model "{request.model}". '
            f"You said: {last_user}"
        ).split()

        finish_reason = "stop"
        if request.max_tokens is not None and len(words) > request.max_tokens:
            words = words[: request.max_tokens]
            finish_reason = "length"

        prompt_tokens = sum(len(m.content.split()) for m in request.messages)
        return AdapterCompletion(
            choices=[
                CompletionChoice(
                    index=0,
                    message=AssistantMessage(content=" ".join(words)),
                    finish_reason=finish_reason,
                )
            ],
            usage=make_usage(prompt_tokens, len(words)),
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI (and OpenAI-compatible endpoints)
# ---------------------------------------------------------------------------


class OpenAIAdapter:
    """
    Adapter for the OpenAI chat completions API.

    Any OpenAI-compatible endpoint works through base_url; Google Gemini is
    served this way (see Settings.google_base_url).
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any = None,
        provider: str = "openai",
    ) -> None:
        self._provider = provider
        if client is not None:
            self._client = client
            return

        from openai import AsyncOpenAI

        if not api_key:
            raise ValueError(
                f"No API key configured for provider '{provider}'. "
                "Set the matching *_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url
        self._client = AsyncOpenAI(**client_kwargs)

        logger.info(
            "Initialized OpenAIAdapter (provider=%s, base_url=%s)",
            provider,
            base_url or "https://api.openai.com/v1",
        )

    async def complete(self, request: CompletionRequest) -> AdapterCompletion:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": [m.model_dump() for m in request.messages],
        }
        # Only forward what the caller set; provider defaults apply otherwise
        optional = {
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
            "top_p": request.top_p,
            "frequency_penalty": request.frequency_penalty,
            "presence_penalty": request.presence_penalty,
            "stop": request.stop_sequences(),
        }
        kwargs.update({k: v for k, v in optional.items() if v is not None})

        response = await self._client.chat.completions.create(**kwargs)

        choices = [
            CompletionChoice(
                index=choice.index,
                message=AssistantMessage(content=choice.message.content or ""),
                finish_reason=(
                    choice.finish_reason
                    if choice.finish_reason in _FINISH_REASONS
                    else "stop"
                ),
            )
            for choice in response.choices
        ]

        usage = response.usage
        return AdapterCompletion(
            choices=choices,
            usage=make_usage(
                usage.prompt_tokens if usage else 0,
                usage.completion_tokens if usage else 0,
            ),
        )


# ---------------------------------------------------------------------------
# Implementation 3: Anthropic
# ---------------------------------------------------------------------------

_ANTHROPIC_STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "refusal": "content_filter",
}


class AnthropicAdapter:
    """
    Adapter for the Anthropic Messages API.

    KEY API DIFFERENCE: Anthropic takes the system prompt as a top-level
    `system=` kwarg, not as a message, and requires max_tokens on every call.
    frequency/presence penalties have no Anthropic equivalent and are dropped.
    """

    def __init__(
        self,
        api_key: str | None = None,
        default_max_tokens: int = 1024,
        client: Any = None,
    ) -> None:
        self._default_max_tokens = default_max_tokens
        if client is not None:
            self._client = client
            return

        from anthropic import AsyncAnthropic

        if not api_key:
            raise ValueError(
                "No Anthropic API key configured. Set ANTHROPIC_API_KEY in .env"
            )
        self._client = AsyncAnthropic(api_key=api_key)
        logger.info("Initialized AnthropicAdapter")

    async def complete(self, request: CompletionRequest) -> AdapterCompletion:
        system_parts = [m.content for m in request.messages if m.role == "system"]
        messages = [
            {"role": m.role, "content": m.content}
            for m in request.messages
            if m.role != "system"
        ]

        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens or self._default_max_tokens,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.top_p is not None:
            kwargs["top_p"] = request.top_p
        stop = request.stop_sequences()
        if stop:
            kwargs["stop_sequences"] = stop

        response = await self._client.messages.create(**kwargs)

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )
        return AdapterCompletion(
            choices=[
                CompletionChoice(
                    index=0,
                    message=AssistantMessage(content=content),
                    finish_reason=_ANTHROPIC_STOP_REASONS.get(
                        response.stop_reason, "stop",
                    ),
                )
            ],
            usage=make_usage(
                response.usage.input_tokens, response.usage.output_tokens,
            ),
        )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class AdapterDispatch:
    """
    Lookup table from provider id to adapter instance.

    Provider ids outside SUPPORTED_PROVIDERS, or supported ones with no
    adapter registered, are rejected with 400.
    """

    def __init__(self, adapters: Mapping[str, LlmAdapter]) -> None:
        unknown = set(adapters) - SUPPORTED_PROVIDERS
        if unknown:
            raise ValueError(f"Adapters registered for unknown providers: {sorted(unknown)}")
        self._adapters = MappingProxyType(dict(adapters))

    def get_adapter_for_provider(self, provider_id: str) -> LlmAdapter:
        if provider_id not in SUPPORTED_PROVIDERS:
            raise ServiceError(f"Unsupported provider: {provider_id}", 400)
        adapter = self._adapters.get(provider_id)
        if adapter is None:
            raise ServiceError(f"Unsupported provider: {provider_id}", 400)
        return adapter


def build_adapter_dispatch(settings: Settings) -> AdapterDispatch:
    """
    Build the provider table from settings.

    "mock": one shared MockAdapter for every provider.
    "live": real SDK adapters; raises ValueError if an API key is missing.
    """
    if settings.adapter_mode == "mock":
        mock = MockAdapter()
        logger.info("Adapter mode: mock (providers=%s)", sorted(SUPPORTED_PROVIDERS))
        return AdapterDispatch({provider: mock for provider in SUPPORTED_PROVIDERS})

    return AdapterDispatch({
        "openai": OpenAIAdapter(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        ),
        "anthropic": AnthropicAdapter(
            api_key=settings.anthropic_api_key,
            default_max_tokens=settings.anthropic_default_max_tokens,
        ),
        "google": OpenAIAdapter(
            api_key=settings.google_api_key,
            base_url=settings.google_base_url,
            provider="google",
        ),
    })
