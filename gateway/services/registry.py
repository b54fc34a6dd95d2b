# =============================================================================
# Model Registry — Supported Models, Providers, Limits, Pricing
# =============================================================================
#
# Canonical catalogue of the models the gateway accepts. A model id is the
# only key used to resolve a model; its provider decides which adapter
# serves it.
#
# The registry is an explicitly constructed, read-only object. main.py builds
# default_registry() once at startup and injects it into the validator and
# orchestrator. Tests pass a smaller ModelRegistry through the same
# constructors.
#
# Pricing is USD per 1K tokens (provider list prices).
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType

SUPPORTED_PROVIDERS: frozenset[str] = frozenset({"anthropic", "google", "openai"})

# ---------------------------------------------------------------------------
# Global parameter bounds (model independent)
# ---------------------------------------------------------------------------
# max_tokens is bounded by the largest context window in the catalogue here;
# the tighter per-model ceiling is enforced by the orchestrator.
# ---------------------------------------------------------------------------
PARAMETER_LIMITS: dict[str, dict[str, float]] = {
    "temperature": {"min": 0, "max": 2},
    "top_p": {"min": 0, "max": 1},
    "frequency_penalty": {"min": -2, "max": 2},
    "presence_penalty": {"min": -2, "max": 2},
    "max_tokens": {"min": 1, "max": 200_000},
    "stop_sequences": {"max": 4},
}

# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelPricing:
    """USD per 1K tokens."""

    input_per_1k: float
    output_per_1k: float


@dataclass(frozen=True)
class ModelConfig:
    """Immutable registry entry for one model id."""

    id: str
    label: str
    provider: str
    description: str
    context_window: int
    max_tokens: int
    pricing: ModelPricing
    supports_streaming: bool = True
    supports_vision: bool = False
    supports_functions: bool = False
    deprecated: bool = False

    def estimate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Estimated USD cost of one call at list price."""
        return (
            self.pricing.input_per_1k * prompt_tokens / 1000
            + self.pricing.output_per_1k * completion_tokens / 1000
        )


class ModelRegistry:
    """
    Read-only mapping of model id -> ModelConfig.

    Raises ValueError at construction for duplicate ids or providers outside
    SUPPORTED_PROVIDERS, so a bad catalogue fails at startup rather than on
    the first request.
    """

    def __init__(self, models: Iterable[ModelConfig]) -> None:
        table: dict[str, ModelConfig] = {}
        for model in models:
            if model.id in table:
                raise ValueError(f"Duplicate model id in registry: {model.id}")
            if model.provider not in SUPPORTED_PROVIDERS:
                raise ValueError(
                    f"Model {model.id} has unsupported provider "
                    f"'{model.provider}'. Supported: {sorted(SUPPORTED_PROVIDERS)}"
                )
            table[model.id] = model
        self._models = MappingProxyType(table)

    def get(self, model_id: str) -> ModelConfig | None:
        return self._models.get(model_id)

    def ids(self) -> tuple[str, ...]:
        return tuple(self._models)

    def providers(self) -> frozenset[str]:
        """Providers actually referenced by at least one model."""
        return frozenset(m.provider for m in self._models.values())

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __iter__(self) -> Iterator[ModelConfig]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)


# ---------------------------------------------------------------------------
# Compiled-in Catalogue
# ---------------------------------------------------------------------------

DEFAULT_MODELS: tuple[ModelConfig, ...] = (
    # --- OpenAI ---
    ModelConfig(
        id="gpt-4o",
        label="GPT-4o",
        provider="openai",
        description="Most advanced multimodal model with vision capabilities",
        context_window=128_000,
        max_tokens=4096,
        supports_vision=True,
        supports_functions=True,
        pricing=ModelPricing(0.005, 0.015),
    ),
    ModelConfig(
        id="gpt-4o-mini",
        label="GPT-4o Mini",
        provider="openai",
        description="Fast and affordable multimodal model",
        context_window=128_000,
        max_tokens=16_384,
        supports_vision=True,
        supports_functions=True,
        pricing=ModelPricing(0.00015, 0.0006),
    ),
    ModelConfig(
        id="gpt-4-turbo",
        label="GPT-4 Turbo",
        provider="openai",
        description="Previous generation flagship model with large context",
        context_window=128_000,
        max_tokens=4096,
        supports_vision=True,
        supports_functions=True,
        pricing=ModelPricing(0.01, 0.03),
    ),
    ModelConfig(
        id="gpt-4",
        label="GPT-4",
        provider="openai",
        description="Original GPT-4 model (legacy)",
        context_window=8192,
        max_tokens=4096,
        supports_functions=True,
        pricing=ModelPricing(0.03, 0.06),
        deprecated=True,
    ),
    ModelConfig(
        id="gpt-3.5-turbo",
        label="GPT-3.5 Turbo",
        provider="openai",
        description="Fast and efficient model for most tasks",
        context_window=16_385,
        max_tokens=4096,
        supports_functions=True,
        pricing=ModelPricing(0.0005, 0.0015),
    ),

    # --- Anthropic ---
    ModelConfig(
        id="claude-3-5-sonnet-20241022",
        label="Claude 3.5 Sonnet",
        provider="anthropic",
        description="Latest Claude model with enhanced reasoning",
        context_window=200_000,
        max_tokens=8192,
        supports_vision=True,
        pricing=ModelPricing(0.003, 0.015),
    ),
    ModelConfig(
        id="claude-3-haiku-20240307",
        label="Claude 3 Haiku",
        provider="anthropic",
        description="Fastest and most affordable Claude model",
        context_window=200_000,
        max_tokens=4096,
        supports_vision=True,
        pricing=ModelPricing(0.00025, 0.00125),
    ),

    # --- Google ---
    ModelConfig(
        id="gemini-1.5-pro",
        label="Gemini 1.5 Pro",
        provider="google",
        description="Advanced multimodal model with huge context window",
        context_window=2_000_000,
        max_tokens=8192,
        supports_vision=True,
        supports_functions=True,
        pricing=ModelPricing(0.0035, 0.0105),
    ),
    ModelConfig(
        id="gemini-1.5-flash",
        label="Gemini 1.5 Flash",
        provider="google",
        description="Fast and efficient model with large context",
        context_window=1_000_000,
        max_tokens=8192,
        supports_vision=True,
        supports_functions=True,
        pricing=ModelPricing(0.000075, 0.0003),
    ),
    ModelConfig(
        id="gemini-pro",
        label="Gemini Pro",
        provider="google",
        description="Previous generation Gemini model",
        context_window=32_768,
        max_tokens=8192,
        supports_functions=True,
        pricing=ModelPricing(0.0005, 0.0015),
        deprecated=True,
    ),
)


@lru_cache
def default_registry() -> ModelRegistry:
    """The compiled-in catalogue, built once."""
    return ModelRegistry(DEFAULT_MODELS)
