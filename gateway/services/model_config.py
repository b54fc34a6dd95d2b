# =============================================================================
# Model Config Validator — Per-Model Constraints
# =============================================================================
#
# Thin facade over a ModelRegistry that turns lookups and capability checks
# into 400 BAD_REQUEST ServiceErrors.
# =============================================================================

from __future__ import annotations

from typing import Literal

from gateway.errors import ServiceError
from gateway.services.registry import ModelConfig, ModelRegistry

Feature = Literal["streaming", "vision", "functions"]


class ModelConfigValidator:
    """Resolves model ids and enforces capability flags."""

    def __init__(self, registry: ModelRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    def supported_model_ids(self) -> tuple[str, ...]:
        return self._registry.ids()

    def validate_and_get_model(self, model_id: str) -> ModelConfig:
        """Return the config for model_id; 400 if the id is unknown."""
        config = self._registry.get(model_id)
        if config is None:
            raise ServiceError(f"Invalid model: {model_id}", 400)
        return config

    def get_max_tokens(self, model_id: str) -> int:
        return self.validate_and_get_model(model_id).max_tokens

    def ensure_feature(self, model_id: str, feature: Feature) -> None:
        """400 unless the model's `supports_<feature>` flag is set."""
        config = self.validate_and_get_model(model_id)
        if not getattr(config, f"supports_{feature}", False):
            raise ServiceError(
                f'Model "{model_id}" does not support {feature}', 400,
            )
