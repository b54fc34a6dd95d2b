# =============================================================================
# Models API — Supported Model Catalogue
# =============================================================================
#
# GET /models lists every model the gateway accepts, with its provider,
# per-model max_tokens ceiling, capability flags and list price.
# Public: the catalogue holds no user data.
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends

from gateway.api.deps import get_orchestrator
from gateway.models.responses import ModelInfoResponse, ModelListResponse
from gateway.services.completions import CompletionOrchestrator
from gateway.services.registry import ModelConfig

router = APIRouter(tags=["Models"])


def _to_model_info(config: ModelConfig) -> ModelInfoResponse:
    return ModelInfoResponse(
        id=config.id,
        label=config.label,
        provider=config.provider,
        description=config.description,
        context_window=config.context_window,
        max_tokens=config.max_tokens,
        supports_streaming=config.supports_streaming,
        supports_vision=config.supports_vision,
        supports_functions=config.supports_functions,
        input_cost_per_1k=config.pricing.input_per_1k,
        output_cost_per_1k=config.pricing.output_per_1k,
        deprecated=config.deprecated,
    )


@router.get(
    "/models",
    response_model=ModelListResponse,
    summary="List supported models",
)
async def list_models(
    orchestrator: CompletionOrchestrator = Depends(get_orchestrator),
) -> ModelListResponse:
    registry = orchestrator.validator.registry
    models = [_to_model_info(config) for config in registry]
    return ModelListResponse(models=models, total=len(models))
