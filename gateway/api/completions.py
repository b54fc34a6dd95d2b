# =============================================================================
# Completions API — OpenAI-Compatible Chat Completions
# =============================================================================
#
# POST /completions and its alias POST /v1/chat/completions (so stock
# OpenAI clients work with only a base_url change).
#
# FLOW:
#   1. require_access_key resolves the Bearer key (401 before the handler)
#   2. Parse and validate the JSON body (422 on failure)
#   3. CompletionOrchestrator validates the model/parameters and dispatches
#   4. Return the composed chat.completion
#   5. Record usage as a background task
#
# Validation and routing rules live in gateway/services/completions.py.
# =============================================================================

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from gateway.api.deps import get_orchestrator, get_usage_service, require_access_key
from gateway.models.requests import CompletionRequest
from gateway.models.responses import CompletionResult, ErrorResponse
from gateway.services.access_keys import AccessKeyContext
from gateway.services.completions import CompletionOrchestrator
from gateway.services.usage import UsageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Completions"])


async def _parse_body(request: Request) -> CompletionRequest:
    """Read and validate the completion body. Runs after require_access_key."""
    try:
        payload = await request.json()
    except ValueError as e:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": "JSON decode error"}],
        ) from e
    try:
        return CompletionRequest.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError(
            [
                {**error, "loc": ("body", *error["loc"])}
                for error in e.errors(include_url=False)
            ],
        ) from e


# ---------------------------------------------------------------------------
# POST /completions — Create a chat completion
# ---------------------------------------------------------------------------


@router.post(
    "/v1/chat/completions",
    response_model=CompletionResult,
    include_in_schema=False,
)
@router.post(
    "/completions",
    response_model=CompletionResult,
    responses={
        400: {"model": ErrorResponse, "description": "Model or parameter rejected"},
        401: {"model": ErrorResponse, "description": "Missing or invalid access key"},
        422: {"model": ErrorResponse, "description": "Malformed request body"},
        502: {"model": ErrorResponse, "description": "Upstream provider failure"},
    },
    summary="Create a chat completion",
    description=(
        "Validate the request against the model registry and route it to "
        "the model's provider. Requires 'Authorization: Bearer <access key>'."
    ),
)
async def create_completion(
    request: Request,
    background_tasks: BackgroundTasks,
    access_key: AccessKeyContext = Depends(require_access_key),
    orchestrator: CompletionOrchestrator = Depends(get_orchestrator),
    usage_service: UsageService | None = Depends(get_usage_service),
) -> CompletionResult:
    """
    Error handling:
    - Unknown model / streaming / max_tokens above the model limit → 400
    - Adapter failure → 502 (generic message)
    - Malformed JSON or schema violation → 422 (after authentication)
    """
    body = await _parse_body(request)
    start_time = time.monotonic()
    result = await orchestrator.complete(body, user_id=access_key.user_id)
    latency_ms = int((time.monotonic() - start_time) * 1000)

    if usage_service is not None:
        # Background task uses its own session (not tied to the request)
        background_tasks.add_task(
            usage_service.record,
            user_id=access_key.user_id,
            access_key_id=access_key.key_id,
            config=orchestrator.validator.validate_and_get_model(result.model),
            usage=result.usage,
            latency_ms=latency_ms,
        )

    return result
