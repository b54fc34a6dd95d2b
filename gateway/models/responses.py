# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API.
#
# Access key responses are the SAFE projection: they never carry the
# fingerprint, the bcrypt hash, or (after creation) the plaintext key.
# Completion responses follow the OpenAI chat.completion format.
# =============================================================================

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


# ---------------------------------------------------------------------------
# Errors (documentation only — built by gateway.errors.error_payload)
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    message: str
    code: str


class ErrorResponse(BaseModel):
    """Error envelope returned by every failed request."""

    error: ErrorDetail
    field_errors: dict[str, str] | None = None
    request_id: str
    ts: datetime

    model_config = _CAMEL


# ---------------------------------------------------------------------------
# Access Keys
# ---------------------------------------------------------------------------


class AccessKeyResponse(BaseModel):
    """
    Safe view of an access key.

    Only the preview ("lr_…a1b2") identifies the secret.
    """

    id: str
    name: str | None = None
    description: str | None = None
    revoked: bool
    preview: str
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    last_used_at: datetime | None = None

    model_config = _CAMEL


class AccessKeyCreatedResponse(BaseModel):
    """
    Response for POST /access-keys — returned once at key creation.

    WARNING: `key` is only returned in this response.
    It is never stored or retrievable after creation.
    """

    id: str
    key: str = Field(
        description=(
            "The full access key. Store it securely "
            "— it will NOT be shown again."
        ),
    )
    created_at: datetime
    name: str | None = None
    description: str | None = None

    model_config = _CAMEL


# ---------------------------------------------------------------------------
# Completions (OpenAI-compatible)
# ---------------------------------------------------------------------------


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class CompletionChoice(BaseModel):
    index: int
    message: AssistantMessage
    finish_reason: Literal["stop", "length", "content_filter"]


class CompletionUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class CompletionResult(BaseModel):
    """
    Response for POST /completions.

    id, created and model are set by the gateway; choices and usage come
    from the provider adapter unchanged.
    """

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[CompletionChoice]
    usage: CompletionUsage


# ---------------------------------------------------------------------------
# Models Catalogue
# ---------------------------------------------------------------------------


class ModelInfoResponse(BaseModel):
    """Public view of one registry entry."""

    id: str
    label: str
    provider: str
    description: str
    context_window: int
    max_tokens: int
    supports_streaming: bool
    supports_vision: bool
    supports_functions: bool
    input_cost_per_1k: float
    output_cost_per_1k: float
    deprecated: bool = False


class ModelListResponse(BaseModel):
    """Response for GET /models."""

    models: list[ModelInfoResponse]
    total: int


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------


class UsageResponse(BaseModel):
    """Response for GET /usage — totals for the current calendar month."""

    total_requests: int
    total_tokens: int
    total_cost: float
    period_start: datetime
    period_end: datetime

    model_config = _CAMEL
