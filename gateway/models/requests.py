# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the SHAPE of data coming INTO the API and generic
# bounds only. FastAPI turns a failure here into a 422 VALIDATION_ERROR
# with fieldErrors.
#
# Business rules (unknown model, per-model max_tokens ceiling, streaming
# gate, unparsable expiresAt, empty patch) are enforced by the services and
# surface as 400 BAD_REQUEST instead.
#
# Access key bodies use camelCase on the wire (expiresAt); completion bodies
# follow the OpenAI field names (max_tokens, top_p, ...).
# =============================================================================

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from gateway.services.registry import PARAMETER_LIMITS

# ---------------------------------------------------------------------------
# Access Keys
# ---------------------------------------------------------------------------


class CreateAccessKeyRequest(BaseModel):
    """
    Request body for POST /access-keys.

    Example:
        {"name": "ci-pipeline", "description": "Nightly eval runs"}
    """

    name: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        description="Human-readable label for the key",
        examples=["ci-pipeline"],
    )
    description: str | None = Field(
        default=None,
        max_length=500,
        description="Free-form note about where the key is used",
    )

    # Unknown keys are rejected so typos don't silently do nothing
    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
    )


class UpdateAccessKeyRequest(BaseModel):
    """
    Request body for PATCH /access-keys/{id}.

    Every field is optional; only fields present in the body are applied.
    `expiresAt` is an ISO-8601 date-time string, or null to clear the expiry.
    It is parsed by the service so an unparsable value is a 400, not a 422.
    `name`, `description` and `revoked` may be omitted but not sent as null.
    """

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    revoked: bool | None = None
    expires_at: str | None = Field(
        default=None,
        description="ISO-8601 date-time, or null to remove the expiry",
        examples=["2026-12-31T23:59:59Z"],
    )

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("name", "description", "revoked", mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value

    def to_patch(self) -> dict[str, Any]:
        """Fields the client actually sent, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Completions
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """One role-tagged message of a chat conversation."""

    role: Literal["system", "user", "assistant"]
    content: str = Field(
        ..., min_length=1, description="Message content cannot be empty",
    )


class CompletionRequest(BaseModel):
    """
    Request body for POST /completions and POST /v1/chat/completions.

    Numeric parameters are bounded by global ranges that do not depend on
    the model. The model's own max_tokens ceiling is checked later by the
    orchestrator.

    Example:
        {
            "model": "gpt-4o-mini",
            "messages": [{"role": "user", "content": "hi"}],
            "temperature": 0.2
        }
    """

    model: str = Field(..., min_length=1, examples=["gpt-4o-mini"])
    messages: list[ChatMessage] = Field(..., min_length=1)

    temperature: float | None = Field(
        default=None,
        ge=PARAMETER_LIMITS["temperature"]["min"],
        le=PARAMETER_LIMITS["temperature"]["max"],
    )
    max_tokens: int | None = Field(
        default=None,
        ge=PARAMETER_LIMITS["max_tokens"]["min"],
        le=PARAMETER_LIMITS["max_tokens"]["max"],
    )
    top_p: float | None = Field(
        default=None,
        ge=PARAMETER_LIMITS["top_p"]["min"],
        le=PARAMETER_LIMITS["top_p"]["max"],
    )
    frequency_penalty: float | None = Field(
        default=None,
        ge=PARAMETER_LIMITS["frequency_penalty"]["min"],
        le=PARAMETER_LIMITS["frequency_penalty"]["max"],
    )
    presence_penalty: float | None = Field(
        default=None,
        ge=PARAMETER_LIMITS["presence_penalty"]["min"],
        le=PARAMETER_LIMITS["presence_penalty"]["max"],
    )
    stop: (
        str
        | Annotated[
            list[str],
            Field(max_length=PARAMETER_LIMITS["stop_sequences"]["max"]),
        ]
        | None
    ) = None
    stream: bool | None = None

    # OpenAI clients send extra fields (user, n, ...) — ignore them
    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "model": "gpt-4o-mini",
                    "messages": [
                        {"role": "system", "content": "Be brief."},
                        {"role": "user", "content": "hi"},
                    ],
                    "max_tokens": 256,
                }
            ]
        },
    )

    def stop_sequences(self) -> list[str] | None:
        """`stop` normalised to a list (None when absent)."""
        if self.stop is None:
            return None
        if isinstance(self.stop, str):
            return [self.stop]
        return list(self.stop)
