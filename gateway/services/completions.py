# =============================================================================
# Completion Orchestrator — Validate, Route, Compose
# =============================================================================
#
# Drives one chat-completion request through a fixed sequence of stages:
#
#   RECEIVED → MODEL_VALIDATED → CAPABILITY_CHECKED → LIMITS_CHECKED
#            → DISPATCHED → COMPOSED
#
# A 4xx ServiceError before dispatch ends the request in REJECTED. Any
# failure while the adapter runs ends it in ADAPTER_FAILED: ServiceErrors
# raised by the adapter pass through unchanged, anything else becomes a
# 502 with a generic message.
#
# The registry and adapter table are injected.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol, TypeVar

from gateway.errors import ServiceError
from gateway.models.requests import CompletionRequest
from gateway.models.responses import CompletionResult
from gateway.services.adapters import AdapterCompletion, AdapterDispatch
from gateway.services.model_config import ModelConfigValidator
from gateway.services.registry import ModelConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

UPSTREAM_FAILURE_MESSAGE = "Upstream provider request failed"


class Stage(str, Enum):
    RECEIVED = "received"
    MODEL_VALIDATED = "model_validated"
    CAPABILITY_CHECKED = "capability_checked"
    LIMITS_CHECKED = "limits_checked"
    DISPATCHED = "dispatched"
    COMPOSED = "composed"
    REJECTED = "rejected"
    ADAPTER_FAILED = "adapter_failed"


# ---------------------------------------------------------------------------
# Retry Policies
# ---------------------------------------------------------------------------


class RetryPolicy(Protocol):
    """Runs an adapter call, possibly more than once."""

    async def run(self, call: Callable[[], Awaitable[T]]) -> T: ...


class NoRetry:
    """Single attempt. The default."""

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        return await call()


class FixedDelayRetry:
    """
    Retry non-ServiceError failures up to max_retries times.

    ServiceErrors are deliberate rejections and are re-raised immediately.
    """

    def __init__(self, max_retries: int, delay_seconds: float = 0.5) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.delay_seconds = delay_seconds

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await call()
            except ServiceError:
                raise
            except Exception as e:
                if attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Adapter call failed (%s), retry %d/%d in %.2fs",
                    e, attempt, self.max_retries, self.delay_seconds,
                )
                await asyncio.sleep(self.delay_seconds)


def build_retry_policy(max_retries: int, delay_seconds: float) -> RetryPolicy:
    if max_retries <= 0:
        return NoRetry()
    return FixedDelayRetry(max_retries, delay_seconds)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


class CompletionOrchestrator:
    """
    Validates a completion request against the registry and routes it to the
    adapter for the model's provider.

    Args:
        validator: Registry-backed model/capability checks.
        dispatch: Provider id -> adapter table.
        retry_policy: Wraps the adapter call (NoRetry by default).
    """

    def __init__(
        self,
        validator: ModelConfigValidator,
        dispatch: AdapterDispatch,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._validator = validator
        self._dispatch = dispatch
        self._retry = retry_policy or NoRetry()

    @property
    def validator(self) -> ModelConfigValidator:
        return self._validator

    async def complete(
        self, request: CompletionRequest, user_id: str | None = None,
    ) -> CompletionResult:
        """
        Validate, dispatch and compose one completion.

        Args:
            request: Structurally valid request.
            user_id: Owner of the access key; logged only.

        Raises:
            ServiceError 400: unknown model, streaming requested, max_tokens
                above the model ceiling, or no adapter for the provider.
            ServiceError 502: the adapter failed with a non-ServiceError.
        """
        stage = Stage.RECEIVED
        try:
            config = self._validator.validate_and_get_model(request.model)
            stage = Stage.MODEL_VALIDATED

            if request.stream:
                raise ServiceError("Streaming is not supported yet", 400)
            stage = Stage.CAPABILITY_CHECKED

            self._check_max_tokens(request, config)
            stage = Stage.LIMITS_CHECKED

            adapter = self._dispatch.get_adapter_for_provider(config.provider)
        except ServiceError as e:
            logger.info(
                "Completion %s after %s (model=%s, user=%s): %s",
                Stage.REJECTED.value, stage.value, request.model, user_id,
                e.message,
            )
            raise

        logger.debug(
            "Completion %s (model=%s, provider=%s)",
            Stage.DISPATCHED.value, config.id, config.provider,
        )
        start = time.monotonic()
        try:
            output: AdapterCompletion = await self._retry.run(
                lambda: adapter.complete(request),
            )
        except ServiceError:
            logger.warning(
                "Completion %s (model=%s, provider=%s)",
                Stage.ADAPTER_FAILED.value, config.id, config.provider,
            )
            raise
        except Exception as e:
            logger.exception(
                "Completion %s (model=%s, provider=%s)",
                Stage.ADAPTER_FAILED.value, config.id, config.provider,
            )
            raise ServiceError(
                UPSTREAM_FAILURE_MESSAGE, 502, details=repr(e),
            ) from e

        result = CompletionResult(
            id=new_completion_id(),
            created=int(time.time()),
            model=request.model,
            choices=output.choices,
            usage=output.usage,
        )
        logger.info(
            "Completion %s %s: model=%s provider=%s user=%s tokens=%d latency=%dms",
            result.id,
            Stage.COMPOSED.value,
            config.id,
            config.provider,
            user_id,
            result.usage.total_tokens,
            int((time.monotonic() - start) * 1000),
        )
        return result

    @staticmethod
    def _check_max_tokens(request: CompletionRequest, config: ModelConfig) -> None:
        # Absent max_tokens: the provider default applies
        if request.max_tokens is None:
            return
        if request.max_tokens < 1 or request.max_tokens > config.max_tokens:
            raise ServiceError(
                f"max_tokens ({request.max_tokens}) exceeds the limit "
                f"({config.max_tokens}) for model {config.id}",
                400,
            )
