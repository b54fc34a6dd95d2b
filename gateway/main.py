# =============================================================================
# Application Factory — FastAPI App, Exception Handlers, Logging
# =============================================================================
#
# create_app(settings) wires everything explicitly:
#
#   Settings ─┬─ engine + session factory ─┬─ SqlAlchemyAccessKeyStore
#             │                            │    └─ AccessKeyManager
#             │                            └─ UsageService
#             ├─ default_registry() ── ModelConfigValidator ─┐
#             └─ build_adapter_dispatch() ───────────────────┴─ CompletionOrchestrator
#
# Services live on app.state; routes reach them through gateway.api.deps.
#
# ERROR HANDLING:
#   ServiceError            → its status + canonical envelope
#   RequestValidationError  → 422 "Validation failed" + fieldErrors
#   anything else           → 500 "Internal server error" (logged, not leaked)
#
# Every error response carries a fresh requestId, echoed in X-Request-Id.
#
# Run locally:
#   uvicorn gateway.main:app --reload
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.api import access_keys, completions, models, usage
from gateway.config import Settings, get_settings
from gateway.db.engine import build_engine, build_session_factory, create_tables
from gateway.errors import ServiceError, error_payload, make_request_id
from gateway.models.responses import HealthResponse
from gateway.services.access_keys import AccessKeyManager, SqlAlchemyAccessKeyStore
from gateway.services.adapters import build_adapter_dispatch
from gateway.services.completions import CompletionOrchestrator, build_retry_policy
from gateway.services.model_config import ModelConfigValidator
from gateway.services.registry import default_registry
from gateway.services.usage import UsageService

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = make_request_id()
        request.state.request_id = request_id
    return request_id


def _error_response(
    request: Request,
    status: int,
    content: dict,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    response = JSONResponse(status_code=status, content=content, headers=headers)
    response.headers["X-Request-Id"] = _request_id(request)
    return response


def _field_errors(exc: RequestValidationError) -> dict[str, str]:
    """Dotted field location → first message, e.g. {"messages.0.content": ...}."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        # Drop the "body"/"path"/"query" source marker
        if len(loc) > 1 and loc[0] in ("body", "path", "query", "header"):
            loc = loc[1:]
        errors.setdefault(".".join(loc) or "body", error.get("msg", "Invalid value"))
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    """Translate every failure into the canonical error envelope."""

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        request_id = _request_id(request)
        log = logger.warning if exc.status >= 500 else logger.info
        log(
            "ServiceError %d %s on %s %s (request_id=%s): %s details=%s",
            exc.status, exc.code, request.method, request.url.path,
            request_id, exc.message, exc.details,
        )
        return _error_response(
            request,
            exc.status,
            error_payload(
                exc.message,
                exc.status,
                code=exc.code,
                field_errors=exc.field_errors,
                request_id=request_id,
            ),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            422,
            error_payload(
                "Validation failed",
                422,
                field_errors=_field_errors(exc),
                request_id=_request_id(request),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Routing errors (404 unknown path, 405 wrong method)
        return _error_response(
            request,
            exc.status_code,
            error_payload(
                str(exc.detail), exc.status_code, request_id=_request_id(request),
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        request_id = _request_id(request)
        logger.error(
            "Unhandled error on %s %s (request_id=%s)",
            request.method, request.url.path, request_id,
            exc_info=exc,
        )
        return _error_response(
            request,
            500,
            error_payload("Internal server error", 500, request_id=request_id),
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup; flush background work and close the pool on shutdown."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting %s v%s (adapters=%s)",
        settings.app_name, settings.app_version, settings.adapter_mode,
    )
    if settings.database_auto_create:
        await create_tables(app.state.engine)

    yield

    logger.info("Shutting down %s", settings.app_name)
    await app.state.access_key_manager.drain()
    await app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Overrides the environment-derived settings (tests).
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Access-key authenticated, OpenAI-compatible chat completion "
            "gateway in front of multiple model providers."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )

    engine = build_engine(settings.database_url, echo=settings.debug)
    session_factory = build_session_factory(engine)

    app.state.settings = settings
    app.state.engine = engine
    app.state.access_key_manager = AccessKeyManager(
        SqlAlchemyAccessKeyStore(session_factory),
        prefix=settings.access_key_prefix,
        hash_rounds=settings.access_key_hash_rounds,
    )
    app.state.orchestrator = CompletionOrchestrator(
        ModelConfigValidator(default_registry()),
        build_adapter_dispatch(settings),
        retry_policy=build_retry_policy(
            settings.adapter_max_retries, settings.adapter_retry_delay_seconds,
        ),
    )
    app.state.usage_service = (
        UsageService(session_factory) if settings.usage_tracking_enabled else None
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Attach a fresh request id to every response."""
        request_id = _request_id(request)
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    register_exception_handlers(app)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="ok", version=settings.app_version, service=settings.app_name,
        )

    app.include_router(access_keys.router)
    app.include_router(completions.router)
    app.include_router(models.router)
    app.include_router(usage.router)

    return app


app = create_app()
