# =============================================================================
# API Dependencies — Services, Caller Identity, Bearer Authentication
# =============================================================================
#
# 1. get_app_settings / get_access_key_manager / get_orchestrator /
#    get_usage_service: settings and services built by create_app and kept
#    on app.state
# 2. get_current_user_id()  — management routes: trusted user-id header
# 3. require_access_key()   — completion routes: Bearer access key
#
# DESIGN DECISION: FastAPI dependency (not middleware) for auth.
# - Each endpoint opts-in via Depends(require_access_key)
# - The resolved AccessKeyContext is available in route handlers
# - Testable via dependency_overrides
# - Dependencies resolve before the handler runs, so a bad credential is
#   rejected with 401 before the request body is ever used
#
# DESIGN DECISION: HTTPBearer(auto_error=False) so a missing or malformed
# header produces our own 401 envelope instead of FastAPI's default 403.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gateway.config import Settings
from gateway.errors import ServiceError
from gateway.services.access_keys import AccessKeyContext, AccessKeyManager
from gateway.services.completions import CompletionOrchestrator
from gateway.services.usage import UsageService

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs (shows "Authorize" button in Swagger UI)
_bearer_scheme = HTTPBearer(auto_error=False)

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    """The Settings this application was built with."""
    return request.app.state.settings


def get_access_key_manager(request: Request) -> AccessKeyManager:
    return request.app.state.access_key_manager


def get_orchestrator(request: Request) -> CompletionOrchestrator:
    return request.app.state.orchestrator


def get_usage_service(request: Request) -> UsageService | None:
    """None when usage tracking is disabled."""
    return getattr(request.app.state, "usage_service", None)


# ---------------------------------------------------------------------------
# Caller identity (management routes)
# ---------------------------------------------------------------------------


def get_current_user_id(request: Request) -> str:
    """
    The signed-in user, as asserted by the fronting web app.

    Raises:
        ServiceError 401: header missing or blank.
    """
    header = get_app_settings(request).user_id_header
    user_id = request.headers.get(header, "").strip()
    if not user_id:
        raise ServiceError("Unauthorized", 401)
    return user_id


# ---------------------------------------------------------------------------
# Bearer access key (completion routes)
# ---------------------------------------------------------------------------


async def require_access_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    manager: AccessKeyManager = Depends(get_access_key_manager),
) -> AccessKeyContext:
    """
    Authenticate the Bearer access key on a completion request.

    - Missing header, non-Bearer scheme or empty token → 401
    - Otherwise delegates to AccessKeyManager.authenticate (generic 401)
    - Applies the per-key rate limit when enabled (429)
    - Stores the context on request.state for logging

    Raises:
        ServiceError 401: Missing or invalid access key
        ServiceError 429: Rate limit exceeded
    """
    if credentials is None or not credentials.credentials.strip():
        raise ServiceError(
            "Missing access key. Provide 'Authorization: Bearer <key>' header.",
            401,
            headers=_BEARER_CHALLENGE,
        )

    context = await manager.authenticate(credentials.credentials.strip())

    settings = get_app_settings(request)
    if settings.rate_limit_enabled:
        from gateway.services.rate_limiter import check_rate_limit
        await check_rate_limit(
            context.key_id,
            settings.rate_limit_rpm,
            settings.rate_limit_redis_url,
        )

    request.state.access_key = context
    return context
