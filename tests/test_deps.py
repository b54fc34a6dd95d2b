# =============================================================================
# Unit Tests — Auth Dependencies & Rate Limiter
# =============================================================================
#
# Tests auth components without requiring Redis, a running API, or a
# database. Uses mocking for external dependencies.
#
# Test groups:
#   1. Caller identity (get_current_user_id)
#   2. Bearer access key (require_access_key)
#   3. Rate limiter (check_rate_limit)
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gateway.config import Settings
from gateway.errors import ServiceError
from gateway.services.access_keys import AccessKeyContext


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


@dataclass
class FakeCredentials:
    """Stand-in for HTTPAuthorizationCredentials."""

    credentials: str = "lr_testkey"
    scheme: str = "Bearer"


class FakeRequestState:
    """Writable request.state."""

    pass


class FakeApp:
    """Carries app.state.settings."""

    def __init__(self, settings: Settings):
        self.state = FakeRequestState()
        self.state.settings = settings


class FakeRequest:
    """Minimal Request stand-in."""

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        settings: Settings | None = None,
    ):
        self.state = FakeRequestState()
        self.headers = headers or {}
        self.app = FakeApp(settings or Settings(_env_file=None))


# ---------------------------------------------------------------------------
# 1. Caller identity
# ---------------------------------------------------------------------------


class TestGetCurrentUserId:
    def test_reads_trusted_header(self):
        from gateway.api.deps import get_current_user_id
        assert get_current_user_id(FakeRequest({"X-User-Id": "user-1"})) == "user-1"

    def test_missing_header_is_401(self):
        from gateway.api.deps import get_current_user_id
        with pytest.raises(ServiceError) as exc_info:
            get_current_user_id(FakeRequest())
        assert exc_info.value.status == 401

    def test_blank_header_is_401(self):
        from gateway.api.deps import get_current_user_id
        with pytest.raises(ServiceError) as exc_info:
            get_current_user_id(FakeRequest({"X-User-Id": "   "}))
        assert exc_info.value.status == 401

    def test_configured_header_name(self):
        from gateway.api.deps import get_current_user_id

        settings = Settings(_env_file=None, user_id_header="X-Owner")
        request = FakeRequest({"X-Owner": "alice"}, settings=settings)
        assert get_current_user_id(request) == "alice"

    def test_default_header_ignored_when_renamed(self):
        from gateway.api.deps import get_current_user_id

        settings = Settings(_env_file=None, user_id_header="X-Owner")
        with pytest.raises(ServiceError):
            get_current_user_id(FakeRequest({"X-User-Id": "alice"}, settings=settings))


# ---------------------------------------------------------------------------
# 2. Bearer access key
# ---------------------------------------------------------------------------


class TestRequireAccessKey:
    def test_missing_credentials_is_401(self):
        from gateway.api.deps import require_access_key

        manager = MagicMock()
        manager.authenticate = AsyncMock()
        with pytest.raises(ServiceError) as exc_info:
            _run(require_access_key(FakeRequest(), credentials=None, manager=manager))

        assert exc_info.value.status == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}
        manager.authenticate.assert_not_called()

    def test_empty_token_is_401(self):
        from gateway.api.deps import require_access_key

        manager = MagicMock()
        manager.authenticate = AsyncMock()
        with pytest.raises(ServiceError) as exc_info:
            _run(require_access_key(
                FakeRequest(), credentials=FakeCredentials("  "), manager=manager,
            ))
        assert exc_info.value.status == 401
        manager.authenticate.assert_not_called()

    def test_manager_error_propagates(self):
        from gateway.api.deps import require_access_key

        manager = MagicMock()
        manager.authenticate = AsyncMock(side_effect=ServiceError("Unauthorized", 401))
        with pytest.raises(ServiceError) as exc_info:
            _run(require_access_key(
                FakeRequest(), credentials=FakeCredentials(), manager=manager,
            ))
        assert exc_info.value.message == "Unauthorized"

    def test_valid_key_returns_context(self):
        from gateway.api.deps import require_access_key

        context = AccessKeyContext(user_id="user-1", key_id="key-1")
        manager = MagicMock()
        manager.authenticate = AsyncMock(return_value=context)
        request = FakeRequest()

        result = _run(require_access_key(
            request, credentials=FakeCredentials("lr_abc"), manager=manager,
        ))

        assert result is context
        assert request.state.access_key is context
        manager.authenticate.assert_awaited_once_with("lr_abc")

    def test_rate_limit_applied_when_enabled(self):
        from gateway.api.deps import require_access_key

        context = AccessKeyContext(user_id="user-1", key_id="key-1")
        manager = MagicMock()
        manager.authenticate = AsyncMock(return_value=context)

        settings = Settings(
            _env_file=None,
            rate_limit_enabled=True,
            rate_limit_rpm=30,
            rate_limit_redis_url="redis://cache:6379/5",
        )
        with patch(
            "gateway.services.rate_limiter.check_rate_limit",
            new_callable=AsyncMock,
        ) as mock_limit:
            _run(require_access_key(
                FakeRequest(settings=settings),
                credentials=FakeCredentials(),
                manager=manager,
            ))

        mock_limit.assert_awaited_once_with("key-1", 30, "redis://cache:6379/5")

    def test_rate_limit_skipped_when_disabled(self):
        from gateway.api.deps import require_access_key

        context = AccessKeyContext(user_id="user-1", key_id="key-1")
        manager = MagicMock()
        manager.authenticate = AsyncMock(return_value=context)

        with patch(
            "gateway.services.rate_limiter.check_rate_limit",
            new_callable=AsyncMock,
        ) as mock_limit:
            _run(require_access_key(
                FakeRequest(settings=Settings(_env_file=None, rate_limit_enabled=False)),
                credentials=FakeCredentials(),
                manager=manager,
            ))

        mock_limit.assert_not_called()


# ---------------------------------------------------------------------------
# 3. Rate Limiter
# ---------------------------------------------------------------------------


REDIS_URL = "redis://localhost:6379/2"


def _mock_redis(zcard: int) -> MagicMock:
    mock_pipe = MagicMock()
    mock_pipe.execute = AsyncMock(return_value=[None, zcard, None, None])
    mock_redis = MagicMock()
    mock_redis.pipeline.return_value = mock_pipe
    return mock_redis


class TestRateLimiter:
    """Tests for the Redis-based rate limiter."""

    def test_under_limit_passes(self):
        """When under the limit, request passes through."""
        from gateway.services.rate_limiter import check_rate_limit

        with patch(
            "gateway.services.rate_limiter._get_rate_limit_redis",
            return_value=_mock_redis(5),
        ):
            _run(check_rate_limit("key-1", 100, REDIS_URL))  # Should not raise

    def test_over_limit_raises_429(self):
        """When at or over the limit, raises 429 with Retry-After."""
        from gateway.services.rate_limiter import check_rate_limit

        with patch(
            "gateway.services.rate_limiter._get_rate_limit_redis",
            return_value=_mock_redis(10),
        ):
            with pytest.raises(ServiceError) as exc_info:
                _run(check_rate_limit("key-1", 10, REDIS_URL))

        assert exc_info.value.status == 429
        assert exc_info.value.code == "TOO_MANY_REQUESTS"
        assert exc_info.value.headers["Retry-After"] == "60"

    def test_redis_failure_allows_request(self):
        """When Redis is down, requests pass (graceful degradation)."""
        from gateway.services.rate_limiter import check_rate_limit

        mock_redis = MagicMock()
        mock_redis.pipeline.side_effect = ConnectionError("Redis down")

        with patch(
            "gateway.services.rate_limiter._get_rate_limit_redis",
            return_value=mock_redis,
        ):
            _run(check_rate_limit("key-1", 10, REDIS_URL))  # Should not raise

    def test_keyed_per_access_key(self):
        from gateway.services.rate_limiter import check_rate_limit

        mock_redis = _mock_redis(0)
        with patch(
            "gateway.services.rate_limiter._get_rate_limit_redis",
            return_value=mock_redis,
        ):
            _run(check_rate_limit("key-42", 10, REDIS_URL))

        pipe = mock_redis.pipeline.return_value
        assert pipe.zcard.call_args.args[0] == "ratelimit:accesskey:key-42"
