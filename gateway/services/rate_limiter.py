# =============================================================================
# Rate Limiter — Redis-Based Per-Access-Key Sliding Window
# =============================================================================
#
# Implements a sliding window counter using Redis sorted sets (ZSET).
# Each request adds an entry with its timestamp as the score. On each
# check, entries older than the window are pruned and the remaining
# count is compared against the limit.
#
# DESIGN DECISION: Sliding window over fixed window. Fixed windows
# allow burst traffic at window boundaries (e.g., 60 requests at
# 0:59 + 60 at 1:00 = 120 in 2 seconds).
#
# DESIGN DECISION: Graceful degradation. If Redis is unavailable,
# rate limiting is bypassed (log a warning, allow the request), so a
# Redis outage never blocks completions.
#
# Disabled unless settings.rate_limit_enabled is set. One client is cached
# per Redis URL.
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid

from gateway.errors import ServiceError

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

# Lazy Redis connections, keyed by URL
_redis_clients: dict = {}


def _get_rate_limit_redis(redis_url: str):
    """Lazily create and cache the async Redis client for rate limiting."""
    client = _redis_clients.get(redis_url)
    if client is None:
        import redis.asyncio as aioredis
        client = aioredis.from_url(redis_url, decode_responses=True)
        _redis_clients[redis_url] = client
    return client


async def check_rate_limit(key_id: str, limit: int, redis_url: str) -> None:
    """
    Count this request against the access key's per-minute budget.

    Args:
        key_id: Authenticated access key id.
        limit: Requests per minute.
        redis_url: Redis instance holding the windows.

    Raises:
        ServiceError 429: Limit exceeded (includes a Retry-After header).
    """
    redis_key = f"ratelimit:accesskey:{key_id}"

    try:
        r = _get_rate_limit_redis(redis_url)
        now = time.time()
        window_start = now - WINDOW_SECONDS

        pipe = r.pipeline()
        # Remove entries outside the window
        pipe.zremrangebyscore(redis_key, 0, window_start)
        # Count entries in the window
        pipe.zcard(redis_key)
        # Add current request (unique member so concurrent calls don't merge)
        pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        # Set TTL to auto-cleanup
        pipe.expire(redis_key, WINDOW_SECONDS + 10)
        results = await pipe.execute()

        current_count = results[1]  # zcard result

    except Exception as e:
        # Redis unavailable — graceful degradation
        logger.warning(
            "Rate limiter unavailable (Redis error): %s. "
            "Allowing request through.",
            e,
        )
        return

    if current_count >= limit:
        logger.info("Rate limit hit for access key id=%s (%d rpm)", key_id, limit)
        raise ServiceError(
            f"Rate limit exceeded. Limit: {limit} requests/minute.",
            429,
            headers={"Retry-After": str(WINDOW_SECONDS)},
        )
