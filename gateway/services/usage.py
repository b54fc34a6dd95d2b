# =============================================================================
# Usage Service — Per-User Completion Accounting
# =============================================================================
#
# One UsageRecord per successful completion, written after the response is
# sent (FastAPI BackgroundTasks). Cost is estimated from registry pricing.
#
# GET /usage reads the caller's totals for the current calendar month (UTC).
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway.db.models import UsageRecord
from gateway.models.responses import CompletionUsage
from gateway.services.registry import ModelConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSummary:
    total_requests: int
    total_tokens: int
    total_cost: float
    period_start: datetime
    period_end: datetime


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """[first instant of now's month, first instant of the next month)."""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class UsageService:
    """Writes and summarises UsageRecords, one session per operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        user_id: str,
        access_key_id: str | None,
        config: ModelConfig,
        usage: CompletionUsage,
        latency_ms: int | None = None,
    ) -> None:
        """
        Persist one completion's usage.

        Runs as a background task: failures are logged, never raised, since
        the response has already been sent.
        """
        record = UsageRecord(
            user_id=user_id,
            access_key_id=access_key_id,
            model=config.id,
            provider=config.provider,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            estimated_cost_usd=round(
                config.estimate_cost(usage.prompt_tokens, usage.completion_tokens),
                6,
            ),
            latency_ms=latency_ms,
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
        except Exception as e:
            logger.warning(
                "Failed to record usage (user=%s, model=%s): %s",
                user_id, config.id, e,
            )

    async def get_user_usage(
        self, user_id: str, now: datetime | None = None,
    ) -> UsageSummary:
        """Totals for the calendar month containing `now` (default: today)."""
        start, end = month_bounds(now or datetime.now(UTC))
        async with self._session_factory() as session:
            stmt = select(
                func.count(UsageRecord.id),
                func.coalesce(func.sum(UsageRecord.total_tokens), 0),
                func.coalesce(func.sum(UsageRecord.estimated_cost_usd), 0.0),
            ).where(
                UsageRecord.user_id == user_id,
                UsageRecord.created_at >= start,
                UsageRecord.created_at < end,
            )
            count, tokens, cost = (await session.execute(stmt)).one()

        return UsageSummary(
            total_requests=int(count),
            total_tokens=int(tokens),
            total_cost=round(float(cost), 6),
            period_start=start,
            period_end=end,
        )
