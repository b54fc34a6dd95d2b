# =============================================================================
# Usage API — Current-Month Totals for the Caller
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends

from gateway.api.deps import get_current_user_id, get_usage_service
from gateway.errors import ServiceError
from gateway.models.responses import UsageResponse
from gateway.services.usage import UsageService

router = APIRouter(tags=["Usage"])


@router.get(
    "/usage",
    response_model=UsageResponse,
    summary="Usage totals for the current month",
    description=(
        "Requests, tokens and estimated cost (USD) of the caller's "
        "completions since the first day of the current month (UTC)."
    ),
)
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    usage_service: UsageService | None = Depends(get_usage_service),
) -> UsageResponse:
    if usage_service is None:
        raise ServiceError("Usage tracking is disabled", 404)

    summary = await usage_service.get_user_usage(user_id)
    return UsageResponse(
        total_requests=summary.total_requests,
        total_tokens=summary.total_tokens,
        total_cost=summary.total_cost,
        period_start=summary.period_start,
        period_end=summary.period_end,
    )
