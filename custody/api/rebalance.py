"""Rebalance and committed-calendar endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from loguru import logger

from custody.api.dependencies import get_rules, get_storage
from custody.api.schemas import CalendarResponse, RebalanceRequest
from custody.schedule.service import rebalance_with_summary
from custody.schedule.types import Calendar, RebalanceResult, ScheduleRules
from custody.storage.memory import load_calendar_safely
from custody.storage.types import ScheduleStorage

router = APIRouter(tags=["rebalance"])


def committed_calendar(request: Request, storage: ScheduleStorage) -> Calendar | None:
    """Latest committed calendar: the subscription cache, else a fresh load."""
    cached = getattr(request.app.state, "latest_calendar", None)
    if cached is not None:
        return cached
    return load_calendar_safely(storage)


def resolve_base(request: Request, storage: ScheduleStorage, provided: Calendar | None) -> Calendar:
    if provided is not None:
        return provided
    base = committed_calendar(request, storage)
    if base is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No committed calendar available")
    return base


@router.get("/calendar", response_model=CalendarResponse)
async def get_calendar(
    request: Request,
    storage: ScheduleStorage = Depends(get_storage),
) -> CalendarResponse:
    return CalendarResponse(calendar=committed_calendar(request, storage))


@router.post("/rebalance", response_model=RebalanceResult)
async def post_rebalance(
    body: RebalanceRequest,
    request: Request,
    rules: ScheduleRules = Depends(get_rules),
    storage: ScheduleStorage = Depends(get_storage),
) -> RebalanceResult:
    """Rebalance a calendar against a set of disruptions.

    Args:
        body: Calendar (optional, defaults to the committed one) and disruptions

    Returns:
        Rebalanced calendar with summary

    Raises:
        HTTPException: 404 if no calendar is given and none is committed
    """
    base = resolve_base(request, storage, body.base_calendar)
    logger.info("Rebalance requested", disruptions=len(body.disruptions), days=len(base))
    return rebalance_with_summary(base, body.disruptions, rules)
