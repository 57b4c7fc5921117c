"""Preview lifecycle endpoints.

Stateless: every call takes the caller's overlay and returns the next one.
"""

from fastapi import APIRouter, Depends, Request
from loguru import logger

from custody.api.dependencies import get_current_guardian_id, get_optimizer, get_rules, get_storage
from custody.api.rebalance import committed_calendar, resolve_base
from custody.api.schemas import (
    CommitResponse,
    DiffResponse,
    OverlayAssignRequest,
    OverlayDateRequest,
    OverlayRequest,
    PreviewInitRequest,
)
from custody.config.settings import settings
from custody.optimizer.types import ProposalOptimizer
from custody.preview import stage
from custody.preview.stage import PreviewOverlay
from custody.schedule.types import Calendar, GuardianId, ScheduleRules
from custody.storage.types import ScheduleStorage

router = APIRouter(prefix="/preview", tags=["preview"])


@router.post("/init", response_model=PreviewOverlay)
async def init_preview(
    body: PreviewInitRequest,
    request: Request,
    storage: ScheduleStorage = Depends(get_storage),
) -> PreviewOverlay:
    return stage.init(resolve_base(request, storage, body.base_calendar))


@router.post("/disruptions", response_model=PreviewOverlay)
async def mark_disrupted(body: OverlayAssignRequest, rules: ScheduleRules = Depends(get_rules)) -> PreviewOverlay:
    return stage.mark_disrupted(body.overlay, body.date, body.guardian, rules)


@router.post("/disruptions/clear", response_model=PreviewOverlay)
async def clear_disruption(body: OverlayDateRequest) -> PreviewOverlay:
    return stage.clear_disruption(body.overlay, body.date)


@router.post("/rebalance", response_model=PreviewOverlay)
async def run_rebalance(
    body: OverlayRequest,
    rules: ScheduleRules = Depends(get_rules),
    optimizer: ProposalOptimizer | None = Depends(get_optimizer),
) -> PreviewOverlay:
    return await stage.run_rebalance(body.overlay, rules, optimizer, settings.optimizer_timeout_seconds)


@router.post("/manual", response_model=PreviewOverlay)
async def apply_manual(body: OverlayAssignRequest, rules: ScheduleRules = Depends(get_rules)) -> PreviewOverlay:
    return stage.apply_manual(body.overlay, body.date, body.guardian, rules)


@router.post("/manual/clear", response_model=PreviewOverlay)
async def clear_manual(body: OverlayDateRequest) -> PreviewOverlay:
    return stage.clear_manual(body.overlay, body.date)


@router.post("/effective", response_model=Calendar)
async def effective(body: OverlayRequest) -> Calendar:
    return stage.effective(body.overlay)


@router.post("/diff", response_model=DiffResponse)
async def diff(body: OverlayRequest) -> DiffResponse:
    return DiffResponse(changes=stage.diff(body.overlay), dirty=body.overlay.dirty)


@router.post("/commit", response_model=CommitResponse)
async def commit(
    body: OverlayRequest,
    guardian_id: GuardianId = Depends(get_current_guardian_id),
    storage: ScheduleStorage = Depends(get_storage),
) -> CommitResponse:
    """Flatten the overlay and save it as the committed calendar."""
    changes = stage.diff(body.overlay)
    calendar = stage.commit(body.overlay)
    storage.save_calendar(calendar)
    logger.info("Preview commit saved", guardian_id=guardian_id, changes=len(changes))
    return CommitResponse(calendar=calendar, changes=changes)


@router.post("/discard", response_model=PreviewOverlay)
async def discard(
    body: OverlayRequest,
    request: Request,
    storage: ScheduleStorage = Depends(get_storage),
) -> PreviewOverlay:
    """Drop the overlay and start again from the last committed calendar."""
    discarded = stage.discard(body.overlay)
    latest = committed_calendar(request, storage)
    if latest is not None and latest != discarded.base:
        return stage.reset(discarded, latest)
    return discarded
