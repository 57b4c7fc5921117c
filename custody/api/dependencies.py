"""FastAPI dependencies: caller identity and process-wide collaborators."""

from fastapi import Header, HTTPException, Request, status
from loguru import logger

from custody.optimizer.types import ProposalOptimizer
from custody.proposals.workflow import ProposalWorkflow
from custody.schedule.types import GuardianId, ScheduleRules
from custody.storage.types import ScheduleStorage


def get_rules(request: Request) -> ScheduleRules:
    return request.app.state.rules


def get_workflow(request: Request) -> ProposalWorkflow:
    return request.app.state.workflow


def get_optimizer(request: Request) -> ProposalOptimizer | None:
    return request.app.state.optimizer


def get_storage(request: Request) -> ScheduleStorage:
    return request.app.state.storage


def get_current_guardian_id(
    request: Request,
    x_guardian_id: str | None = Header(default=None, alias="X-Guardian-Id"),
) -> GuardianId:
    """Resolve the calling guardian from the X-Guardian-Id header.

    Args:
        request: FastAPI request object (for rules and logging)
        x_guardian_id: Raw header value

    Returns:
        Guardian id of the caller

    Raises:
        HTTPException: 401 if the header is missing, 403 if it names an unknown guardian
    """
    if not x_guardian_id:
        logger.warning("Missing X-Guardian-Id header", path=request.url.path, method=request.method)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-Guardian-Id header is required")

    rules: ScheduleRules = request.app.state.rules
    if x_guardian_id not in rules.guardians:
        logger.warning("Unknown guardian in X-Guardian-Id", guardian=x_guardian_id, path=request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Unknown guardian: {x_guardian_id}")
    return x_guardian_id
