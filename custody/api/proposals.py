"""Proposal workflow endpoints.

Workflow violations come back with the WorkflowResult body: 404 for an
unknown proposal, 409 otherwise.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from custody.api.dependencies import get_current_guardian_id, get_storage, get_workflow
from custody.api.rebalance import committed_calendar
from custody.api.schemas import CreateProposalRequest, RejectProposalRequest
from custody.proposals.types import Proposal, ProposalStats, WorkflowResult
from custody.proposals.workflow import ProposalWorkflow
from custody.schedule.types import GuardianId
from custody.storage.types import ScheduleStorage

router = APIRouter(prefix="/proposals", tags=["proposals"])


def _respond(result: WorkflowResult) -> WorkflowResult | JSONResponse:
    if result.success:
        return result
    status_code = status.HTTP_404_NOT_FOUND if result.code == "not_found" else status.HTTP_409_CONFLICT
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post("", response_model=WorkflowResult)
async def create_proposal(
    body: CreateProposalRequest,
    guardian_id: GuardianId = Depends(get_current_guardian_id),
    workflow: ProposalWorkflow = Depends(get_workflow),
):
    return _respond(workflow.create_from_overlay(body.overlay, guardian_id, body.title, body.message))


@router.get("", response_model=list[Proposal])
async def list_proposals(
    guardian_id: GuardianId = Depends(get_current_guardian_id),
    workflow: ProposalWorkflow = Depends(get_workflow),
) -> list[Proposal]:
    return workflow.list_for(guardian_id)


@router.get("/pending", response_model=list[Proposal])
async def pending_proposals(
    guardian_id: GuardianId = Depends(get_current_guardian_id),
    workflow: ProposalWorkflow = Depends(get_workflow),
) -> list[Proposal]:
    return workflow.pending_for(guardian_id)


@router.get("/stats", response_model=ProposalStats)
async def proposal_stats(workflow: ProposalWorkflow = Depends(get_workflow)) -> ProposalStats:
    return workflow.stats()


@router.post("/cleanup")
async def cleanup_expired(workflow: ProposalWorkflow = Depends(get_workflow)) -> dict[str, int]:
    return {"expired": workflow.cleanup_expired()}


@router.get("/{proposal_id}", response_model=Proposal)
async def get_proposal(
    proposal_id: str,
    workflow: ProposalWorkflow = Depends(get_workflow),
):
    proposal = workflow.get(proposal_id)
    if proposal is None:
        return _respond(WorkflowResult(success=False, error=f"Proposal not found: {proposal_id}", code="not_found"))
    return proposal


@router.post("/{proposal_id}/accept", response_model=WorkflowResult)
async def accept_proposal(
    proposal_id: str,
    request: Request,
    guardian_id: GuardianId = Depends(get_current_guardian_id),
    workflow: ProposalWorkflow = Depends(get_workflow),
    storage: ScheduleStorage = Depends(get_storage),
):
    """Accept a proposal and commit its calendar.

    A proposal whose base is no longer the committed calendar is refused with
    409 and stays pending.
    """
    result = workflow.accept(proposal_id, guardian_id, current_calendar=committed_calendar(request, storage))
    if result.success and result.proposal is not None:
        storage.save_calendar(result.proposal.proposed_calendar)
        logger.info("Accepted proposal committed", proposal_id=proposal_id, reviewer=guardian_id)
    return _respond(result)


@router.post("/{proposal_id}/reject", response_model=WorkflowResult)
async def reject_proposal(
    proposal_id: str,
    body: RejectProposalRequest | None = None,
    guardian_id: GuardianId = Depends(get_current_guardian_id),
    workflow: ProposalWorkflow = Depends(get_workflow),
):
    reason = body.reason if body is not None else None
    return _respond(workflow.reject(proposal_id, guardian_id, reason))


@router.post("/{proposal_id}/withdraw", response_model=WorkflowResult)
async def withdraw_proposal(
    proposal_id: str,
    guardian_id: GuardianId = Depends(get_current_guardian_id),
    workflow: ProposalWorkflow = Depends(get_workflow),
):
    return _respond(workflow.withdraw(proposal_id, guardian_id))
