"""Proposal types for the approval workflow."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from custody.schedule.types import Calendar, CalendarDateKey, ChangeRecord, GuardianId

ProposalStatus = Literal["pending", "accepted", "rejected", "expired", "withdrawn"]
WorkflowErrorCode = Literal["not_found", "invalid_state", "forbidden", "invalid_input"]


class AffectedRange(BaseModel):
    start: CalendarDateKey
    end: CalendarDateKey


class TransitionDelta(BaseModel):
    """Handoff count before and after the proposal (improvement = before - after)."""

    before: int
    after: int
    improvement: int


class FairnessImpact(BaseModel):
    guardian_a_days: int
    guardian_b_days: int
    acceptable: bool


class Proposal(BaseModel):
    """Frozen snapshot of a preview diff offered for the other guardian's approval.

    Attributes:
        id: Proposal identifier
        created_by: Guardian who created the proposal
        created_at: Creation time (UTC)
        expires_at: Time after which a pending proposal reads as expired
        status: Lifecycle status
        title: Short title
        message: Message to the reviewer
        disrupted_dates: Dates whose unavailability prompted the proposal
        base_calendar: Calendar the proposal was computed against
        proposed_calendar: Calendar that accepting the proposal would commit
        changes: Effective changes between base and proposed
        affected_range: First and last changed date
        transition_delta: Handoff counts before and after
        fairness_impact: Nights per guardian in the proposed calendar
        confidence: Deterministic 0-1 score
        reviewed_at: When the proposal left pending
        reviewed_by: Who moved it out of pending
        rejection_reason: Optional reason given on rejection
    """

    id: str
    created_by: GuardianId
    created_at: datetime
    expires_at: datetime
    status: ProposalStatus = "pending"
    title: str
    message: str = ""
    disrupted_dates: list[CalendarDateKey] = Field(default_factory=list)
    base_calendar: Calendar
    proposed_calendar: Calendar
    changes: list[ChangeRecord] = Field(default_factory=list)
    affected_range: AffectedRange | None = None
    transition_delta: TransitionDelta
    fairness_impact: FairnessImpact
    confidence: float
    reviewed_at: datetime | None = None
    reviewed_by: GuardianId | None = None
    rejection_reason: str | None = None


class WorkflowResult(BaseModel):
    """Outcome of a workflow call. Violations are results, not exceptions."""

    success: bool
    error: str | None = None
    code: WorkflowErrorCode | None = None
    proposal: Proposal | None = None


class ProposalStats(BaseModel):
    total: int = 0
    pending: int = 0
    accepted: int = 0
    rejected: int = 0
    expired: int = 0
    withdrawn: int = 0
