"""Request and response bodies for the HTTP API."""

from pydantic import BaseModel, Field

from custody.preview.stage import PreviewOverlay
from custody.schedule.types import Calendar, CalendarDateKey, ChangeRecord, DisruptionSet, GuardianId


class RebalanceRequest(BaseModel):
    """Rebalance the given calendar, or the committed one when omitted."""

    base_calendar: Calendar | None = None
    disruptions: DisruptionSet = Field(default_factory=dict)


class PreviewInitRequest(BaseModel):
    base_calendar: Calendar | None = None


class OverlayRequest(BaseModel):
    overlay: PreviewOverlay


class OverlayDateRequest(BaseModel):
    overlay: PreviewOverlay
    date: CalendarDateKey


class OverlayAssignRequest(BaseModel):
    overlay: PreviewOverlay
    date: CalendarDateKey
    guardian: GuardianId


class DiffResponse(BaseModel):
    changes: list[ChangeRecord]
    dirty: bool


class CommitResponse(BaseModel):
    calendar: Calendar
    changes: list[ChangeRecord]


class CreateProposalRequest(BaseModel):
    title: str
    message: str = ""
    overlay: PreviewOverlay


class RejectProposalRequest(BaseModel):
    reason: str | None = None


class CalendarResponse(BaseModel):
    calendar: Calendar | None = None
