"""Proposal optimizer contract.

The optimizer is an external collaborator that may suggest single-day flips
on an already-valid calendar. Its output is never applied without passing
the shared schedule validator.
"""

from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from custody.schedule.types import Calendar, CalendarDateKey, GuardianId


class OptimizerRequest(BaseModel):
    """Payload sent to the optimizer.

    Attributes:
        base_calendar: Already-valid calendar produced by the rebalancer
        disrupted_dates: Dates that are hard-disrupted and must not move
        disrupting_guardian: Guardian behind the disruptions, when there is only one
        window_start: First day of the neighborhood the optimizer should consider
        window_end: Last day of that neighborhood
        current_transition_count: Handoffs in base_calendar
        run_structure: Textual description of the runs inside the window
    """

    base_calendar: Calendar
    disrupted_dates: list[CalendarDateKey]
    disrupting_guardian: GuardianId | None = None
    window_start: CalendarDateKey
    window_end: CalendarDateKey
    current_transition_count: int
    run_structure: str = ""


class OptimizerChange(BaseModel):
    """A single proposed flip. Serialized with `from`/`to` keys."""

    model_config = ConfigDict(populate_by_name=True)

    date: CalendarDateKey
    from_guardian: GuardianId = Field(alias="from")
    to_guardian: GuardianId = Field(alias="to")
    reason: str = ""


class OptimizerResponse(BaseModel):
    changes: list[OptimizerChange] = Field(default_factory=list)
    explanation: str = ""
    reasoning: str = ""


class OptimizerError(Exception):
    """Optimizer call failed (transport, status, or malformed payload)."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(self.message)


class ProposalOptimizer(Protocol):
    async def propose(self, request: OptimizerRequest) -> OptimizerResponse: ...
