"""Natural-language parser boundary.

The parser itself is an external collaborator; its structured output is
converted here into an ordinary disruption set with no special casing.
"""

from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field

from custody.schedule.errors import CalendarIntegrityError
from custody.schedule.types import CalendarDateKey, DisruptionSet, GuardianId, ScheduleRules, parse_date_key

ParsedAction = Literal[
    "mark_unavailable",
    "request_swap",
    "optimize_schedule",
    "explain_schedule",
    "reset_pattern",
]


class ParsedRequest(BaseModel):
    """Structured request produced by the NL parser.

    Attributes:
        action: What the requester wants done
        dates: Day keys the request refers to
        guardian: Guardian the request is about (defaults to the requester)
        reason_text: Free-text reason, kept for notes and explanations
    """

    action: ParsedAction
    dates: list[CalendarDateKey] = Field(default_factory=list)
    guardian: GuardianId | None = None
    reason_text: str = ""


def to_disruption_set(
    parsed: ParsedRequest,
    rules: ScheduleRules,
    requested_by: GuardianId | None = None,
) -> DisruptionSet:
    """Convert a parsed request into a disruption set.

    Only `mark_unavailable` produces disruptions; every other action yields
    an empty set.

    Args:
        parsed: Parser output
        rules: Schedule rules (known guardians)
        requested_by: Guardian who typed the request, used when the parser
            did not name one

    Returns:
        Mapping of date -> unavailable guardian

    Raises:
        MalformedDateError: If a parsed date is not a YYYY-MM-DD day
        UnknownGuardianError: If the guardian is not configured
        CalendarIntegrityError: If no guardian can be determined
    """
    if parsed.action != "mark_unavailable":
        logger.debug("Parsed request carries no disruptions", action=parsed.action)
        return {}

    guardian = parsed.guardian or requested_by
    if guardian is None:
        raise CalendarIntegrityError("Unavailability request does not name a guardian")

    disruptions: DisruptionSet = {}
    for key in parsed.dates:
        parse_date_key(key)
        disruptions[key] = rules.require(guardian, date=key)
    return disruptions
