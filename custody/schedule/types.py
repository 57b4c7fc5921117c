"""Custody calendar types - canonical shape of a schedule.

A calendar answers one question only:
"Who has overnight custody on each day?"

It is:
- immutable (every edit returns a new value)
- contiguous (a gap is a data-integrity violation)
- keyed by opaque YYYY-MM-DD day keys that sort in calendar order
"""

import re
from datetime import date, timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from custody.schedule.errors import MalformedDateError, UnknownGuardianError

GuardianId = str
CalendarDateKey = str
DisruptionSet = dict[CalendarDateKey, GuardianId]
ChangeCause = Literal["disruption", "manual", "auto_balance"]

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_key(value: str) -> date:
    """Parse a YYYY-MM-DD key into a date.

    Raises:
        MalformedDateError: If the key is not a valid calendar day
    """
    if not isinstance(value, str) or not _DATE_KEY_RE.match(value):
        raise MalformedDateError(value)
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise MalformedDateError(value) from e


def date_key(value: date) -> CalendarDateKey:
    return value.isoformat()


def next_key(value: CalendarDateKey, days: int = 1) -> CalendarDateKey:
    return date_key(parse_date_key(value) + timedelta(days=days))


class CalendarDay(BaseModel):
    """One overnight assignment.

    Attributes:
        date: Day key (YYYY-MM-DD)
        assigned_to: Guardian holding overnight custody
        original_assigned_to: Pre-change guardian, set once and never overwritten
        is_disrupted: Whether a hard unavailability forced this day's assignment
        disrupted_by: Guardian who is unavailable on this day
        note: Optional free-text note
        advisory_blocks: Guardians with an informational (soft) block on this day
    """

    model_config = ConfigDict(frozen=True)

    date: CalendarDateKey
    assigned_to: GuardianId
    original_assigned_to: GuardianId | None = None
    is_disrupted: bool = False
    disrupted_by: GuardianId | None = None
    note: str | None = None
    advisory_blocks: tuple[GuardianId, ...] = ()

    @field_validator("date")
    @classmethod
    def validate_date(cls, value: str) -> str:
        parse_date_key(value)
        return value


class Calendar(BaseModel):
    """Ordered, gap-free mapping of day keys to assignments."""

    model_config = ConfigDict(frozen=True)

    days: dict[CalendarDateKey, CalendarDay] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_contiguous(self) -> "Calendar":
        keys = sorted(self.days)
        previous: date | None = None
        for key in keys:
            day = self.days[key]
            if day.date != key:
                raise ValueError(f"Calendar key {key} does not match day date {day.date}")
            current = parse_date_key(key)
            if previous is not None and current - previous != timedelta(days=1):
                raise ValueError(f"Calendar has a gap between {date_key(previous)} and {key}")
            previous = current
        if list(self.days) != keys:
            self.__dict__["days"] = {key: self.days[key] for key in keys}
        return self

    def __len__(self) -> int:
        return len(self.days)

    def __contains__(self, key: object) -> bool:
        return key in self.days

    def __getitem__(self, key: CalendarDateKey) -> CalendarDay:
        return self.days[key]

    def keys(self) -> list[CalendarDateKey]:
        return list(self.days)

    def values(self) -> list[CalendarDay]:
        return list(self.days.values())

    def assignments(self) -> list[GuardianId]:
        return [day.assigned_to for day in self.days.values()]

    @property
    def start_date(self) -> CalendarDateKey | None:
        return next(iter(self.days), None)

    @property
    def end_date(self) -> CalendarDateKey | None:
        return next(reversed(self.days), None)


class ScheduleRules(BaseModel):
    """Rules every valid calendar honors.

    Attributes:
        guardian_a: First guardian id
        guardian_b: Second guardian id
        max_run_length: Longest allowed run of consecutive nights
        default_block_length: Block length of the baseline rotation
        window_days: Size of the fairness accounting window
        window_min: Minimum nights per guardian inside a full window
        window_max: Maximum nights per guardian inside a full window
        horizon_min_difference: Floor of the horizon-wide fairness bound
        horizon_difference_ratio: Share of total days allowed as horizon imbalance
    """

    model_config = ConfigDict(frozen=True)

    guardian_a: GuardianId
    guardian_b: GuardianId
    max_run_length: int = 4
    default_block_length: int = 3
    window_days: int = 14
    window_min: int = 6
    window_max: int = 8
    horizon_min_difference: int = 3
    horizon_difference_ratio: float = 0.15

    @model_validator(mode="after")
    def validate_guardians(self) -> "ScheduleRules":
        if self.guardian_a == self.guardian_b:
            raise ValueError("The two guardian ids must differ")
        if self.window_min > self.window_max or self.window_max > self.window_days:
            raise ValueError("Fairness band must satisfy window_min <= window_max <= window_days")
        return self

    @property
    def guardians(self) -> tuple[GuardianId, GuardianId]:
        return (self.guardian_a, self.guardian_b)

    @property
    def forbidden_run_length(self) -> int:
        return self.max_run_length + 1

    def other(self, guardian: GuardianId) -> GuardianId:
        """Return the guardian who is not `guardian`.

        Raises:
            UnknownGuardianError: If guardian is not configured
        """
        if guardian == self.guardian_a:
            return self.guardian_b
        if guardian == self.guardian_b:
            return self.guardian_a
        raise UnknownGuardianError(guardian)

    def require(self, guardian: GuardianId, *, date: str | None = None) -> GuardianId:
        if guardian not in self.guardians:
            raise UnknownGuardianError(guardian, date=date)
        return guardian

    def horizon_difference_bound(self, total_days: int) -> int:
        return max(self.horizon_min_difference, int(total_days * self.horizon_difference_ratio))


class ChangeRecord(BaseModel):
    """A single effective assignment change, derived from a preview overlay."""

    date: CalendarDateKey
    from_guardian: GuardianId
    to_guardian: GuardianId
    cause: ChangeCause


class CustodyRun(BaseModel):
    """A maximal block of consecutive nights with one guardian."""

    guardian: GuardianId
    start_date: CalendarDateKey
    end_date: CalendarDateKey
    length: int


class RebalanceSummary(BaseModel):
    changed_count: int
    guardian_a_days: int
    guardian_b_days: int
    transition_count: int


class RebalanceResult(BaseModel):
    calendar: Calendar
    summary: RebalanceSummary
