"""Root conftest for all tests.

Shared fixtures: schedule rules for guardians "A"/"B" and the baseline
calendars used across the schedule, preview and proposal tests.
"""

from collections.abc import Callable

import pytest

from custody.schedule.calendar import build_calendar
from custody.schedule.pattern import generate
from custody.schedule.types import Calendar, ScheduleRules

START = "2024-06-01"


@pytest.fixture
def rules() -> ScheduleRules:
    """Default rules for guardians A and B."""
    return ScheduleRules(guardian_a="A", guardian_b="B")


@pytest.fixture
def nine_day_base(rules: ScheduleRules) -> Calendar:
    """A,A,A,B,B,B,A,A,A starting 2024-06-01."""
    return generate(START, "A", 9, rules)


@pytest.fixture
def fortnight_base(rules: ScheduleRules) -> Calendar:
    """One full 14-day window of the 3-day rotation, A first."""
    return generate(START, "A", 14, rules)


@pytest.fixture
def calendar_from() -> Callable[[str], Calendar]:
    """Build a calendar from a compact pattern such as "AABBA", starting 2024-06-01."""

    def _build(pattern: str, start: str = START) -> Calendar:
        return build_calendar(start, list(pattern))

    return _build
