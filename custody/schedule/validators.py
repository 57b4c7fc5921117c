"""Validators for custody calendars.

Enforces the structural and fairness invariants shared by the rebalancer
self-checks and the optimizer gate:
- No single-night islands (except at the visible horizon's edges)
- No runs at or above the forbidden length (max run + 1)
- Horizon-wide day-count difference within max(3, 15% of total days)
"""

from loguru import logger
from pydantic import BaseModel

from custody.schedule.calendar import guardian_day_counts, list_runs
from custody.schedule.types import Calendar, CalendarDateKey, CustodyRun, GuardianId, ScheduleRules


class ScheduleValidation(BaseModel):
    """Outcome of validating a calendar.

    Attributes:
        is_valid: True when no issue was found
        issues: Human-readable description of each violated rule
        islands: Dates holding an interior single-night run
        long_runs: Runs at or above the forbidden length
        guardian_days: Nights per guardian over the whole horizon
        difference: Absolute difference between the two guardians
        allowed_difference: Horizon fairness bound for this calendar size
    """

    is_valid: bool
    issues: list[str] = []
    islands: list[CalendarDateKey] = []
    long_runs: list[CustodyRun] = []
    guardian_days: dict[GuardianId, int] = {}
    difference: int = 0
    allowed_difference: int = 0


def find_islands(calendar: Calendar) -> list[CalendarDateKey]:
    """Dates of single-night runs that do not touch the first or last day."""
    keys = calendar.keys()
    if not keys:
        return []
    first, last = keys[0], keys[-1]
    return [
        run.start_date
        for run in list_runs(calendar)
        if run.length == 1 and run.start_date not in (first, last)
    ]


def find_long_runs(calendar: Calendar, min_length: int) -> list[CustodyRun]:
    return [run for run in list_runs(calendar) if run.length >= min_length]


def fairness_score(calendar: Calendar, rules: ScheduleRules) -> float:
    """Score the horizon split on a 0-10 scale (10 = perfectly even)."""
    total = len(calendar)
    if total == 0:
        return 10.0
    ideal = total / 2
    deviation = abs(guardian_day_counts(calendar, rules)[rules.guardian_a] - ideal)
    score = max(0.0, 10.0 - (deviation / ideal) * 10.0)
    return round(score, 1)


def validate_schedule(calendar: Calendar, rules: ScheduleRules) -> ScheduleValidation:
    """Validate a calendar against the structural and fairness invariants.

    Args:
        calendar: Calendar to check
        rules: Schedule rules (guardians, run limits, fairness bounds)

    Returns:
        ScheduleValidation with every violated rule listed
    """
    issues: list[str] = []

    islands = find_islands(calendar)
    if islands:
        issues.append(f"Creates {len(islands)} single-night assignment(s): {', '.join(islands)}")

    long_runs = find_long_runs(calendar, rules.forbidden_run_length)
    if long_runs:
        described = ", ".join(f"{run.start_date} ({run.length} nights)" for run in long_runs)
        issues.append(f"Creates {len(long_runs)} run(s) longer than {rules.max_run_length} nights: {described}")

    counts = guardian_day_counts(calendar, rules)
    difference = abs(counts[rules.guardian_a] - counts[rules.guardian_b])
    allowed = rules.horizon_difference_bound(len(calendar))
    if difference > allowed:
        issues.append(f"Creates unfair distribution (difference: {difference}, max allowed: {allowed})")

    if issues:
        logger.debug("Schedule validation failed", issue_count=len(issues))

    return ScheduleValidation(
        is_valid=not issues,
        issues=issues,
        islands=islands,
        long_runs=long_runs,
        guardian_days=counts,
        difference=difference,
        allowed_difference=allowed,
    )


def is_structurally_valid(calendar: Calendar, rules: ScheduleRules) -> bool:
    """Islands and run length only, ignoring fairness."""
    return not find_islands(calendar) and not find_long_runs(calendar, rules.forbidden_run_length)
