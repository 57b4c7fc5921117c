"""Calendar construction and inspection helpers.

Every component edits calendars through `with_change` / `with_changes`,
which return new immutable values and enforce the provenance rule:
`original_assigned_to` is recorded on the first real reassignment of a day
and never overwritten afterwards.
"""

from typing import Any

from custody.schedule.errors import CalendarIntegrityError
from custody.schedule.types import (
    Calendar,
    CalendarDateKey,
    CalendarDay,
    CustodyRun,
    DisruptionSet,
    GuardianId,
    ScheduleRules,
    next_key,
    parse_date_key,
)

_PATCHABLE_FIELDS = {
    "assigned_to",
    "original_assigned_to",
    "is_disrupted",
    "disrupted_by",
    "note",
    "advisory_blocks",
}


def patch_day(day: CalendarDay, patch: dict[str, Any]) -> CalendarDay:
    """Return a copy of one day with the patch applied and provenance recorded."""
    unknown = set(patch) - _PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot patch calendar day fields: {sorted(unknown)}")

    update = dict(patch)
    if day.original_assigned_to is not None:
        update.pop("original_assigned_to", None)
    new_assignee = update.get("assigned_to", day.assigned_to)
    if (
        day.original_assigned_to is None
        and "original_assigned_to" not in update
        and new_assignee != day.assigned_to
    ):
        update["original_assigned_to"] = day.assigned_to
    if "advisory_blocks" in update:
        update["advisory_blocks"] = tuple(update["advisory_blocks"])
    return day.model_copy(update=update)


def with_change(calendar: Calendar, date: CalendarDateKey, patch: dict[str, Any]) -> Calendar:
    """Return a new calendar with one day patched.

    Args:
        calendar: Source calendar (left untouched)
        date: Day key to patch
        patch: Field updates for the day

    Returns:
        New Calendar value

    Raises:
        CalendarIntegrityError: If the date is not part of the calendar
    """
    return with_changes(calendar, {date: patch})


def with_changes(calendar: Calendar, patches: dict[CalendarDateKey, dict[str, Any]]) -> Calendar:
    """Return a new calendar with several days patched at once."""
    if not patches:
        return calendar
    days = dict(calendar.days)
    for key, patch in patches.items():
        if key not in days:
            raise CalendarIntegrityError(f"Date {key} is outside the calendar range", date=key)
        days[key] = patch_day(days[key], patch)
    # Keys are unchanged so contiguity still holds; skip re-validation.
    return calendar.model_copy(update={"days": days})


def build_calendar(start_date: CalendarDateKey, assignments: list[GuardianId]) -> Calendar:
    """Build a plain calendar from consecutive assignments starting at start_date."""
    days: dict[CalendarDateKey, CalendarDay] = {}
    key = start_date
    for guardian in assignments:
        days[key] = CalendarDay(date=key, assigned_to=guardian)
        key = next_key(key)
    return Calendar(days=days)


def list_runs(calendar: Calendar) -> list[CustodyRun]:
    """Split a calendar into maximal same-guardian runs, in date order."""
    runs: list[CustodyRun] = []
    keys = calendar.keys()
    start = 0
    for i in range(1, len(keys) + 1):
        if i == len(keys) or calendar[keys[i]].assigned_to != calendar[keys[start]].assigned_to:
            runs.append(
                CustodyRun(
                    guardian=calendar[keys[start]].assigned_to,
                    start_date=keys[start],
                    end_date=keys[i - 1],
                    length=i - start,
                )
            )
            start = i
    return runs


def count_transitions(calendar: Calendar) -> int:
    """Count handoffs: days whose guardian differs from the previous day's."""
    assignments = calendar.assignments()
    return sum(1 for prev, cur in zip(assignments, assignments[1:]) if prev != cur)


def guardian_day_counts(calendar: Calendar, rules: ScheduleRules) -> dict[GuardianId, int]:
    counts = {guardian: 0 for guardian in rules.guardians}
    for day in calendar.values():
        counts[day.assigned_to] = counts.get(day.assigned_to, 0) + 1
    return counts


def changed_dates(before: Calendar, after: Calendar) -> list[CalendarDateKey]:
    """Dates present in both calendars whose guardian differs."""
    return [
        key
        for key, day in after.days.items()
        if key in before.days and before.days[key].assigned_to != day.assigned_to
    ]


def ensure_calendar_integrity(calendar: Calendar, rules: ScheduleRules) -> None:
    """Reject calendars that reference guardians outside the configured pair.

    Contiguity and key format are enforced when the Calendar is constructed;
    this check covers what the model alone cannot know.

    Raises:
        UnknownGuardianError: If any day references an unknown guardian
    """
    for day in calendar.values():
        rules.require(day.assigned_to, date=day.date)
        if day.disrupted_by is not None:
            rules.require(day.disrupted_by, date=day.date)
        if day.original_assigned_to is not None:
            rules.require(day.original_assigned_to, date=day.date)


def ensure_disruptions_valid(disruptions: DisruptionSet, rules: ScheduleRules) -> None:
    """Validate disruption keys and guardians before rebalancing.

    Dates outside the calendar are allowed (they are ignored downstream);
    malformed keys and unknown guardians are not.

    Raises:
        MalformedDateError: If a key is not a YYYY-MM-DD day
        UnknownGuardianError: If a guardian id is not configured
    """
    for key, guardian in disruptions.items():
        parse_date_key(key)
        rules.require(guardian, date=key)
