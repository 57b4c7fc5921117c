"""Baseline rotation generation and in-phase extension."""

from datetime import timedelta

from loguru import logger

from custody.schedule.types import (
    Calendar,
    CalendarDateKey,
    CalendarDay,
    GuardianId,
    ScheduleRules,
    date_key,
    next_key,
    parse_date_key,
)


def _rotation_days(
    start_date: CalendarDateKey,
    guardian: GuardianId,
    days_left_in_block: int,
    total_days: int,
    rules: ScheduleRules,
) -> dict[CalendarDateKey, CalendarDay]:
    days: dict[CalendarDateKey, CalendarDay] = {}
    current = parse_date_key(start_date)
    remaining = days_left_in_block
    for _ in range(total_days):
        if remaining <= 0:
            guardian = rules.other(guardian)
            remaining = rules.default_block_length
        key = date_key(current)
        days[key] = CalendarDay(date=key, assigned_to=guardian)
        remaining -= 1
        current += timedelta(days=1)
    return days


def generate(
    start_date: CalendarDateKey,
    initial_guardian: GuardianId,
    total_days: int,
    rules: ScheduleRules,
) -> Calendar:
    """Generate a strict alternating block rotation.

    Args:
        start_date: First day of the calendar (YYYY-MM-DD)
        initial_guardian: Guardian holding the first block
        total_days: Number of days to generate (<= 0 yields an empty calendar)
        rules: Schedule rules (block length, guardians)

    Returns:
        Gap-free Calendar starting on start_date
    """
    parse_date_key(start_date)
    rules.require(initial_guardian)
    if total_days <= 0:
        return Calendar()

    days = _rotation_days(start_date, initial_guardian, rules.default_block_length, total_days, rules)
    logger.debug(
        "Generated baseline rotation",
        start_date=start_date,
        total_days=total_days,
        block_length=rules.default_block_length,
    )
    return Calendar(days=days)


def trailing_run(calendar: Calendar) -> tuple[GuardianId, int] | None:
    """Guardian and length of the run ending on the calendar's last day."""
    assignments = calendar.assignments()
    if not assignments:
        return None
    guardian = assignments[-1]
    length = 0
    for assigned in reversed(assignments):
        if assigned != guardian:
            break
        length += 1
    return guardian, length


def extend(calendar: Calendar, target_date: CalendarDateKey, rules: ScheduleRules) -> Calendar:
    """Extend a calendar through target_date, continuing the rotation in phase.

    A trailing run shorter than the block length is completed before the
    other guardian takes over, so the seam never produces a single-night
    island or an oversized run.

    Args:
        calendar: Existing calendar
        target_date: Last day the extended calendar must cover
        rules: Schedule rules

    Returns:
        Extended Calendar (unchanged when empty or already covering target_date)
    """
    target = parse_date_key(target_date)
    tail = trailing_run(calendar)
    if tail is None or calendar.end_date is None:
        return calendar

    last = parse_date_key(calendar.end_date)
    total_days = (target - last).days
    if total_days <= 0:
        return calendar

    guardian, run_length = tail
    days_left = max(0, rules.default_block_length - run_length)
    extension = _rotation_days(next_key(calendar.end_date), guardian, days_left, total_days, rules)

    logger.info(
        "Extended calendar in phase",
        from_date=calendar.end_date,
        to_date=target_date,
        added_days=total_days,
        trailing_guardian=guardian,
        trailing_run=run_length,
    )
    return Calendar(days={**calendar.days, **extension})


def needs_extension(calendar: Calendar, start_date: CalendarDateKey, end_date: CalendarDateKey) -> bool:
    """Whether any day between start_date and end_date (inclusive) is missing."""
    current = parse_date_key(start_date)
    end = parse_date_key(end_date)
    while current <= end:
        if date_key(current) not in calendar:
            return True
        current += timedelta(days=1)
    return False
