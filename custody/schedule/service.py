"""Rebalance service - boundary validation plus result summary."""

from loguru import logger

from custody.schedule.calendar import (
    changed_dates,
    count_transitions,
    ensure_calendar_integrity,
    ensure_disruptions_valid,
    guardian_day_counts,
)
from custody.schedule.rebalancer import rebalance
from custody.schedule.types import Calendar, DisruptionSet, RebalanceResult, RebalanceSummary, ScheduleRules


def summarize(before: Calendar, after: Calendar, rules: ScheduleRules) -> RebalanceSummary:
    counts = guardian_day_counts(after, rules)
    return RebalanceSummary(
        changed_count=len(changed_dates(before, after)),
        guardian_a_days=counts[rules.guardian_a],
        guardian_b_days=counts[rules.guardian_b],
        transition_count=count_transitions(after),
    )


def rebalance_with_summary(base: Calendar, disruptions: DisruptionSet, rules: ScheduleRules) -> RebalanceResult:
    """Validate inputs, rebalance, and summarize the outcome.

    Raises:
        CalendarIntegrityError: If the calendar or disruptions fail validation
    """
    ensure_calendar_integrity(base, rules)
    ensure_disruptions_valid(disruptions, rules)

    calendar = rebalance(base, disruptions, rules)
    summary = summarize(base, calendar, rules)
    logger.info(
        "Rebalance summary",
        changed_count=summary.changed_count,
        transition_count=summary.transition_count,
    )
    return RebalanceResult(calendar=calendar, summary=summary)
