"""Proposal metrics.

Deterministic scoring (no LLM) based on the proposed calendar and its changes.
"""

from custody.proposals.types import AffectedRange, FairnessImpact, TransitionDelta
from custody.schedule.calendar import count_transitions, guardian_day_counts
from custody.schedule.types import Calendar, CalendarDateKey, ChangeRecord, ScheduleRules
from custody.schedule.validators import find_islands, find_long_runs


def compute_transition_delta(base: Calendar, proposed: Calendar) -> TransitionDelta:
    before, after = count_transitions(base), count_transitions(proposed)
    return TransitionDelta(before=before, after=after, improvement=before - after)


def compute_fairness_impact(proposed: Calendar, rules: ScheduleRules) -> FairnessImpact:
    counts = guardian_day_counts(proposed, rules)
    a_days, b_days = counts[rules.guardian_a], counts[rules.guardian_b]
    return FairnessImpact(
        guardian_a_days=a_days,
        guardian_b_days=b_days,
        acceptable=abs(a_days - b_days) <= rules.horizon_difference_bound(len(proposed)),
    )


def compute_affected_range(
    changes: list[ChangeRecord],
    disrupted_dates: list[CalendarDateKey],
) -> AffectedRange | None:
    dates = sorted({change.date for change in changes} | set(disrupted_dates))
    if not dates:
        return None
    return AffectedRange(start=dates[0], end=dates[-1])


def compute_proposal_confidence(
    proposed: Calendar,
    changes: list[ChangeRecord],
    disrupted_dates: list[CalendarDateKey],
    delta: TransitionDelta,
    fairness: FairnessImpact,
    rules: ScheduleRules,
) -> float:
    """Compute a confidence score for a proposal.

    Confidence ranges from 0.0 (low) to 1.0 (high).

    Scoring rules:
    - Base score: 1.0
    - Knock-on changes (beyond the disrupted dates): -0.05 each (capped at -0.3)
    - More handoffs than before: -0.1
    - Horizon imbalance over the fairness bound: -0.3
    - Islands or over-length runs in the proposed calendar: -0.3

    Args:
        proposed: Calendar the proposal would commit
        changes: Effective changes against the base
        disrupted_dates: Dates that prompted the proposal
        delta: Transition counts before and after
        fairness: Per-guardian nights in the proposed calendar
        rules: Schedule rules

    Returns:
        Confidence score between 0.0 and 1.0
    """
    score = 1.0

    disrupted = set(disrupted_dates)
    knock_on = sum(1 for change in changes if change.date not in disrupted)
    if knock_on > 0:
        score -= min(knock_on * 0.05, 0.3)

    if delta.improvement < 0:
        score -= 0.1

    if not fairness.acceptable:
        score -= 0.3

    if find_islands(proposed) or find_long_runs(proposed, rules.forbidden_run_length):
        score -= 0.3

    return round(max(0.0, min(1.0, score)), 2)
