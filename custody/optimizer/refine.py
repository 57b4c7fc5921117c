"""Optional optimizer pass over a rebalanced calendar.

The optimizer's proposal is applied to a copy of the rebalancer result and
kept only if it passes the shared validator and does not add handoffs.
Every failure falls back to the rebalancer result with an explanation.
"""

import asyncio

from loguru import logger
from pydantic import BaseModel

from custody.optimizer.types import (
    OptimizerChange,
    OptimizerError,
    OptimizerRequest,
    OptimizerResponse,
    ProposalOptimizer,
)
from custody.schedule.calendar import count_transitions, list_runs, with_changes
from custody.schedule.types import Calendar, CalendarDateKey, DisruptionSet, ScheduleRules, parse_date_key
from custody.schedule.validators import validate_schedule

FALLBACK_SUFFIX = "using rebalancer result"


class OptimizationOutcome(BaseModel):
    """Result of the optimizer pass.

    Attributes:
        calendar: Calendar to use (optimizer-refined or the rebalancer result)
        used_optimizer: True when optimizer changes were applied
        explanation: Informational note on what happened
        rejection_reason: Why optimizer output was discarded, if it was
    """

    calendar: Calendar
    used_optimizer: bool = False
    explanation: str | None = None
    rejection_reason: str | None = None


def describe_run_structure(
    calendar: Calendar,
    window_start: CalendarDateKey | None = None,
    window_end: CalendarDateKey | None = None,
) -> str:
    """Render the day-by-day assignments and run summary for a window.

    Example line pair:
        2024-06-01 (Sat): A
        >>> RUN: A has 3 nights (2024-06-01 to 2024-06-03) <<<
    """
    keys = calendar.keys()
    position = {key: i for i, key in enumerate(keys)}
    lines: list[str] = []
    for run in list_runs(calendar):
        if window_start is not None and run.end_date < window_start:
            continue
        if window_end is not None and run.start_date > window_end:
            continue
        for key in keys[position[run.start_date] : position[run.end_date] + 1]:
            if (window_start is None or key >= window_start) and (window_end is None or key <= window_end):
                weekday = parse_date_key(key).strftime("%a")
                lines.append(f"{key} ({weekday}): {run.guardian}")
        lines.append(
            f">>> RUN: {run.guardian} has {run.length} nights ({run.start_date} to {run.end_date}) <<<"
        )
    return "\n".join(lines)


def optimizer_window(
    calendar: Calendar,
    disruptions: DisruptionSet,
    rules: ScheduleRules,
) -> tuple[CalendarDateKey, CalendarDateKey] | None:
    """Neighborhood around the disrupted dates, clipped to the calendar."""
    keys = calendar.keys()
    index = {key: i for i, key in enumerate(keys)}
    hits = sorted(index[key] for key in disruptions if key in index)
    if not hits:
        return None
    margin = rules.window_days // 2
    lo = max(0, hits[0] - margin)
    hi = min(len(keys) - 1, hits[-1] + margin)
    return keys[lo], keys[hi]


def build_request(calendar: Calendar, disruptions: DisruptionSet, rules: ScheduleRules) -> OptimizerRequest | None:
    window = optimizer_window(calendar, disruptions, rules)
    if window is None:
        return None
    disrupted = sorted(key for key in disruptions if key in calendar)
    guardians = {disruptions[key] for key in disrupted}
    return OptimizerRequest(
        base_calendar=calendar,
        disrupted_dates=disrupted,
        disrupting_guardian=guardians.pop() if len(guardians) == 1 else None,
        window_start=window[0],
        window_end=window[1],
        current_transition_count=count_transitions(calendar),
        run_structure=describe_run_structure(calendar, *window),
    )


def _change_problem(
    change: OptimizerChange,
    calendar: Calendar,
    disruptions: DisruptionSet,
    rules: ScheduleRules,
) -> str | None:
    if change.date not in calendar:
        return f"change references unknown date {change.date}"
    if change.from_guardian not in rules.guardians or change.to_guardian not in rules.guardians:
        return f"change on {change.date} references an unknown guardian"
    day = calendar[change.date]
    if change.from_guardian != day.assigned_to:
        return f"change on {change.date} expects {change.from_guardian} but the day belongs to {day.assigned_to}"
    disruptor = disruptions.get(change.date) or day.disrupted_by
    if disruptor is not None and change.to_guardian == disruptor:
        return f"change assigns {change.date} to {disruptor}, who is unavailable that day"
    return None


def check_optimizer_changes(
    calendar: Calendar,
    changes: list[OptimizerChange],
    disruptions: DisruptionSet,
    rules: ScheduleRules,
) -> tuple[Calendar | None, str | None]:
    """Apply optimizer changes to a copy and validate the result.

    Returns:
        (candidate, None) when every check passes, else (None, reason)
    """
    for change in changes:
        problem = _change_problem(change, calendar, disruptions, rules)
        if problem is not None:
            return None, problem

    candidate = with_changes(calendar, {change.date: {"assigned_to": change.to_guardian} for change in changes})
    validation = validate_schedule(candidate, rules)
    if not validation.is_valid:
        return None, "; ".join(validation.issues)

    before, after = count_transitions(calendar), count_transitions(candidate)
    if after > before:
        return None, f"increases transitions from {before} to {after}"
    return candidate, None


async def _call_optimizer(
    optimizer: ProposalOptimizer,
    request: OptimizerRequest,
    timeout: float | None,
) -> OptimizerResponse:
    if timeout is None:
        return await optimizer.propose(request)
    return await asyncio.wait_for(optimizer.propose(request), timeout)


async def refine_with_optimizer(
    calendar: Calendar,
    disruptions: DisruptionSet,
    rules: ScheduleRules,
    optimizer: ProposalOptimizer | None = None,
    timeout: float | None = None,
) -> OptimizationOutcome:
    """Give the optimizer a chance to improve a rebalanced calendar.

    Args:
        calendar: Rebalancer output (already valid)
        disruptions: Disruptions the calendar was rebalanced for
        rules: Schedule rules
        optimizer: Optimizer collaborator, or None when not configured
        timeout: Upper bound on the optimizer round trip, in seconds

    Returns:
        OptimizationOutcome; never raises for optimizer failures
    """
    if optimizer is None:
        return OptimizationOutcome(calendar=calendar, explanation=f"Optimizer not configured; {FALLBACK_SUFFIX}")

    request = build_request(calendar, disruptions, rules)
    if request is None:
        return OptimizationOutcome(calendar=calendar, explanation=f"No disrupted dates in range; {FALLBACK_SUFFIX}")

    try:
        response = await _call_optimizer(optimizer, request, timeout)
    except asyncio.TimeoutError:
        logger.warning("Optimizer timed out, falling back", timeout=timeout)
        return OptimizationOutcome(calendar=calendar, explanation=f"Optimizer timed out after {timeout}s; {FALLBACK_SUFFIX}")
    except OptimizerError as e:
        logger.warning("Optimizer failed, falling back", code=e.code, error=e.message)
        return OptimizationOutcome(
            calendar=calendar,
            explanation=f"Optimizer unavailable ({e.code}): {e.message}; {FALLBACK_SUFFIX}",
        )
    except Exception as e:
        logger.warning(f"Optimizer raised unexpectedly, falling back: {e}")
        return OptimizationOutcome(calendar=calendar, explanation=f"Optimizer error: {e}; {FALLBACK_SUFFIX}")

    if not response.changes:
        note = response.explanation or "Optimizer proposed no changes"
        return OptimizationOutcome(calendar=calendar, explanation=f"{note}; {FALLBACK_SUFFIX}")

    candidate, reason = check_optimizer_changes(calendar, response.changes, disruptions, rules)
    if candidate is None:
        logger.warning("Optimizer proposal rejected", reason=reason, change_count=len(response.changes))
        return OptimizationOutcome(
            calendar=calendar,
            explanation=f"Optimizer proposal rejected: {reason}; {FALLBACK_SUFFIX}",
            rejection_reason=reason,
        )

    logger.info(
        "Optimizer proposal applied",
        change_count=len(response.changes),
        transitions_before=request.current_transition_count,
        transitions_after=count_transitions(candidate),
    )
    return OptimizationOutcome(
        calendar=candidate,
        used_optimizer=True,
        explanation=response.explanation or f"Optimizer applied {len(response.changes)} change(s)",
    )
