"""Staged preview over a custody calendar.

A PreviewOverlay layers tentative edits over a committed base:

    effective = base <- proposed <- manual

Every operation returns a new overlay. `diff` is always recomputed from the
layers and never stored.
"""

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, computed_field

from custody.config.settings import settings
from custody.optimizer.refine import refine_with_optimizer
from custody.optimizer.types import ProposalOptimizer
from custody.schedule.calendar import patch_day, with_changes
from custody.schedule.errors import CalendarIntegrityError, DisruptionConflictError
from custody.schedule.rebalancer import rebalance
from custody.schedule.types import (
    Calendar,
    CalendarDateKey,
    CalendarDay,
    ChangeRecord,
    DisruptionSet,
    GuardianId,
    ScheduleRules,
    parse_date_key,
)


class PreviewOverlay(BaseModel):
    """Immutable layered view of uncommitted calendar changes.

    Attributes:
        base: Last committed calendar
        disruptions: Declared hard unavailabilities (date -> guardian)
        proposed: Days the last rebalance changed relative to base
        manual: Explicit user overrides; always win over proposed
        explanation: Informational outcome of the last rebalance
    """

    model_config = ConfigDict(frozen=True)

    base: Calendar
    disruptions: DisruptionSet = Field(default_factory=dict)
    proposed: dict[CalendarDateKey, CalendarDay] = Field(default_factory=dict)
    manual: dict[CalendarDateKey, CalendarDay] = Field(default_factory=dict)
    explanation: str | None = None

    @computed_field
    @property
    def dirty(self) -> bool:
        return bool(self.disruptions or self.proposed or self.manual)


def _require_date(overlay: PreviewOverlay, date: CalendarDateKey) -> None:
    parse_date_key(date)
    if date not in overlay.base:
        raise CalendarIntegrityError(f"Date {date} is outside the calendar range", date=date)


def _disruptor(overlay: PreviewOverlay, date: CalendarDateKey) -> GuardianId | None:
    if date in overlay.disruptions:
        return overlay.disruptions[date]
    base_day = overlay.base[date]
    return base_day.disrupted_by if base_day.is_disrupted else None


def init(base: Calendar) -> PreviewOverlay:
    return PreviewOverlay(base=base)


def mark_disrupted(
    overlay: PreviewOverlay,
    date: CalendarDateKey,
    guardian: GuardianId,
    rules: ScheduleRules,
) -> PreviewOverlay:
    """Declare a disruption. Does not rebalance.

    A manual override that assigns the day to the now-unavailable guardian
    is dropped, since the disruption always wins.

    Raises:
        CalendarIntegrityError: If the date is malformed or outside the base
        UnknownGuardianError: If the guardian is not configured
    """
    _require_date(overlay, date)
    rules.require(guardian, date=date)

    manual = dict(overlay.manual)
    if date in manual and manual[date].assigned_to == guardian:
        logger.info("Manual override dropped by disruption", date=date, guardian=guardian)
        del manual[date]

    return overlay.model_copy(update={"disruptions": {**overlay.disruptions, date: guardian}, "manual": manual})


def clear_disruption(overlay: PreviewOverlay, date: CalendarDateKey) -> PreviewOverlay:
    """Remove a disruption and the proposed value that existed only because of it."""
    if date not in overlay.disruptions:
        return overlay
    disruptions = {key: guardian for key, guardian in overlay.disruptions.items() if key != date}
    proposed = dict(overlay.proposed)
    if date in proposed and proposed[date].is_disrupted:
        del proposed[date]
    return overlay.model_copy(update={"disruptions": disruptions, "proposed": proposed})


async def run_rebalance(
    overlay: PreviewOverlay,
    rules: ScheduleRules,
    optimizer: ProposalOptimizer | None = None,
    timeout: float | None = None,
) -> PreviewOverlay:
    """Rebalance base against the declared disruptions into the proposed layer.

    The optimizer, when given, refines the rebalancer result under `timeout`;
    any optimizer failure falls back to the rebalancer result and is
    reported in `explanation`, never raised.

    Args:
        overlay: Current overlay
        rules: Schedule rules
        optimizer: Optional optimizer collaborator
        timeout: Optimizer timeout in seconds

    Returns:
        Overlay whose `proposed` holds every day differing from base
    """
    if not overlay.disruptions:
        return overlay.model_copy(update={"proposed": {}, "explanation": "No disruptions to rebalance"})

    if optimizer is not None and timeout is None:
        timeout = settings.optimizer_timeout_seconds

    rebalanced = rebalance(overlay.base, overlay.disruptions, rules)
    outcome = await refine_with_optimizer(rebalanced, overlay.disruptions, rules, optimizer, timeout)

    proposed = {key: day for key, day in outcome.calendar.days.items() if day != overlay.base[key]}
    logger.info(
        "Preview rebalanced",
        disruptions=len(overlay.disruptions),
        proposed=len(proposed),
        used_optimizer=outcome.used_optimizer,
    )
    return overlay.model_copy(update={"proposed": proposed, "explanation": outcome.explanation})


def apply_manual(
    overlay: PreviewOverlay,
    date: CalendarDateKey,
    guardian: GuardianId,
    rules: ScheduleRules,
) -> PreviewOverlay:
    """Pin a day to a guardian. Sticky until cleared or the overlay is reset.

    Raises:
        CalendarIntegrityError: If the date is malformed or outside the base
        UnknownGuardianError: If the guardian is not configured
        DisruptionConflictError: If the guardian is disrupted on that day
    """
    _require_date(overlay, date)
    rules.require(guardian, date=date)
    if _disruptor(overlay, date) == guardian:
        raise DisruptionConflictError(date, guardian)

    source = overlay.proposed.get(date, overlay.base[date])
    day = patch_day(source, {"assigned_to": guardian})
    return overlay.model_copy(update={"manual": {**overlay.manual, date: day}})


def clear_manual(overlay: PreviewOverlay, date: CalendarDateKey) -> PreviewOverlay:
    if date not in overlay.manual:
        return overlay
    return overlay.model_copy(
        update={"manual": {key: day for key, day in overlay.manual.items() if key != date}}
    )


def effective(overlay: PreviewOverlay) -> Calendar:
    """Flatten base <- proposed <- manual into one calendar."""
    layered = {**overlay.proposed, **overlay.manual}
    patches = {key: day.model_dump(exclude={"date"}) for key, day in layered.items()}
    return with_changes(overlay.base, patches)


def diff(overlay: PreviewOverlay) -> list[ChangeRecord]:
    """Effective guardian changes against base, sorted by date.

    Cause precedence: manual > disruption > auto_balance.
    """
    current = effective(overlay)
    touched = set(overlay.proposed) | set(overlay.manual) | set(overlay.disruptions)
    records: list[ChangeRecord] = []
    for key in sorted(touched):
        if key not in overlay.base:
            continue
        before, after = overlay.base[key].assigned_to, current[key].assigned_to
        if before == after:
            continue
        if key in overlay.manual:
            cause = "manual"
        elif key in overlay.disruptions:
            cause = "disruption"
        else:
            cause = "auto_balance"
        records.append(ChangeRecord(date=key, from_guardian=before, to_guardian=after, cause=cause))
    return records


def is_date_changed(overlay: PreviewOverlay, date: CalendarDateKey) -> bool:
    if date not in overlay.base:
        return False
    return effective(overlay)[date].assigned_to != overlay.base[date].assigned_to


def commit(overlay: PreviewOverlay) -> Calendar:
    """Return the effective calendar as the new committed base."""
    calendar = effective(overlay)
    logger.info("Preview committed", changes=len(diff(overlay)))
    return calendar


def discard(overlay: PreviewOverlay) -> PreviewOverlay:
    """Drop every staged layer, keeping the same base."""
    if overlay.dirty:
        logger.info(
            "Preview discarded",
            disruptions=len(overlay.disruptions),
            proposed=len(overlay.proposed),
            manual=len(overlay.manual),
        )
    return init(overlay.base)


def reset(overlay: PreviewOverlay, base: Calendar) -> PreviewOverlay:
    """Start over on a new base (e.g. after a storage update), dropping all layers."""
    logger.debug("Preview reset", dropped_manual=len(overlay.manual), new_start=base.start_date)
    return init(base)
