"""Schedule module - custody calendar model, rotation and rebalancing.

This module provides:
- Immutable calendar types and the `with_change` edit primitive
- Baseline rotation generation and in-phase extension
- The disruption-driven rebalancer
- The shared invariant validator
"""

from custody.schedule.calendar import (
    build_calendar,
    count_transitions,
    guardian_day_counts,
    list_runs,
    with_change,
    with_changes,
)
from custody.schedule.errors import (
    CalendarIntegrityError,
    DisruptionConflictError,
    MalformedDateError,
    UnknownGuardianError,
)
from custody.schedule.pattern import extend, generate, needs_extension
from custody.schedule.rebalancer import rebalance
from custody.schedule.service import rebalance_with_summary
from custody.schedule.types import (
    Calendar,
    CalendarDay,
    ChangeRecord,
    CustodyRun,
    DisruptionSet,
    RebalanceResult,
    RebalanceSummary,
    ScheduleRules,
)
from custody.schedule.validators import ScheduleValidation, fairness_score, validate_schedule

__all__ = [
    "Calendar",
    "CalendarDay",
    "CalendarIntegrityError",
    "ChangeRecord",
    "CustodyRun",
    "DisruptionConflictError",
    "DisruptionSet",
    "MalformedDateError",
    "RebalanceResult",
    "RebalanceSummary",
    "ScheduleRules",
    "ScheduleValidation",
    "UnknownGuardianError",
    "build_calendar",
    "count_transitions",
    "extend",
    "fairness_score",
    "generate",
    "guardian_day_counts",
    "list_runs",
    "needs_extension",
    "rebalance",
    "rebalance_with_summary",
    "validate_schedule",
    "with_change",
    "with_changes",
]
