"""Preview module - staged, immutable overlay of tentative calendar edits."""

from custody.preview.stage import (
    PreviewOverlay,
    apply_manual,
    clear_disruption,
    clear_manual,
    commit,
    diff,
    discard,
    effective,
    init,
    is_date_changed,
    mark_disrupted,
    reset,
    run_rebalance,
)

__all__ = [
    "PreviewOverlay",
    "apply_manual",
    "clear_disruption",
    "clear_manual",
    "commit",
    "diff",
    "discard",
    "effective",
    "init",
    "is_date_changed",
    "mark_disrupted",
    "reset",
    "run_rebalance",
]
