"""Build ScheduleRules from settings or a stored configuration."""

from custody.config.settings import Settings, settings
from custody.schedule.types import ScheduleRules
from custody.storage.types import ScheduleConfig


def rules_from_settings(source: Settings | None = None) -> ScheduleRules:
    source = source or settings
    return ScheduleRules(
        guardian_a=source.guardian_a,
        guardian_b=source.guardian_b,
        max_run_length=source.max_run_length,
        default_block_length=source.default_block_length,
        window_days=source.fairness_window_days,
        window_min=source.fairness_window_min,
        window_max=source.fairness_window_max,
    )


def rules_from_config(config: ScheduleConfig, source: Settings | None = None) -> ScheduleRules:
    """Stored guardian/run configuration wins; fairness bands come from settings."""
    defaults = rules_from_settings(source)
    return ScheduleRules(
        **{
            **defaults.model_dump(),
            "guardian_a": config.guardian_a,
            "guardian_b": config.guardian_b,
            "max_run_length": config.max_run_length,
            "default_block_length": config.default_block_length,
        }
    )
