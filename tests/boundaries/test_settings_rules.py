"""Tests for settings validation and rule construction."""

import pytest
from pydantic import ValidationError

from custody.config.rules import rules_from_config, rules_from_settings
from custody.config.settings import Settings
from custody.storage.types import ScheduleConfig


@pytest.fixture
def source() -> Settings:
    """Settings built from explicit values, ignoring the environment file."""
    return Settings(
        _env_file=None,
        CUSTODY_GUARDIAN_A="A",
        CUSTODY_GUARDIAN_B="B",
        CUSTODY_FAIRNESS_WINDOW_MIN=5,
        CUSTODY_FAIRNESS_WINDOW_MAX=9,
    )


def test_rules_from_settings(source):
    """Test that settings populate guardians and fairness band."""
    rules = rules_from_settings(source)

    assert rules.guardians == ("A", "B")
    assert rules.window_min == 5
    assert rules.window_max == 9
    assert rules.forbidden_run_length == 5


def test_stored_config_wins_for_guardians(source):
    """Test that the stored config overrides guardians and run settings only."""
    config = ScheduleConfig(guardian_a="mom", guardian_b="dad", max_run_length=5)

    rules = rules_from_config(config, source)

    assert rules.guardians == ("mom", "dad")
    assert rules.max_run_length == 5
    assert rules.window_min == 5


def test_stored_config_is_validated(source):
    """Test that a config naming the same guardian twice is rejected."""
    with pytest.raises(ValidationError):
        rules_from_config(ScheduleConfig(guardian_a="mom", guardian_b="mom"), source)


def test_invalid_log_level_defaults_to_info():
    """Test that an unknown log level falls back to INFO."""
    assert Settings(_env_file=None, LOG_LEVEL="verbose").log_level == "INFO"
    assert Settings(_env_file=None, LOG_LEVEL="debug").log_level == "DEBUG"


def test_non_positive_timeout_defaults():
    """Test that a non-positive optimizer timeout is replaced by the default."""
    assert Settings(_env_file=None, CUSTODY_OPTIMIZER_TIMEOUT_SECONDS=0).optimizer_timeout_seconds == 8.0


def test_run_length_must_allow_two_nights():
    """Test that a run length below two is rejected."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, CUSTODY_MAX_RUN_LENGTH=1)
