"""Tests for the in-memory storage collaborator and safe loads."""

from custody.storage.memory import InMemoryScheduleStorage, load_calendar_safely, load_config_safely
from custody.storage.types import ScheduleConfig


class FailingStorage(InMemoryScheduleStorage):
    """Storage whose reads always fail."""

    def load_calendar(self):
        raise ConnectionError("backend unavailable")

    def load_config(self):
        raise ConnectionError("backend unavailable")


def test_save_notifies_subscribers(nine_day_base, fortnight_base):
    """Test that a real change reaches every listener."""
    storage = InMemoryScheduleStorage(calendar=nine_day_base)
    received = []
    storage.subscribe(received.append)

    storage.save_calendar(fortnight_base)

    assert storage.load_calendar() == fortnight_base
    assert received == [fortnight_base]


def test_save_is_idempotent(nine_day_base):
    """Test that saving the stored calendar again notifies nobody."""
    storage = InMemoryScheduleStorage(calendar=nine_day_base)
    received = []
    storage.subscribe(received.append)

    storage.save_calendar(nine_day_base)

    assert received == []


def test_unsubscribe_stops_updates(nine_day_base, fortnight_base):
    """Test that an unsubscribed listener gets no further calendars."""
    storage = InMemoryScheduleStorage()
    received = []
    unsubscribe = storage.subscribe(received.append)

    storage.save_calendar(nine_day_base)
    unsubscribe()
    unsubscribe()
    storage.save_calendar(fortnight_base)

    assert received == [nine_day_base]


def test_config_round_trip():
    """Test that a saved config is loaded back."""
    storage = InMemoryScheduleStorage()
    config = ScheduleConfig(guardian_a="mom", guardian_b="dad")

    storage.save_config(config)

    assert storage.load_config() == config


def test_failed_loads_read_as_empty():
    """Test that a failing backend is treated as having no data."""
    storage = FailingStorage()

    assert load_calendar_safely(storage) is None
    assert load_config_safely(storage) is None
