"""In-memory storage collaborator and safe load helpers."""

from loguru import logger

from custody.schedule.types import Calendar
from custody.storage.types import CalendarListener, ScheduleConfig, ScheduleStorage, Unsubscribe


class InMemoryScheduleStorage:
    """Process-local ScheduleStorage.

    Constructed once per process and injected where needed; used by tests
    and by the API process when no external backend is wired in.
    """

    def __init__(self, calendar: Calendar | None = None, config: ScheduleConfig | None = None) -> None:
        self._calendar = calendar
        self._config = config
        self._listeners: list[CalendarListener] = []

    def load_calendar(self) -> Calendar | None:
        return self._calendar

    def save_calendar(self, calendar: Calendar) -> None:
        if calendar == self._calendar:
            return
        self._calendar = calendar
        for listener in list(self._listeners):
            listener(calendar)

    def load_config(self) -> ScheduleConfig | None:
        return self._config

    def save_config(self, config: ScheduleConfig) -> None:
        self._config = config

    def subscribe(self, listener: CalendarListener) -> Unsubscribe:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe


def load_calendar_safely(storage: ScheduleStorage) -> Calendar | None:
    """Load the committed calendar, treating a failed load as "no data yet"."""
    try:
        return storage.load_calendar()
    except Exception as e:
        logger.warning(f"Calendar load failed, treating as empty: {e}")
        return None


def load_config_safely(storage: ScheduleStorage) -> ScheduleConfig | None:
    try:
        return storage.load_config()
    except Exception as e:
        logger.warning(f"Config load failed, treating as empty: {e}")
        return None
