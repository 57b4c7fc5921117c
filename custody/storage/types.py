"""Storage collaborator contract.

Durable storage lives outside the core. The core only relies on this
protocol; retries and backend fallback are the collaborator's concern.
"""

from collections.abc import Callable
from typing import Protocol

from pydantic import BaseModel

from custody.schedule.types import Calendar


class ScheduleConfig(BaseModel):
    """Persisted guardian pair and rotation settings."""

    guardian_a: str
    guardian_b: str
    max_run_length: int = 4
    default_block_length: int = 3


CalendarListener = Callable[[Calendar | None], None]
Unsubscribe = Callable[[], None]


class ScheduleStorage(Protocol):
    """Storage backend for the committed calendar and its configuration.

    `save_calendar` must be idempotent; `subscribe` delivers updates pushed
    by the backend (however it detects them) to the listener.
    """

    def load_calendar(self) -> Calendar | None: ...

    def save_calendar(self, calendar: Calendar) -> None: ...

    def load_config(self) -> ScheduleConfig | None: ...

    def subscribe(self, listener: CalendarListener) -> Unsubscribe: ...
