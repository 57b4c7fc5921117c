"""Error types for schedule inputs.

Input integrity problems are rejected before they reach the rebalancer and
are never silently coerced.
"""


class CalendarIntegrityError(ValueError):
    """Raised when a calendar or disruption input violates data integrity."""

    def __init__(self, message: str, *, date: str | None = None):
        self.date = date
        self.message = message
        super().__init__(self.message)


class UnknownGuardianError(CalendarIntegrityError):
    """Raised when a guardian id is not one of the two configured guardians."""

    def __init__(self, guardian: str, *, date: str | None = None):
        self.guardian = guardian
        super().__init__(f"Unknown guardian id: {guardian!r}", date=date)


class MalformedDateError(CalendarIntegrityError):
    """Raised when a date key is not a valid YYYY-MM-DD calendar day."""

    def __init__(self, value: object):
        super().__init__(f"Malformed date key: {value!r} (expected YYYY-MM-DD)", date=str(value))


class DisruptionConflictError(CalendarIntegrityError):
    """Raised when an edit would assign a day to the guardian disrupted on it."""

    def __init__(self, date: str, guardian: str):
        self.guardian = guardian
        super().__init__(f"{guardian} is unavailable on {date} and cannot be assigned that day", date=date)
