"""Error kinds raised by the roster generation core."""


class DutyRosterError(Exception):
    """Base class for all roster generation errors."""


class InvalidPeriodKey(DutyRosterError, ValueError):
    """Raised when a month/year key is malformed or out of range."""


class CalendarNotFound(DutyRosterError):
    """Raised when no calendar exists for the requested period."""

    def __init__(self, month: int, year: int):
        self.month = month
        self.year = year
        super().__init__(f"No calendar found for {month}-{year}")


class ScheduleAlreadyExists(DutyRosterError):
    """Raised when a schedule for the period exists and may not be regenerated."""

    def __init__(self, month: int, year: int, status=None):
        self.month = month
        self.year = year
        self.status = status
        detail = f" (status {status.value})" if status is not None else ""
        super().__init__(f"The schedule for {month}-{year} is already generated{detail}")


class ScheduleNotFound(DutyRosterError):
    """Raised when an operation needs a schedule that does not exist."""

    def __init__(self, month: int, year: int):
        self.month = month
        self.year = year
        super().__init__(f"No schedule found for {month}-{year}")


class InvalidStatusTransition(DutyRosterError):
    """Raised when a schedule is moved to a status its lifecycle forbids."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move schedule from {current.value} to {target.value}")


class SolverInterrupted(DutyRosterError):
    """Raised when a solve is cancelled through its stop signal."""


class SolverExecutionFailure(DutyRosterError):
    """Raised when the search aborts abnormally."""
