from typing import Optional


class CompetitionError(Exception):
    """Base class for every error raised by the lifecycle engine."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(CompetitionError):
    """Malformed input (bad field types, unknown rule keys, out of range values)."""


class ScheduleError(CompetitionError):
    """A date/time constraint was violated."""


class ConflictError(CompetitionError):
    """The request clashes with current participation or entity state."""


class CapacityError(ConflictError):
    def __init__(self, capacity: int, message: str = None):
        self.capacity = capacity
        super().__init__(message or f"Already full ({capacity} max participants)")


class ConcurrencyError(ConflictError):
    """Optimistic version check kept failing after all retries."""


class PermissionError(CompetitionError):
    """The actor lacks creator/organizer/participant privilege."""


class NotFoundError(CompetitionError):
    def __init__(self, resource: str, identifier: str = None):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found")


class StateError(CompetitionError):
    def __init__(self, from_state: str, to_state: Optional[str] = None, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)
