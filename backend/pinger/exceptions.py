"""Exception hierarchy for the pinger service."""
from typing import Optional


class PingerError(Exception):
    """Base class for errors raised by the pinger service."""

    def __init__(self, message: str = "An error occurred", cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class SchedulerStateError(PingerError):
    """Raised when a scheduler lifecycle call is not valid in its current state."""


class EndpointNotFoundError(PingerError):
    """Raised by storage when no endpoint has the requested id."""

    def __init__(self, endpoint_id: int) -> None:
        super().__init__(f"Endpoint {endpoint_id} not found")
        self.endpoint_id = endpoint_id


class InvalidEndpointError(PingerError):
    """Raised when a stored endpoint would violate its timing constraints."""
