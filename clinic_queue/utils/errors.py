"""Error taxonomy shared by the remote client, services and API layer."""

from typing import Optional


class ClinicQueueError(Exception):
    """Base class for all queue engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RemoteUnavailableError(ClinicQueueError):
    """Network failure, timeout, 5xx or unreadable payload from the clinic backend."""


class QueueRuleViolation(ClinicQueueError):
    """A business rule rejected the operation (locally or by the clinic backend)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteNotFoundError(QueueRuleViolation):
    """The clinic backend has no record for the requested resource."""


class AuthorizationError(ClinicQueueError):
    """The bearer token was rejected. Left to the external session manager."""
