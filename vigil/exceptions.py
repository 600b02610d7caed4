"""Exception hierarchy for the Vigil core.

Routes translate these into HTTP status codes; nothing below the API layer
knows about HTTP.
"""

from __future__ import annotations


class VigilError(Exception):
    """Base exception for all Vigil errors."""


class ValidationError(VigilError):
    """Bad input the caller can correct (empty sensor name, blank event type)."""


class NotFoundError(VigilError):
    """A referenced user, sensor or token does not exist."""


class UserNotFoundError(NotFoundError):
    """No user with the given identifier."""


class SensorNotFoundError(NotFoundError):
    """No sensor with the given identifier, or not visible to the caller."""


class InvalidTokenError(NotFoundError):
    """No sensor is bound to the presented ingestion token."""


class DuplicateUsernameError(VigilError):
    """Username already registered."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Username '{username}' is taken")


class PersistenceError(VigilError):
    """Storage unavailable or a constraint was violated.

    The message is for logs only and must not be sent to network callers.
    """
