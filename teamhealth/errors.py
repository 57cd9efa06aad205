from __future__ import annotations


class TeamHealthError(Exception):
    """Base exception for the team health core."""


class NotFoundError(TeamHealthError):
    """An entity id does not exist."""


class ValidationError(TeamHealthError):
    """Malformed input. ``field_errors`` maps field names to messages."""

    def __init__(self, message: str, field_errors: dict[str, str] | None = None):
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or {}


class ConflictError(TeamHealthError):
    """A uniqueness or reference rule would be broken."""


class TransactionError(TeamHealthError):
    """The store failed; every partial effect has been rolled back."""


class DataIntegrityError(TeamHealthError):
    """Persisted data breaks a structural rule, e.g. a reports-to cycle."""
