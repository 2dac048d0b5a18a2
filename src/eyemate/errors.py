"""Error taxonomy for the reminder engine.

Every error carries a stable ``kind`` string plus a human-readable message so
callers can pick a transport status without the core knowing about HTTP.
"""

from __future__ import annotations

from typing import Any


class ReminderError(Exception):
    """Base class for all reminder-engine errors."""

    kind = "reminder_error"

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary."""
        return {"error": self.message, "kind": self.kind, **self.details}


class NotFoundError(ReminderError):
    """The entity does not exist or does not belong to the requesting patient."""

    kind = "not_found"


class InvalidStateError(ReminderError):
    """A mutation was attempted on a dose log in a terminal state."""

    kind = "invalid_state"


class AlreadyCompletedError(InvalidStateError):
    """The dose log has already been confirmed."""

    kind = "already_completed"


class LimitExceededError(ReminderError):
    """A configured per-patient limit would be exceeded."""

    kind = "limit_exceeded"


class SnoozeLimitExceededError(LimitExceededError):
    """The dose has been snoozed the maximum number of times."""

    kind = "snooze_limit_exceeded"

    def __init__(self, log_id: str, max_snooze_count: int) -> None:
        self.log_id = log_id
        self.max_snooze_count = max_snooze_count
        super().__init__(
            f"Dose {log_id} can be snoozed at most {max_snooze_count} time(s)",
            log_id=log_id,
            max_snooze_count=max_snooze_count,
        )


class ValidationError(ReminderError):
    """Malformed input (unsupported frequency type, missing interval, ...)."""

    kind = "validation_error"


class PersistenceError(ReminderError):
    """The underlying store failed; the surrounding transaction was rolled back."""

    kind = "persistence_error"
