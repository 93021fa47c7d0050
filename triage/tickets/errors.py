from __future__ import annotations


class TriageError(RuntimeError):
    """Base error for the ticket sync engine."""


class NetworkFailure(TriageError):
    """A ticket API request raised or returned a non-success response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        prefix = f"[{self.status_code}] " if self.status_code is not None else ""
        return f"{prefix}{super().__str__()}"


class NotFoundError(NetworkFailure):
    """The requested ticket does not exist (or is no longer visible)."""


class ConflictFailure(NetworkFailure):
    """The assignment target was already claimed by another agent."""


class ValidationFailure(TriageError, ValueError):
    """Input rejected locally before any request is sent."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class TicketNotInQueueError(ValidationFailure):
    """A transfer referenced a ticket absent from its source queue."""


class TransferInProgressError(ValidationFailure):
    """A transfer for the same ticket is still pending."""
