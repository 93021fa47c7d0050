"""Ticket domain models, states and errors."""

from .errors import (
    ConflictFailure,
    NetworkFailure,
    NotFoundError,
    TicketNotInQueueError,
    TransferInProgressError,
    TriageError,
    ValidationFailure,
)
from .models import Comment, DateRange, Pagination, Queue, StatusChange, Ticket, TicketDetail
from .state import QueueKind, TicketPriority, TicketStatus, TransferState, TransferStateMachine

__all__ = [
    "Comment",
    "ConflictFailure",
    "DateRange",
    "NetworkFailure",
    "NotFoundError",
    "Pagination",
    "Queue",
    "QueueKind",
    "StatusChange",
    "Ticket",
    "TicketDetail",
    "TicketNotInQueueError",
    "TicketPriority",
    "TicketStatus",
    "TransferInProgressError",
    "TransferState",
    "TransferStateMachine",
    "TriageError",
    "ValidationFailure",
]
