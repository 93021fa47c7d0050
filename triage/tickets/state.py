from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Server-side ticket lifecycle states."""

    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    WAITING_CUSTOMER = "waiting_customer"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED})


class TicketPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


PRIORITY_RANK: dict[str, int] = {
    TicketPriority.URGENT.value: 0,
    TicketPriority.HIGH.value: 1,
    TicketPriority.NORMAL.value: 2,
    TicketPriority.LOW.value: 3,
}


def priority_rank(priority: str | None) -> int:
    """Rank used for ordering; unknown priorities sort after ``low``."""

    if priority is None:
        return len(PRIORITY_RANK)
    return PRIORITY_RANK.get(str(priority), len(PRIORITY_RANK))


class AuthorType(str, Enum):
    CUSTOMER = "customer"
    TECH = "tech"
    SYSTEM = "system"


class QueueKind(str, Enum):
    """Collections an agent works from."""

    UNASSIGNED = "unassigned"
    MINE = "mine"
    CLOSED = "closed"


class TransferState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransferStateMachine:
    """Validate transitions of an assignment transfer."""

    _TRANSITIONS: dict[TransferState, set[TransferState]] = {
        TransferState.IDLE: {TransferState.PENDING},
        TransferState.PENDING: {TransferState.COMMITTED, TransferState.ROLLED_BACK},
        TransferState.COMMITTED: set(),
        TransferState.ROLLED_BACK: set(),
    }

    @classmethod
    def initial_state(cls) -> TransferState:
        return TransferState.IDLE

    @classmethod
    def can_transition(cls, current: TransferState, new: TransferState) -> bool:
        return new in cls._TRANSITIONS.get(current, set())

    @classmethod
    def assert_transition(cls, current: TransferState, new: TransferState) -> None:
        if not cls.can_transition(current, new):
            raise ValueError(f"Invalid transfer transition: {current.value} -> {new.value}")

    @classmethod
    def is_settled(cls, state: TransferState) -> bool:
        return not cls._TRANSITIONS.get(state)
