from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Mapping, Sequence

from .errors import ValidationFailure
from .state import AuthorType, QueueKind, TicketStatus


@dataclass(slots=True)
class Ticket:
    """Ticket summary as held in a queue."""

    id: str
    number: int | None
    subject: str
    status: TicketStatus
    priority: str
    urgency: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None
    unread_comments: int = 0
    provisional: bool = False

    @property
    def last_activity(self) -> datetime | None:
        return self.updated_at or self.created_at

    def copy(self, **changes: Any) -> "Ticket":
        return replace(self, **changes)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Ticket":
        ticket_id = payload.get("id") or payload.get("ticket_id")
        if not ticket_id:
            raise ValueError("Ticket payload is missing an id")
        number = payload.get("ticket_number")
        unread = int(payload.get("unread_customer_comments") or 0)
        return cls(
            id=str(ticket_id),
            number=int(number) if number is not None else None,
            subject=str(payload.get("subject") or ""),
            status=TicketStatus(str(payload["status"])),
            priority=str(payload.get("priority") or ""),
            urgency=_optional_str(payload.get("urgency")),
            customer_name=_optional_str(payload.get("customer_name")),
            customer_phone=_optional_str(payload.get("customer_phone")),
            customer_email=_optional_str(payload.get("customer_email")),
            assignee_id=_optional_str(payload.get("assigned_to")),
            assignee_name=_optional_str(payload.get("assigned_to_name")),
            created_at=_parse_datetime(payload.get("created_at")),
            updated_at=_parse_datetime(payload.get("updated_at")),
            closed_at=_parse_datetime(payload.get("closed_at") or payload.get("resolved_at")),
            unread_comments=max(0, unread),
        )


@dataclass(slots=True)
class Comment:
    id: str
    author_name: str
    author_type: AuthorType
    text: str
    is_resolution: bool
    created_at: datetime | None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Comment":
        return cls(
            id=str(payload["id"]),
            author_name=str(payload.get("author_name") or ""),
            author_type=AuthorType(str(payload.get("author_type") or AuthorType.SYSTEM.value)),
            text=str(payload.get("comment_text") or payload.get("text") or ""),
            is_resolution=bool(payload.get("is_resolution", False)),
            created_at=_parse_datetime(payload.get("created_at")),
        )


@dataclass(slots=True)
class StatusChange:
    """Single entry of a ticket's status history."""

    from_status: TicketStatus | None
    to_status: TicketStatus
    changed_by: str
    changed_at: datetime | None
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StatusChange":
        from_status = payload.get("from_status")
        return cls(
            from_status=TicketStatus(str(from_status)) if from_status else None,
            to_status=TicketStatus(str(payload["to_status"])),
            changed_by=str(payload.get("changed_by_name") or payload.get("changed_by") or ""),
            changed_at=_parse_datetime(payload.get("changed_at")),
            reason=_optional_str(payload.get("reason")),
        )


@dataclass(slots=True)
class TicketDetail:
    """Ticket loaded on demand with its comment thread and status log."""

    ticket: Ticket
    comments: list[Comment] = field(default_factory=list)
    status_history: list[StatusChange] = field(default_factory=list)
    description: str | None = None
    category_name: str | None = None
    resolution: str | None = None

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TicketDetail":
        return cls(
            ticket=Ticket.from_payload(payload),
            comments=[Comment.from_payload(item) for item in payload.get("comments") or []],
            status_history=[
                StatusChange.from_payload(item) for item in payload.get("status_history") or []
            ],
            description=_optional_str(payload.get("description")),
            category_name=_optional_str(payload.get("category_name")),
            resolution=_optional_str(payload.get("resolution")),
        )


@dataclass(slots=True)
class Pagination:
    """Pagination descriptor; total pages always derive from the count."""

    page: int = 1
    page_size: int = 25
    total_count: int = 0

    def __post_init__(self) -> None:
        _require_positive("page", self.page)
        _require_positive("page_size", self.page_size)
        if self.total_count < 0:
            raise ValidationFailure("total_count cannot be negative", field="total_count")

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1

    def adjust_count(self, delta: int) -> None:
        self.total_count = max(0, self.total_count + delta)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, fallback: "Pagination") -> "Pagination":
        page_size = payload.get("limit", payload.get("pageSize", fallback.page_size))
        return cls(
            page=int(payload.get("page", fallback.page)),
            page_size=int(page_size),
            total_count=int(payload.get("totalCount", payload.get("total", 0))),
        )


@dataclass(slots=True)
class Queue:
    """Ordered, paginated collection of ticket summaries.

    ``revision`` increases on every mutation, so a late response can tell it
    is stale.
    """

    kind: QueueKind
    tickets: list[Ticket] = field(default_factory=list)
    pagination: Pagination = field(default_factory=Pagination)
    revision: int = 0

    def __len__(self) -> int:
        return len(self.tickets)

    def __contains__(self, ticket_id: object) -> bool:
        return self.index_of(str(ticket_id)) is not None

    def index_of(self, ticket_id: str) -> int | None:
        for index, ticket in enumerate(self.tickets):
            if ticket.id == ticket_id:
                return index
        return None

    def find(self, ticket_id: str) -> Ticket | None:
        index = self.index_of(ticket_id)
        return None if index is None else self.tickets[index]

    def ids(self) -> list[str]:
        return [ticket.id for ticket in self.tickets]

    @classmethod
    def from_payload(
        cls, kind: QueueKind, payload: Mapping[str, Any], *, fallback: Pagination
    ) -> "Queue":
        tickets: Sequence[Mapping[str, Any]] = payload.get("tickets") or []
        return cls(
            kind=kind,
            tickets=[Ticket.from_payload(item) for item in tickets],
            pagination=Pagination.from_payload(payload.get("pagination") or {}, fallback=fallback),
        )


@dataclass(frozen=True, slots=True)
class DateRange:
    start: date | None = None
    end: date | None = None

    def __post_init__(self) -> None:
        if self.start and self.end and self.start > self.end:
            raise ValidationFailure("Date range start must not be after its end", field="date_range")

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, moment: datetime | None) -> bool:
        if self.is_empty:
            return True
        if moment is None:
            return False
        day = moment.date()
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationFailure(f"{name} must be a positive integer", field=name)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
