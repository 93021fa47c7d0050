"""Per-queue search, sort, status and date filters with debounced search."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Callable, Generic, Iterable, Mapping, Sequence, TypeVar

from triage.tickets.errors import ValidationFailure
from triage.tickets.models import DateRange, Ticket
from triage.tickets.state import TERMINAL_STATUSES, QueueKind, TicketStatus, priority_rank
from triage.tickets.validators import validate_page, validate_page_size

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_STATUSES = "all"

SORT_KEYS: Mapping[QueueKind, tuple[str, ...]] = {
    QueueKind.UNASSIGNED: ("priority", "created", "customer"),
    QueueKind.MINE: ("last_activity", "status", "priority"),
    QueueKind.CLOSED: ("closed", "created"),
}

DEFAULT_SORT: Mapping[QueueKind, str] = {kind: keys[0] for kind, keys in SORT_KEYS.items()}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _timestamp(value: datetime | None) -> datetime:
    return value or _EPOCH


def sort_tickets(tickets: Iterable[Ticket], kind: QueueKind, sort_key: str) -> list[Ticket]:
    """Return ``tickets`` ordered by one of the queue's sort keys.

    Unknown keys leave the server order untouched.
    """

    items = list(tickets)
    kind = QueueKind(kind)
    if sort_key == "priority" and kind == QueueKind.UNASSIGNED:
        return sorted(items, key=lambda t: (priority_rank(t.priority), _timestamp(t.created_at)))
    if sort_key == "priority":
        return sorted(items, key=lambda t: priority_rank(t.priority))
    if sort_key == "created":
        return sorted(items, key=lambda t: _timestamp(t.created_at), reverse=True)
    if sort_key == "customer":
        return sorted(items, key=lambda t: (t.customer_name or "").casefold())
    if sort_key == "last_activity":
        return sorted(items, key=lambda t: _timestamp(t.last_activity), reverse=True)
    if sort_key == "status":
        return sorted(items, key=lambda t: t.status.value)
    if sort_key == "closed":
        return sorted(items, key=lambda t: _timestamp(t.closed_at or t.updated_at), reverse=True)
    return items


def matches_search(ticket: Ticket, kind: QueueKind, term: str) -> bool:
    """Local search: number and subject everywhere, customer fields on the unassigned pool."""

    needle = term.strip().casefold()
    if not needle:
        return True
    haystacks = [str(ticket.number) if ticket.number is not None else "", ticket.subject.casefold()]
    if kind == QueueKind.UNASSIGNED:
        haystacks.append((ticket.customer_name or "").casefold())
        haystacks.append(ticket.customer_phone or "")
    return any(needle in value for value in haystacks)


@dataclass(slots=True)
class FilterSpec:
    """Filter and pagination inputs of one queue."""

    kind: QueueKind
    search: str = ""
    committed_search: str = ""
    sort: str = ""
    status: str = ALL_STATUSES
    date_range: DateRange = field(default_factory=DateRange)
    page: int = 1
    page_size: int = 25

    def __post_init__(self) -> None:
        if not self.sort:
            self.sort = DEFAULT_SORT[self.kind]

    def apply(self, tickets: Sequence[Ticket]) -> list[Ticket]:
        """Filter and sort a page of summaries for display."""

        visible = [
            ticket
            for ticket in tickets
            if matches_search(ticket, self.kind, self.committed_search)
            and (self.status == ALL_STATUSES or ticket.status.value == self.status)
            and (self.kind != QueueKind.CLOSED or self.date_range.contains(ticket.closed_at or ticket.updated_at))
        ]
        return sort_tickets(visible, self.kind, self.sort)

    def to_params(self) -> dict[str, str]:
        """Server-side query parameters, without pagination."""

        params: dict[str, str] = {"sort": self.sort}
        if self.committed_search:
            params["search"] = self.committed_search
        if self.status != ALL_STATUSES:
            params["status"] = self.status
        if self.date_range.start:
            params["from"] = self.date_range.start.isoformat()
        if self.date_range.end:
            params["to"] = self.date_range.end.isoformat()
        return params


class Debouncer(Generic[T]):
    """Delay delivery of a value until pushes pause for ``delay`` seconds."""

    def __init__(self, delay: float, callback: Callable[[T], None]) -> None:
        if delay < 0:
            raise ValueError("delay must not be negative")
        self.delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._value: T | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def push(self, value: T) -> None:
        self.cancel()
        self._value = value
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        value, self._value = self._value, None
        self._callback(value)  # type: ignore[arg-type]


FilterListener = Callable[[QueueKind, FilterSpec], None]


class FilterState:
    """Owns the :class:`FilterSpec` of every queue.

    Listeners are told about committed changes only: a keystroke updates
    ``search`` immediately but listeners hear about it once the debounce
    delay has passed. Every committed filter change except a page change
    returns the queue to page 1.
    """

    def __init__(
        self,
        *,
        debounce_delay: float = 0.5,
        default_page_size: int = 25,
        allowed_page_sizes: Iterable[int] = (10, 25, 50, 100),
    ) -> None:
        self.default_page_size = default_page_size
        self.allowed_page_sizes = tuple(allowed_page_sizes)
        self._specs: dict[QueueKind, FilterSpec] = {
            kind: FilterSpec(kind=kind, page_size=default_page_size) for kind in QueueKind
        }
        self._debouncers: dict[QueueKind, Debouncer[str]] = {
            kind: Debouncer(debounce_delay, lambda text, kind=kind: self._commit_search(kind, text))
            for kind in QueueKind
        }
        self._listeners: list[FilterListener] = []

    def spec(self, kind: QueueKind) -> FilterSpec:
        return self._specs[QueueKind(kind)]

    def specs(self) -> Mapping[QueueKind, FilterSpec]:
        return dict(self._specs)

    def subscribe(self, listener: FilterListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def restore(self, spec: FilterSpec) -> None:
        """Install state parsed at mount without notifying listeners."""

        self._specs[spec.kind] = replace(spec, search=spec.committed_search)

    def set_search(self, kind: QueueKind, text: str) -> None:
        kind = QueueKind(kind)
        self._specs[kind].search = text
        self._debouncers[kind].push(text)

    def flush_search(self, kind: QueueKind) -> None:
        self._debouncers[QueueKind(kind)].flush()

    def set_sort(self, kind: QueueKind, sort_key: str) -> None:
        kind = QueueKind(kind)
        if sort_key not in SORT_KEYS[kind]:
            raise ValidationFailure(f"Unknown sort '{sort_key}' for {kind.value}", field="sort")
        spec = self._specs[kind]
        if spec.sort == sort_key:
            return
        spec.sort = sort_key
        spec.page = 1
        self._notify(kind)

    def set_status(self, kind: QueueKind, status: str) -> None:
        kind = QueueKind(kind)
        status = validate_status_filter(kind, status)
        spec = self._specs[kind]
        if spec.status == status:
            return
        spec.status = status
        spec.page = 1
        self._notify(kind)

    def set_date_range(self, kind: QueueKind, start: date | None, end: date | None) -> None:
        kind = QueueKind(kind)
        if kind != QueueKind.CLOSED:
            raise ValidationFailure("Date range filters apply to closed tickets only", field="date_range")
        date_range = DateRange(start=start, end=end)
        spec = self._specs[kind]
        if spec.date_range == date_range:
            return
        spec.date_range = date_range
        spec.page = 1
        self._notify(kind)

    def set_page(self, kind: QueueKind, page: int) -> None:
        kind = QueueKind(kind)
        validate_page(page)
        spec = self._specs[kind]
        if spec.page == page:
            return
        spec.page = page
        self._notify(kind)

    def set_page_size(self, kind: QueueKind, page_size: int) -> None:
        kind = QueueKind(kind)
        validate_page_size(page_size, self.allowed_page_sizes)
        spec = self._specs[kind]
        if spec.page_size == page_size:
            return
        spec.page_size = page_size
        spec.page = 1
        self._notify(kind)

    def close(self) -> None:
        for debouncer in self._debouncers.values():
            debouncer.cancel()

    def _commit_search(self, kind: QueueKind, text: str) -> None:
        spec = self._specs[kind]
        if spec.committed_search == text:
            return
        spec.committed_search = text
        spec.page = 1
        logger.debug("Search for %s committed: %r", kind.value, text)
        self._notify(kind)

    def _notify(self, kind: QueueKind) -> None:
        spec = self._specs[kind]
        for listener in list(self._listeners):
            listener(kind, spec)


def validate_status_filter(kind: QueueKind, status: str) -> str:
    if status == ALL_STATUSES:
        return status
    if kind == QueueKind.UNASSIGNED:
        raise ValidationFailure("The unassigned queue has no status filter", field="status")
    try:
        value = TicketStatus(status)
    except ValueError as exc:
        raise ValidationFailure(f"Unknown status '{status}'", field="status") from exc
    if kind == QueueKind.CLOSED and value not in TERMINAL_STATUSES:
        raise ValidationFailure(f"'{status}' is not a closed status", field="status")
    return value.value
