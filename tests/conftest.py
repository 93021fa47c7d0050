from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import pytest

from triage.client.auth import AgentProfile
from triage.core.config import Settings
from triage.metrics import MetricsRegistry, register_default_metrics
from triage.notifications import NotificationCenter
from triage.sync.edit_guard import EditGuard
from triage.tickets.errors import ConflictFailure, NotFoundError, TriageError
from triage.tickets.models import Comment, Pagination, Queue, Ticket, TicketDetail
from triage.tickets.state import AuthorType, QueueKind, TicketPriority, TicketStatus
from triage.tickets.store import TicketStore

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
AGENT_ID = "agent-1"
SERVER_AGENT_NAME = "Dana A."


def make_ticket(
    ticket_id: str,
    *,
    number: int | None = None,
    priority: str = "normal",
    status: TicketStatus = TicketStatus.OPEN,
    minutes: int = 0,
    **extra: Any,
) -> Ticket:
    created = BASE_TIME + timedelta(minutes=minutes)
    if number is None:
        digits = "".join(char for char in ticket_id if char.isdigit())
        number = int(digits) if digits else 0
    values: dict[str, Any] = {"created_at": created, "updated_at": created}
    values.update(extra)
    return Ticket(
        id=ticket_id,
        number=number,
        subject=f"Ticket {ticket_id}",
        status=status,
        priority=priority,
        **values,
    )


def make_comment(comment_id: str, text: str = "A comment from the customer") -> Comment:
    return Comment(
        id=comment_id,
        author_name="Customer",
        author_type=AuthorType.CUSTOMER,
        text=text,
        is_resolution=False,
        created_at=BASE_TIME,
    )


class FakeTicketAPI:
    """In-memory ticket service.

    ``hold(method)`` parks every call of ``method`` until ``release(method)``;
    ``failures[method]`` makes calls raise.
    """

    def __init__(self) -> None:
        self.queues: dict[QueueKind, list[Ticket]] = {kind: [] for kind in QueueKind}
        self.totals: dict[QueueKind, int] = {}
        self.details: dict[str, TicketDetail] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, TriageError] = {}
        self._gates: dict[str, asyncio.Event] = {}

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[method] = gate
        return gate

    def release(self, method: str) -> None:
        self._gates.pop(method).set()

    def called(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    async def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        gate = self._gates.get(method)
        if gate is not None:
            await gate.wait()
        failure = self.failures.get(method)
        if failure is not None:
            raise failure

    async def list(
        self, kind: QueueKind, page: int, page_size: int, filters: Mapping[str, str]
    ) -> Queue:
        await self._enter("list", kind, page, page_size, dict(filters))
        tickets = [ticket.copy() for ticket in self.queues[kind]]
        total = self.totals.get(kind, len(tickets))
        return Queue(
            kind=kind,
            tickets=tickets,
            pagination=Pagination(page=page, page_size=page_size, total_count=total),
        )

    async def get_detail(self, ticket_id: str) -> TicketDetail:
        await self._enter("get_detail", ticket_id)
        detail = self.details.get(ticket_id)
        if detail is None:
            raise NotFoundError("Ticket not found", status_code=404)
        return TicketDetail(
            ticket=detail.ticket.copy(),
            comments=list(detail.comments),
            status_history=list(detail.status_history),
        )

    async def update_status(self, ticket_id: str, status: TicketStatus, reason: str | None = None) -> None:
        await self._enter("update_status", ticket_id, status, reason)
        detail = self.details[ticket_id]
        detail.ticket = detail.ticket.copy(status=TicketStatus(status))

    async def update_priority(self, ticket_id: str, priority: TicketPriority) -> None:
        await self._enter("update_priority", ticket_id, priority)
        detail = self.details[ticket_id]
        detail.ticket = detail.ticket.copy(priority=TicketPriority(priority).value)

    async def add_comment(self, ticket_id: str, text: str, is_resolution: bool = False) -> None:
        await self._enter("add_comment", ticket_id, text, is_resolution)
        detail = self.details[ticket_id]
        detail.comments.append(make_comment(f"c-{len(detail.comments) + 1}", text))

    async def assign(self, ticket_id: str) -> Ticket | None:
        await self._enter("assign", ticket_id)
        return self._claim(ticket_id)

    async def assign_to_me(self, ticket_id: str) -> Ticket | None:
        await self._enter("assign_to_me", ticket_id)
        return self._claim(ticket_id)

    async def mark_read(self, ticket_id: str) -> None:
        await self._enter("mark_read", ticket_id)

    def _claim(self, ticket_id: str) -> Ticket:
        pool = self.queues[QueueKind.UNASSIGNED]
        for ticket in pool:
            if ticket.id == ticket_id:
                break
        else:
            raise ConflictFailure("Ticket already assigned", status_code=409)
        pool.remove(ticket)
        status = TicketStatus.ASSIGNED if ticket.status == TicketStatus.OPEN else ticket.status
        claimed = ticket.copy(status=status, assignee_id=AGENT_ID, assignee_name=SERVER_AGENT_NAME)
        self.queues[QueueKind.MINE].insert(0, claimed)
        return claimed.copy()


@pytest.fixture
def api() -> FakeTicketAPI:
    return FakeTicketAPI()


@pytest.fixture
def guard() -> EditGuard:
    return EditGuard()


@pytest.fixture
def metrics() -> MetricsRegistry:
    return register_default_metrics(MetricsRegistry())


@pytest.fixture
def notifier() -> NotificationCenter:
    return NotificationCenter(default_duration=0)


@pytest.fixture
def agent() -> AgentProfile:
    return AgentProfile(id=AGENT_ID, name="Dana Agent", token="agent-token")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        queue_refresh_interval=30.0,
        detail_refresh_interval=10.0,
        search_debounce=0.01,
        toast_duration=0,
    )


@pytest.fixture
def store(api: FakeTicketAPI, guard: EditGuard, metrics: MetricsRegistry) -> TicketStore:
    return TicketStore(api, guard, metrics=metrics)
