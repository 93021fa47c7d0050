from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import pytest

from conftest import make_ticket
from triage.sync.filters import Debouncer, FilterSpec, FilterState, matches_search, sort_tickets
from triage.tickets.errors import ValidationFailure
from triage.tickets.models import DateRange
from triage.tickets.state import QueueKind, TicketStatus

DEBOUNCE = 0.05


def _recorder(state: FilterState) -> list[tuple[QueueKind, str, int]]:
    events: list[tuple[QueueKind, str, int]] = []
    state.subscribe(lambda kind, spec: events.append((kind, spec.committed_search, spec.page)))
    return events


@pytest.mark.asyncio
async def test_search_commits_once_after_keystrokes_pause():
    state = FilterState(debounce_delay=DEBOUNCE)
    events = _recorder(state)
    state.set_page(QueueKind.UNASSIGNED, 3)
    events.clear()

    for text in ("b", "br", "bro", "brok", "broken"):
        state.set_search(QueueKind.UNASSIGNED, text)
        await asyncio.sleep(DEBOUNCE / 10)

    spec = state.spec(QueueKind.UNASSIGNED)
    assert spec.search == "broken"
    assert spec.committed_search == ""
    assert events == []

    await asyncio.sleep(DEBOUNCE * 3)

    assert events == [(QueueKind.UNASSIGNED, "broken", 1)]
    assert spec.page == 1


@pytest.mark.asyncio
async def test_debounce_timer_restarts_on_every_keystroke():
    delay = 0.1
    state = FilterState(debounce_delay=delay)
    events = _recorder(state)
    loop = asyncio.get_running_loop()

    started = loop.time()
    for text in ("p", "pr", "pri", "prin"):
        state.set_search(QueueKind.MINE, text)
        await asyncio.sleep(delay / 2)

    # typing lasted longer than one delay, yet nothing committed at first keystroke + delay
    assert loop.time() - started > delay
    assert events == []

    await asyncio.sleep(delay * 1.5)

    assert events == [(QueueKind.MINE, "prin", 1)]
    await asyncio.sleep(delay)
    assert len(events) == 1


@pytest.mark.asyncio
async def test_flush_commits_immediately():
    state = FilterState(debounce_delay=10)
    events = _recorder(state)

    state.set_search(QueueKind.MINE, "printer")
    state.flush_search(QueueKind.MINE)

    assert events == [(QueueKind.MINE, "printer", 1)]


@pytest.mark.asyncio
async def test_close_cancels_pending_search():
    state = FilterState(debounce_delay=DEBOUNCE)
    events = _recorder(state)

    state.set_search(QueueKind.CLOSED, "refund")
    state.close()
    await asyncio.sleep(DEBOUNCE * 3)

    assert events == []


def test_page_size_change_resets_page():
    state = FilterState()
    events = _recorder(state)
    state.set_page(QueueKind.MINE, 4)

    state.set_page_size(QueueKind.MINE, 50)

    spec = state.spec(QueueKind.MINE)
    assert (spec.page, spec.page_size) == (1, 50)
    assert len(events) == 2
    with pytest.raises(ValidationFailure):
        state.set_page_size(QueueKind.MINE, 30)


def test_filter_changes_reset_page_but_page_changes_do_not():
    state = FilterState()
    state.set_page(QueueKind.CLOSED, 5)
    state.set_sort(QueueKind.CLOSED, "created")
    assert state.spec(QueueKind.CLOSED).page == 1

    state.set_page(QueueKind.CLOSED, 2)
    state.set_status(QueueKind.CLOSED, "resolved")
    assert state.spec(QueueKind.CLOSED).page == 1

    state.set_page(QueueKind.CLOSED, 2)
    state.set_date_range(QueueKind.CLOSED, date(2024, 1, 1), date(2024, 1, 31))
    assert state.spec(QueueKind.CLOSED).page == 1


def test_unchanged_values_do_not_notify():
    state = FilterState()
    events = _recorder(state)

    state.set_sort(QueueKind.UNASSIGNED, "priority")
    state.set_page(QueueKind.UNASSIGNED, 1)

    assert events == []


def test_status_and_date_filters_are_validated_per_queue():
    state = FilterState()
    with pytest.raises(ValidationFailure):
        state.set_status(QueueKind.UNASSIGNED, "open")
    with pytest.raises(ValidationFailure):
        state.set_status(QueueKind.CLOSED, "in_progress")
    with pytest.raises(ValidationFailure):
        state.set_date_range(QueueKind.MINE, date(2024, 1, 1), None)
    with pytest.raises(ValidationFailure):
        state.set_date_range(QueueKind.CLOSED, date(2024, 2, 1), date(2024, 1, 1))
    with pytest.raises(ValidationFailure):
        state.set_sort(QueueKind.MINE, "customer")

    state.set_status(QueueKind.MINE, "waiting_customer")
    assert state.spec(QueueKind.MINE).status == "waiting_customer"


def test_unassigned_priority_sort_uses_rank_not_alphabet():
    tickets = [
        make_ticket("t-1", priority="normal"),
        make_ticket("t-2", priority="urgent"),
        make_ticket("t-3", priority="high"),
        make_ticket("t-4", priority="low"),
    ]

    ordered = sort_tickets(tickets, QueueKind.UNASSIGNED, "priority")

    assert [ticket.priority for ticket in ordered] == ["urgent", "high", "normal", "low"]


def test_unassigned_priority_ties_break_oldest_first():
    tickets = [
        make_ticket("t-1", priority="high", minutes=30),
        make_ticket("t-2", priority="high", minutes=5),
        make_ticket("t-3", priority="mystery", minutes=0),
    ]

    ordered = sort_tickets(tickets, QueueKind.UNASSIGNED, "priority")

    assert [ticket.id for ticket in ordered] == ["t-2", "t-1", "t-3"]


def test_other_sort_keys():
    tickets = [
        make_ticket("t-1", minutes=10, customer_name="bob", status=TicketStatus.WAITING_CUSTOMER),
        make_ticket("t-2", minutes=30, customer_name="Alice", status=TicketStatus.ASSIGNED),
        make_ticket("t-3", minutes=20, customer_name=None, status=TicketStatus.IN_PROGRESS),
    ]

    assert [t.id for t in sort_tickets(tickets, QueueKind.UNASSIGNED, "created")] == ["t-2", "t-3", "t-1"]
    assert [t.id for t in sort_tickets(tickets, QueueKind.UNASSIGNED, "customer")] == ["t-3", "t-2", "t-1"]
    assert [t.id for t in sort_tickets(tickets, QueueKind.MINE, "last_activity")] == ["t-2", "t-3", "t-1"]
    assert [t.id for t in sort_tickets(tickets, QueueKind.MINE, "status")] == ["t-2", "t-3", "t-1"]
    assert [t.id for t in sort_tickets(tickets, QueueKind.MINE, "unknown")] == ["t-1", "t-2", "t-3"]


def test_closed_sort_prefers_closed_at():
    tickets = [
        make_ticket("t-1", status=TicketStatus.CLOSED, closed_at=datetime(2024, 3, 1, tzinfo=timezone.utc)),
        make_ticket("t-2", status=TicketStatus.RESOLVED, closed_at=datetime(2024, 4, 1, tzinfo=timezone.utc)),
    ]

    assert [t.id for t in sort_tickets(tickets, QueueKind.CLOSED, "closed")] == ["t-2", "t-1"]


def test_local_search_fields_depend_on_queue():
    ticket = make_ticket("t-42", customer_name="Grace Hopper", customer_phone="555-0100")

    assert matches_search(ticket, QueueKind.UNASSIGNED, "42")
    assert matches_search(ticket, QueueKind.UNASSIGNED, "grace")
    assert matches_search(ticket, QueueKind.UNASSIGNED, "0100")
    assert matches_search(ticket, QueueKind.MINE, "ticket t-42")
    assert not matches_search(ticket, QueueKind.MINE, "grace")
    assert matches_search(ticket, QueueKind.MINE, "   ")


def test_spec_apply_and_params():
    spec = FilterSpec(kind=QueueKind.CLOSED, committed_search="t-1", status="closed")
    spec.date_range = DateRange(start=date(2024, 3, 1))
    tickets = [
        make_ticket("t-1", status=TicketStatus.CLOSED, closed_at=datetime(2024, 3, 2, tzinfo=timezone.utc)),
        make_ticket("t-10", status=TicketStatus.RESOLVED, closed_at=datetime(2024, 3, 5, tzinfo=timezone.utc)),
        make_ticket("t-11", status=TicketStatus.CLOSED, closed_at=datetime(2024, 2, 5, tzinfo=timezone.utc)),
    ]

    assert [t.id for t in spec.apply(tickets)] == ["t-1"]
    assert spec.to_params() == {
        "sort": "closed",
        "search": "t-1",
        "status": "closed",
        "from": "2024-03-01",
    }


@pytest.mark.asyncio
async def test_debouncer_delivers_last_value():
    received: list[str] = []
    debouncer = Debouncer(DEBOUNCE, received.append)

    debouncer.push("a")
    debouncer.push("b")
    assert debouncer.pending
    await asyncio.sleep(DEBOUNCE * 3)

    assert received == ["b"]
    assert not debouncer.pending
