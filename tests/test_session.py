from __future__ import annotations

import pytest

from conftest import make_comment, make_ticket
from triage.main import triage_session
from triage.sync.url_state import MemoryLocation
from triage.tickets.models import TicketDetail
from triage.tickets.state import QueueKind


@pytest.mark.asyncio
async def test_session_wires_dashboard_and_detail_views(api, agent, settings):
    api.queues[QueueKind.UNASSIGNED] = [make_ticket("t-1", number=1)]
    api.details["t-1"] = TicketDetail(ticket=make_ticket("t-1", number=1), comments=[make_comment("c-1")])

    async with triage_session(agent, settings=settings, api=api, location=MemoryLocation()) as session:
        dashboard = session.dashboard
        await dashboard.mount()
        assert dashboard.scheduler.active_view == "active"

        detail_view = session.open_ticket("t-1")
        await detail_view.open()
        assert dashboard.scheduler.active_view == "ticket:t-1"
        assert dashboard.store.detail.ticket.number == 1

        detail_view.close()
        assert dashboard.scheduler.active_view == "active"
        await dashboard.assign("t-1")
        assert dashboard.store.queue(QueueKind.MINE).ids() == ["t-1"]
        assert session.notifier.messages() == ["Ticket #1 assigned to you"]

    assert not dashboard.mounted
    assert dashboard.scheduler.current is None
