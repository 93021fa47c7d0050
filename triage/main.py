"""Composition root: one agent's dashboard session against the ticket API."""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from triage.client.api import TicketAPI, TicketAPIClient
from triage.client.auth import AgentProfile
from triage.core.config import Settings, get_settings
from triage.core.logging import configure_logging, init_tracer, shutdown_tracer
from triage.notifications import NotificationCenter
from triage.sync.edit_guard import EditGuard
from triage.sync.url_state import Location
from triage.views.dashboard import DashboardView
from triage.views.detail import MemoryNavigator, Navigator, TicketDetailView


@dataclass(slots=True)
class TriageSession:
    api: TicketAPI
    dashboard: DashboardView
    edit_guard: EditGuard
    notifier: NotificationCenter
    navigator: Navigator
    settings: Settings

    def open_ticket(self, ticket_id: str) -> TicketDetailView:
        """Detail view sharing the dashboard's store and poller."""

        return TicketDetailView(
            ticket_id,
            self.dashboard.store,
            self.api,
            self.dashboard.scheduler,
            self.edit_guard,
            self.notifier,
            self.navigator,
            settings=self.settings,
            on_close=self.dashboard.resume,
        )


@asynccontextmanager
async def triage_session(
    agent: AgentProfile,
    *,
    settings: Settings | None = None,
    location: Location | None = None,
    navigator: Navigator | None = None,
    api: TicketAPI | None = None,
) -> AsyncIterator[TriageSession]:
    settings = settings or get_settings()
    logger = configure_logging(settings)
    provider = init_tracer(settings)

    client: TicketAPIClient | None = None
    if api is None:
        client = TicketAPIClient(
            settings.api_base_url,
            token=agent.token or settings.api_token,
            timeout=settings.api_timeout,
        )
        api = client

    guard = EditGuard()
    notifier = NotificationCenter(default_duration=settings.toast_duration)
    dashboard = DashboardView.create(
        api,
        agent,
        location=location,
        notifier=notifier,
        edit_guard=guard,
        settings=settings,
    )
    session = TriageSession(
        api=api,
        dashboard=dashboard,
        edit_guard=guard,
        notifier=notifier,
        navigator=navigator or MemoryNavigator(),
        settings=settings,
    )
    logger.info("Triage session started for %s", agent.name)
    try:
        yield session
    finally:
        if dashboard.mounted:
            await dashboard.unmount()
        dashboard.scheduler.stop()
        if client is not None:
            await client.aclose()
        shutdown_tracer(provider)
