"""Lifecycle of the ticket dashboard: active and closed tabs."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import date
from typing import Mapping

from triage.client.api import TicketAPI
from triage.client.auth import AgentProfile
from triage.core.config import Settings, get_settings
from triage.metrics import MetricsRegistry
from triage.notifications import NotificationCenter, Notifier, Severity
from triage.sync.edit_guard import ACTIVE_VIEW, CLOSED_VIEW, EditGuard
from triage.sync.filters import FilterSpec, FilterState
from triage.sync.scheduler import RefreshScheduler
from triage.sync.transfer import Transfer, TransferCoordinator
from triage.sync.url_state import ACTIVE_TAB, CLOSED_TAB, TABS, Location, MemoryLocation, URLStateSync
from triage.tickets.errors import NetworkFailure, TriageError, ValidationFailure
from triage.tickets.models import Ticket
from triage.tickets.state import QueueKind
from triage.tickets.store import TicketStore

logger = logging.getLogger(__name__)

TAB_QUEUES: Mapping[str, tuple[QueueKind, ...]] = {
    ACTIVE_TAB: (QueueKind.UNASSIGNED, QueueKind.MINE),
    CLOSED_TAB: (QueueKind.CLOSED,),
}

TAB_VIEWS: Mapping[str, str] = {
    ACTIVE_TAB: ACTIVE_VIEW,
    CLOSED_TAB: CLOSED_VIEW,
}

LOAD_ERROR_MESSAGE = "Failed to load tickets"


class DashboardView:
    """Wires the store, filters, poller, transfers and URL mirror of the dashboard.

    ``mount`` restores state from the location, loads the current tab and
    starts its background poll. Committed filter changes reload the affected
    queue and are pushed back into the location. Silent polls never touch
    the ``loading`` or ``refreshing`` flags.
    """

    def __init__(
        self,
        store: TicketStore,
        filters: FilterState,
        scheduler: RefreshScheduler,
        coordinator: TransferCoordinator,
        url_sync: URLStateSync,
        notifier: Notifier,
        *,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.filters = filters
        self.scheduler = scheduler
        self.coordinator = coordinator
        self.url_sync = url_sync
        self.notifier = notifier
        self.settings = settings or get_settings()

        self.tab = ACTIVE_TAB
        self.refreshing = False
        self.errors: dict[QueueKind, str | None] = {kind: None for kind in QueueKind}
        self.transfer_error: str | None = None
        self.mounted = False
        self._loads: Counter[QueueKind] = Counter()
        self._unsubscribe = None
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def create(
        cls,
        api: TicketAPI,
        agent: AgentProfile,
        *,
        location: Location | None = None,
        notifier: Notifier | None = None,
        edit_guard: EditGuard | None = None,
        settings: Settings | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> "DashboardView":
        settings = settings or get_settings()
        guard = edit_guard or EditGuard()
        notifier = notifier or NotificationCenter(default_duration=settings.toast_duration)
        store = TicketStore(api, guard, default_page_size=settings.default_page_size, metrics=metrics)
        filters = FilterState(
            debounce_delay=settings.search_debounce,
            default_page_size=settings.default_page_size,
            allowed_page_sizes=settings.allowed_page_sizes,
        )
        url_sync = URLStateSync(
            location or MemoryLocation(),
            default_page_size=settings.default_page_size,
            allowed_page_sizes=settings.allowed_page_sizes,
        )
        return cls(
            store,
            filters,
            RefreshScheduler(guard, metrics=metrics),
            TransferCoordinator(store, api, notifier, agent, metrics=metrics),
            url_sync,
            notifier,
            settings=settings,
        )

    # Lifecycle

    async def mount(self) -> None:
        state = self.url_sync.mount()
        for spec in state.filters.values():
            self.filters.restore(spec)
        self.tab = state.tab
        self._unsubscribe = self.filters.subscribe(self._on_filters_changed)
        self.mounted = True
        await self._load_tab()
        self._start_polling()
        logger.info("Dashboard mounted on %s tab", self.tab)

    async def unmount(self) -> None:
        self.scheduler.stop()
        self.filters.close()
        self.url_sync.unmount()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.mounted = False
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def switch_tab(self, tab: str) -> None:
        if tab not in TABS:
            raise ValidationFailure(f"Unknown tab '{tab}'", field="tab")
        if tab == self.tab:
            return
        self.scheduler.stop()
        self.tab = tab
        self._push_url()
        await self._load_tab()
        self._start_polling()

    def resume(self) -> None:
        """Take the poller back after a ticket detail view released it."""

        if not self.mounted or self.scheduler.active_view == TAB_VIEWS[self.tab]:
            return
        self._start_polling()
        logger.debug("Dashboard polling resumed on %s tab", self.tab)

    async def refresh(self) -> None:
        """Manual refresh of the current tab's queues."""

        self.refreshing = True
        try:
            for kind in TAB_QUEUES[self.tab]:
                try:
                    await self.store.refresh(kind, force=True)
                    self.errors[kind] = None
                except NetworkFailure as exc:
                    self.errors[kind] = str(exc)
                    self.notifier.notify(LOAD_ERROR_MESSAGE, Severity.ERROR)
        finally:
            self.refreshing = False

    # Queue state

    def loading(self, kind: QueueKind) -> bool:
        return self._loads[QueueKind(kind)] > 0

    def visible_tickets(self, kind: QueueKind) -> list[Ticket]:
        kind = QueueKind(kind)
        return self.filters.spec(kind).apply(self.store.queue(kind).tickets)

    # Filters

    def set_search(self, kind: QueueKind, text: str) -> None:
        self.filters.set_search(kind, text)

    def set_sort(self, kind: QueueKind, sort_key: str) -> None:
        self.filters.set_sort(kind, sort_key)

    def set_status(self, kind: QueueKind, status: str) -> None:
        self.filters.set_status(kind, status)

    def set_date_range(self, start: date | None, end: date | None) -> None:
        self.filters.set_date_range(QueueKind.CLOSED, start, end)

    def set_page(self, kind: QueueKind, page: int) -> None:
        self.filters.set_page(kind, page)

    def set_page_size(self, kind: QueueKind, page_size: int) -> None:
        self.filters.set_page_size(kind, page_size)

    # Transfers

    async def request_transfer(
        self, ticket_id: str, source: QueueKind, target: QueueKind
    ) -> Transfer | None:
        """Drop of a ticket card onto another queue."""

        if QueueKind(source) == QueueKind(target):
            return None
        try:
            transfer = await self.coordinator.request_transfer(ticket_id, source, target)
        except ValidationFailure as exc:
            self.transfer_error = str(exc)
            return None
        self.transfer_error = None
        return transfer

    async def assign(self, ticket_id: str) -> Transfer | None:
        try:
            transfer = await self.coordinator.assign(ticket_id)
        except ValidationFailure as exc:
            self.transfer_error = str(exc)
            return None
        self.transfer_error = None
        return transfer

    async def wait_idle(self) -> None:
        """Wait for filter-triggered reloads and dispatched polls to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.scheduler.wait_idle()

    # Internals

    async def _load_tab(self) -> None:
        await asyncio.gather(*(self._load(kind) for kind in TAB_QUEUES[self.tab]))

    async def _load(self, kind: QueueKind) -> None:
        spec = self.filters.spec(kind)
        self._loads[kind] += 1
        try:
            await self.store.load(kind, spec.to_params(), spec.page, spec.page_size)
            self.errors[kind] = None
        except NetworkFailure as exc:
            self.errors[kind] = str(exc)
            self.notifier.notify(LOAD_ERROR_MESSAGE, Severity.ERROR)
        finally:
            self._loads[kind] -= 1

    def _start_polling(self) -> None:
        jobs = {f"queue:{kind.value}": self._poll_job(kind) for kind in TAB_QUEUES[self.tab]}
        self.scheduler.start(
            TAB_VIEWS[self.tab],
            self.settings.queue_refresh_interval,
            jobs,
            on_error=self._on_poll_error,
        )

    def _poll_job(self, kind: QueueKind):
        async def job() -> None:
            await self.store.refresh(kind)

        return job

    def _on_poll_error(self, job: str, exc: TriageError) -> None:
        self.notifier.notify(LOAD_ERROR_MESSAGE, Severity.ERROR)

    def _on_filters_changed(self, kind: QueueKind, spec: FilterSpec) -> None:
        self._push_url()
        if kind not in TAB_QUEUES[self.tab]:
            # other tab's queues load when that tab is shown
            return
        task = asyncio.create_task(self._load(kind), name=f"reload:{kind.value}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _push_url(self) -> None:
        self.url_sync.push(self.tab, self.filters.specs().values())
