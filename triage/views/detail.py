"""Lifecycle of a single ticket's detail page."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

from triage.client.api import TicketAPI
from triage.core.config import Settings, get_settings
from triage.notifications import Notifier, Severity
from triage.sync.activity import NewActivityDetector
from triage.sync.edit_guard import EditGuard, detail_view
from triage.sync.scheduler import RefreshScheduler
from triage.tickets.errors import ConflictFailure, NetworkFailure, NotFoundError, TriageError, ValidationFailure
from triage.tickets.models import TicketDetail
from triage.tickets.state import TicketPriority, TicketStatus
from triage.tickets.store import TicketStore
from triage.tickets.validators import (
    validate_comment,
    validate_priority,
    validate_status,
    validate_status_reason,
)

logger = logging.getLogger(__name__)

COMMENT_FIELD = "comment"
STATUS_FIELD = "status"
PRIORITY_FIELD = "priority"


class Navigator(Protocol):
    def go_to_list(self) -> None:
        ...


class MemoryNavigator:
    """Records navigation requests instead of performing them."""

    def __init__(self) -> None:
        self.history: list[str] = []

    def go_to_list(self) -> None:
        self.history.append("list")


class TicketDetailView:
    """Shows one ticket, polls its comment thread and runs the agent's edits.

    Starting to type a comment or picking a new status guards the view, so
    background polls are dropped until the edit is submitted or cancelled.
    Validation problems are kept on ``comment_error`` / ``status_error`` and
    never reach the API.
    """

    def __init__(
        self,
        ticket_id: str,
        store: TicketStore,
        api: TicketAPI,
        scheduler: RefreshScheduler,
        edit_guard: EditGuard,
        notifier: Notifier,
        navigator: Navigator,
        *,
        settings: Settings | None = None,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self.ticket_id = ticket_id
        self.view = detail_view(ticket_id)
        self._store = store
        self._api = api
        self._scheduler = scheduler
        self._guard = edit_guard
        self._notifier = notifier
        self._navigator = navigator
        self._on_close = on_close
        self.settings = settings or get_settings()
        self.detector = NewActivityDetector(
            self.view,
            edit_guard,
            refresh=self.reload,
            scroll_to_latest=self._request_scroll,
        )

        self.loading = False
        self.not_found = False
        self.comment_draft = ""
        self.comment_is_resolution = False
        self.comment_error: str | None = None
        self.pending_status: TicketStatus | None = None
        self.status_reason = ""
        self.status_error: str | None = None
        self.updating_priority = False
        self.scroll_requested = False
        self._background: set[asyncio.Task[None]] = set()

    @property
    def detail(self) -> TicketDetail | None:
        return self._store.detail

    @property
    def editing(self) -> bool:
        return self._guard.is_active(self.view)

    # Lifecycle

    async def open(self) -> TicketDetail | None:
        self.loading = True
        try:
            detail = await self._store.open_detail(self.ticket_id)
        except NotFoundError:
            self._leave_missing_ticket()
            return None
        except NetworkFailure as exc:
            logger.warning("Could not load ticket %s: %s", self.ticket_id, exc)
            self._notifier.notify("Failed to load ticket", Severity.ERROR)
            return None
        finally:
            self.loading = False

        self.detector.reset(detail.comment_count)
        self._scheduler.start(
            self.view,
            self.settings.detail_refresh_interval,
            {f"detail:{self.ticket_id}": self._poll},
            on_error=self._on_poll_error,
        )
        self._spawn(self._mark_read())
        return detail

    def close(self) -> None:
        self._scheduler.stop(self.view)
        self._guard.cancel(self.view)
        self._store.close_detail()
        self._released()

    async def reload(self) -> TicketDetail | None:
        """Visible refresh after an action of the agent."""

        try:
            detail = await self._store.refresh_detail(force=True)
        except NotFoundError:
            self._leave_missing_ticket()
            return None
        except NetworkFailure as exc:
            logger.warning("Could not reload ticket %s: %s", self.ticket_id, exc)
            self._notifier.notify("Failed to load ticket", Severity.ERROR)
            return None
        if detail is not None:
            self.detector.reset(detail.comment_count)
        return detail

    async def dismiss_new_activity(self) -> None:
        await self.detector.dismiss()

    # Comments

    def edit_comment(self, text: str, *, is_resolution: bool | None = None) -> None:
        self.comment_draft = text
        if is_resolution is not None:
            self.comment_is_resolution = is_resolution
        self.comment_error = None
        self._guard.begin(self.view, COMMENT_FIELD)

    async def submit_comment(self) -> bool:
        try:
            text = validate_comment(
                self.comment_draft,
                min_length=self.settings.comment_min_length,
                max_length=self.settings.comment_max_length,
            )
        except ValidationFailure as exc:
            self.comment_error = str(exc)
            return False

        self._store.invalidate_detail()
        try:
            await self._api.add_comment(self.ticket_id, text, self.comment_is_resolution)
        except NetworkFailure as exc:
            logger.warning("Adding comment to %s failed: %s", self.ticket_id, exc)
            self._notifier.notify("Failed to add comment", Severity.ERROR)
            return False

        self.comment_draft = ""
        self.comment_is_resolution = False
        self.comment_error = None
        self._guard.end(self.view, COMMENT_FIELD)
        self._notifier.notify("Comment added successfully", Severity.SUCCESS)
        await self.reload()
        self._request_scroll()
        return True

    def cancel_comment(self) -> None:
        self.comment_draft = ""
        self.comment_is_resolution = False
        self.comment_error = None
        self._guard.end(self.view, COMMENT_FIELD)

    # Status

    def select_status(self, status: str | TicketStatus) -> None:
        self.pending_status = validate_status(status)
        self.status_error = None
        self._guard.begin(self.view, STATUS_FIELD)

    def edit_status_reason(self, reason: str) -> None:
        self.status_reason = reason
        self.status_error = None
        self._guard.begin(self.view, STATUS_FIELD)

    async def submit_status(self) -> bool:
        detail = self.detail
        if detail is None:
            return False
        status = self.pending_status or detail.ticket.status
        if status == detail.ticket.status:
            self._notifier.notify("Status unchanged", Severity.INFO)
            self.cancel_status()
            return False
        try:
            reason = validate_status_reason(
                self.status_reason, max_length=self.settings.status_reason_max_length
            )
        except ValidationFailure as exc:
            self.status_error = str(exc)
            return False

        self._store.invalidate_detail()
        try:
            await self._api.update_status(self.ticket_id, status, reason)
        except NetworkFailure as exc:
            logger.warning("Status update of %s failed: %s", self.ticket_id, exc)
            self._notifier.notify("Failed to update status", Severity.ERROR)
            return False

        self.cancel_status()
        self._notifier.notify("Status updated successfully", Severity.SUCCESS)
        await self.reload()
        return True

    def cancel_status(self) -> None:
        self.pending_status = None
        self.status_reason = ""
        self.status_error = None
        self._guard.end(self.view, STATUS_FIELD)

    # Other actions

    async def change_priority(self, priority: str | TicketPriority) -> bool:
        priority = validate_priority(priority)
        detail = self.detail
        if detail is not None and detail.ticket.priority == priority.value:
            return False

        self.updating_priority = True
        self._store.invalidate_detail()
        try:
            with self._guard.editing(self.view, PRIORITY_FIELD):
                await self._api.update_priority(self.ticket_id, priority)
        except NetworkFailure as exc:
            logger.warning("Priority update of %s failed: %s", self.ticket_id, exc)
            self._notifier.notify("Failed to update priority", Severity.ERROR)
            return False
        finally:
            self.updating_priority = False

        self._notifier.notify("Priority updated successfully", Severity.SUCCESS)
        await self.reload()
        return True

    async def assign_to_me(self) -> bool:
        self._store.invalidate_detail()
        try:
            await self._api.assign(self.ticket_id)
        except ConflictFailure:
            self._notifier.notify("Ticket was already claimed by another agent", Severity.WARNING)
            await self.reload()
            return False
        except NetworkFailure as exc:
            logger.warning("Assigning %s failed: %s", self.ticket_id, exc)
            self._notifier.notify("Failed to assign ticket", Severity.ERROR)
            return False

        self._notifier.notify("Ticket assigned to you", Severity.SUCCESS)
        await self.reload()
        return True

    # Internals

    async def _poll(self) -> None:
        detail = await self._store.refresh_detail()
        if detail is not None:
            self.detector.observe(detail.comment_count)

    def _on_poll_error(self, job: str, exc: TriageError) -> None:
        if isinstance(exc, NotFoundError):
            self._leave_missing_ticket()
            return
        self._notifier.notify("Failed to load ticket", Severity.ERROR)

    def _leave_missing_ticket(self) -> None:
        self.not_found = True
        self._scheduler.stop(self.view)
        self._notifier.notify("Ticket not found", Severity.ERROR)
        self._navigator.go_to_list()
        self._released()

    def _released(self) -> None:
        # hand the poller back to whoever opened this view
        if self._on_close is not None:
            self._on_close()

    async def _mark_read(self) -> None:
        try:
            await self._api.mark_read(self.ticket_id)
        except NetworkFailure as exc:
            logger.warning("Could not mark ticket %s read: %s", self.ticket_id, exc)

    def _request_scroll(self) -> None:
        self.scroll_requested = True

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
