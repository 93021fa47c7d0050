"""Client-side snapshot of the agent's ticket queues and the open ticket."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from triage.client.api import TicketAPI
from triage.metrics import FETCH_DURATION_SECONDS, STALE_RESPONSES_TOTAL, MetricsRegistry, metrics_registry
from triage.sync.edit_guard import ACTIVE_VIEW, CLOSED_VIEW, EditGuard, detail_view

from .errors import TicketNotInQueueError, TransferInProgressError, ValidationFailure
from .models import Pagination, Queue, Ticket, TicketDetail
from .state import QueueKind

logger = logging.getLogger(__name__)

QUEUE_VIEWS: Mapping[QueueKind, str] = {
    QueueKind.UNASSIGNED: ACTIVE_VIEW,
    QueueKind.MINE: ACTIVE_VIEW,
    QueueKind.CLOSED: CLOSED_VIEW,
}

ACTIVE_QUEUES = (QueueKind.UNASSIGNED, QueueKind.MINE)


@dataclass(slots=True)
class QueueRequest:
    """Query last used to fetch a queue; background refreshes repeat it."""

    filters: Mapping[str, str] = field(default_factory=dict)
    page: int = 1
    page_size: int = 25


@dataclass(slots=True)
class TransferSnapshot:
    """What an optimistic transfer changed, so it can be settled or undone."""

    ticket_id: str
    source: QueueKind
    target: QueueKind
    original: Ticket
    original_index: int
    provisional: Ticket


class TicketStore:
    """Holds the unassigned, mine and closed queues plus the open ticket detail.

    Queue contents change only through :meth:`load`, :meth:`reconcile` and the
    transfer operations. Every change bumps the queue's ``revision``; a
    background refresh requested at an older revision is discarded on arrival
    so it cannot overwrite newer local state.
    """

    def __init__(
        self,
        api: TicketAPI,
        edit_guard: EditGuard,
        *,
        default_page_size: int = 25,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._api = api
        self._guard = edit_guard
        self._metrics = metrics or metrics_registry
        self._queues: dict[QueueKind, Queue] = {
            kind: Queue(kind=kind, pagination=Pagination(page_size=default_page_size))
            for kind in QueueKind
        }
        self._requests: dict[QueueKind, QueueRequest] = {
            kind: QueueRequest(page_size=default_page_size) for kind in QueueKind
        }
        self._load_seq: dict[QueueKind, int] = {kind: 0 for kind in QueueKind}
        self._pending: dict[str, TransferSnapshot] = {}
        self._detail: TicketDetail | None = None
        self._detail_id: str | None = None
        self._detail_revision = 0

    # Queues

    def queue(self, kind: QueueKind) -> Queue:
        return self._queues[QueueKind(kind)]

    def request(self, kind: QueueKind) -> QueueRequest:
        return self._requests[QueueKind(kind)]

    def pending_transfer(self, ticket_id: str) -> TransferSnapshot | None:
        return self._pending.get(ticket_id)

    async def load(
        self,
        kind: QueueKind,
        filters: Mapping[str, str],
        page: int,
        page_size: int,
    ) -> Queue:
        """Fetch ``kind`` with a new query and replace its snapshot.

        Raises :class:`NetworkFailure` if the request fails; the previous
        snapshot is kept. Only a newer load supersedes this one; transfers made
        while it was in flight are re-applied on top of the result.
        """

        kind = QueueKind(kind)
        Pagination(page=page, page_size=page_size)
        request = QueueRequest(filters=dict(filters), page=page, page_size=page_size)
        self._requests[kind] = request

        queue = self._queues[kind]
        # older refreshes in flight must not land on top of the new query
        queue.revision += 1
        self._load_seq[kind] += 1
        token = self._load_seq[kind]

        server_queue = await self._fetch(kind, request)
        if self._load_seq[kind] != token:
            self._discard_stale(kind, "load")
            return server_queue
        self._replace(kind, server_queue)
        return queue

    async def refresh(self, kind: QueueKind, *, force: bool = False) -> bool:
        """Re-fetch ``kind`` with its last query and reconcile the result."""

        kind = QueueKind(kind)
        token = self._queues[kind].revision
        server_queue = await self._fetch(kind, self._requests[kind])
        return self.reconcile(kind, server_queue, token=token, force=force)

    def reconcile(
        self,
        kind: QueueKind,
        server_queue: Queue,
        *,
        token: int | None = None,
        force: bool = False,
    ) -> bool:
        """Replace the snapshot of ``kind`` with ``server_queue``.

        Skipped while the queue's view is being edited (unless ``force``) or
        when ``token`` no longer matches the queue's revision.
        """

        kind = QueueKind(kind)
        queue = self._queues[kind]
        view = QUEUE_VIEWS[kind]
        if not force and self._guard.is_active(view):
            logger.debug("Reconcile of %s skipped: %s is being edited", kind.value, view)
            return False
        if token is not None and token != queue.revision:
            self._discard_stale(kind, "reconcile")
            return False
        self._replace(kind, server_queue)
        return True

    def apply_optimistic_transfer(
        self,
        ticket_id: str,
        from_kind: QueueKind,
        to_kind: QueueKind,
        patch: Mapping[str, Any],
    ) -> TransferSnapshot:
        """Move a summary between queues locally, adjusting both counts."""

        from_kind, to_kind = QueueKind(from_kind), QueueKind(to_kind)
        if from_kind == to_kind or from_kind not in ACTIVE_QUEUES or to_kind not in ACTIVE_QUEUES:
            raise ValidationFailure(
                f"Cannot transfer from {from_kind.value} to {to_kind.value}", field="target"
            )
        if ticket_id in self._pending:
            raise TransferInProgressError(f"Ticket {ticket_id} already has a pending transfer")

        source = self._queues[from_kind]
        index = source.index_of(ticket_id)
        if index is None:
            raise TicketNotInQueueError(f"Ticket {ticket_id} is not in the {from_kind.value} queue")

        original = source.tickets.pop(index)
        source.pagination.adjust_count(-1)
        source.revision += 1

        provisional = original.copy(**dict(patch), provisional=True)
        target = self._queues[to_kind]
        self._insert_provisional(target, provisional)

        snapshot = TransferSnapshot(
            ticket_id=ticket_id,
            source=from_kind,
            target=to_kind,
            original=original,
            original_index=index,
            provisional=provisional,
        )
        self._pending[ticket_id] = snapshot
        logger.debug("Optimistic transfer of %s: %s -> %s", ticket_id, from_kind.value, to_kind.value)
        return snapshot

    def settle_transfer(self, snapshot: TransferSnapshot, server_ticket: Ticket | None) -> bool:
        """Replace the provisional summary with the server's view of the ticket."""

        self._pending.pop(snapshot.ticket_id, None)
        target = self._queues[snapshot.target]
        index = target.index_of(snapshot.ticket_id)
        if index is None or not target.tickets[index].provisional:
            # a reconcile already brought in the server's copy
            return False
        current = target.tickets[index]
        if server_ticket is not None:
            current = current.copy(
                status=server_ticket.status,
                assignee_id=server_ticket.assignee_id or current.assignee_id,
                assignee_name=server_ticket.assignee_name or current.assignee_name,
                updated_at=server_ticket.updated_at or current.updated_at,
            )
        target.tickets[index] = current.copy(provisional=False)
        target.revision += 1
        return True

    def rollback_transfer(self, snapshot: TransferSnapshot) -> None:
        """Undo an optimistic transfer: drop the provisional copy, restore the original."""

        self._pending.pop(snapshot.ticket_id, None)
        target = self._queues[snapshot.target]
        index = target.index_of(snapshot.ticket_id)
        if index is not None and target.tickets[index].provisional:
            del target.tickets[index]
            target.pagination.adjust_count(-1)
            target.revision += 1

        source = self._queues[snapshot.source]
        if snapshot.ticket_id not in source:
            position = min(snapshot.original_index, len(source.tickets))
            source.tickets.insert(position, snapshot.original)
            source.pagination.adjust_count(1)
            source.revision += 1
        logger.debug("Rolled back transfer of %s", snapshot.ticket_id)

    # Detail

    @property
    def detail(self) -> TicketDetail | None:
        return self._detail

    async def open_detail(self, ticket_id: str) -> TicketDetail:
        """Load a ticket's detail; :class:`NotFoundError` propagates."""

        self._detail_id = ticket_id
        self._detail = None
        self._detail_revision += 1
        token = self._detail_revision
        with self._metrics.time_distribution(FETCH_DURATION_SECONDS, labels={"target": "detail"}):
            detail = await self._api.get_detail(ticket_id)
        if token == self._detail_revision and self._detail_id == ticket_id:
            self._detail = detail
        return detail

    async def refresh_detail(self, *, force: bool = False) -> TicketDetail | None:
        """Re-fetch the open ticket; returns the fetched detail if it was applied."""

        if self._detail_id is None:
            return None
        ticket_id = self._detail_id
        token = self._detail_revision
        with self._metrics.time_distribution(FETCH_DURATION_SECONDS, labels={"target": "detail"}):
            detail = await self._api.get_detail(ticket_id)
        if self.reconcile_detail(detail, token=token, force=force):
            return detail
        return None

    def reconcile_detail(
        self, detail: TicketDetail, *, token: int | None = None, force: bool = False
    ) -> bool:
        if self._detail_id is None or detail.ticket.id != self._detail_id:
            return False
        if not force and self._guard.is_active(detail_view(self._detail_id)):
            logger.debug("Reconcile of ticket %s skipped: edit in progress", self._detail_id)
            return False
        if token is not None and token != self._detail_revision:
            self._discard_stale(None, "detail")
            return False
        self._detail = detail
        self._detail_revision += 1
        return True

    def invalidate_detail(self) -> None:
        """Mark in-flight detail fetches stale before a local change is sent."""

        self._detail_revision += 1

    def close_detail(self) -> None:
        self._detail = None
        self._detail_id = None
        self._detail_revision += 1

    # Internals

    async def _fetch(self, kind: QueueKind, request: QueueRequest) -> Queue:
        with self._metrics.time_distribution(FETCH_DURATION_SECONDS, labels={"target": kind.value}):
            return await self._api.list(kind, request.page, request.page_size, request.filters)

    def _replace(self, kind: QueueKind, server_queue: Queue) -> None:
        queue = self._queues[kind]
        tickets = list(server_queue.tickets)
        pagination = Pagination(
            page=server_queue.pagination.page,
            page_size=server_queue.pagination.page_size,
            total_count=server_queue.pagination.total_count,
        )
        queue.tickets = tickets
        queue.pagination = pagination
        self._overlay_pending(queue)
        queue.revision += 1
        if kind in ACTIVE_QUEUES:
            self._enforce_disjoint(kind)

    def _overlay_pending(self, queue: Queue) -> None:
        # the server may not have processed an in-flight assignment yet
        for snapshot in self._pending.values():
            if snapshot.source == queue.kind:
                index = queue.index_of(snapshot.ticket_id)
                if index is not None:
                    del queue.tickets[index]
                    queue.pagination.adjust_count(-1)
            elif snapshot.target == queue.kind and snapshot.ticket_id not in queue:
                queue.tickets.insert(0, snapshot.provisional)
                queue.pagination.adjust_count(1)

    def _enforce_disjoint(self, fresh_kind: QueueKind) -> None:
        other_kind = QueueKind.MINE if fresh_kind == QueueKind.UNASSIGNED else QueueKind.UNASSIGNED
        fresh_ids = set(self._queues[fresh_kind].ids())
        other = self._queues[other_kind]
        kept = [
            ticket
            for ticket in other.tickets
            if ticket.id not in fresh_ids or ticket.id in self._pending
        ]
        removed = len(other.tickets) - len(kept)
        if removed:
            other.tickets = kept
            other.pagination.adjust_count(-removed)
            other.revision += 1
            logger.debug("Dropped %d ticket(s) from %s now listed in %s", removed, other_kind.value, fresh_kind.value)

    def _insert_provisional(self, target: Queue, provisional: Ticket) -> None:
        index = target.index_of(provisional.id)
        if index is None:
            target.tickets.insert(0, provisional)
            target.pagination.adjust_count(1)
        else:
            target.tickets[index] = provisional
        target.revision += 1

    def _discard_stale(self, kind: QueueKind | None, reason: str) -> None:
        label = kind.value if kind is not None else "detail"
        logger.debug("Discarded stale %s response for %s", reason, label)
        self._metrics.counter(STALE_RESPONSES_TOTAL, label_names=("queue",)).inc(labels={"queue": label})
