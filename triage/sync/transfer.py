"""Optimistic assignment transfers between the unassigned pool and "my tickets"."""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from enum import Enum

from triage.client.api import TicketAPI
from triage.client.auth import AgentProfile
from triage.metrics import TRANSFER_OUTCOMES_TOTAL, TRANSFERS_TOTAL, MetricsRegistry, metrics_registry
from triage.notifications import Notifier, Severity
from triage.tickets.errors import ConflictFailure, NetworkFailure, TriageError, ValidationFailure
from triage.tickets.models import Ticket
from triage.tickets.state import QueueKind, TicketStatus, TransferState, TransferStateMachine
from triage.tickets.store import TicketStore, TransferSnapshot

logger = logging.getLogger(__name__)


class TransferGesture(str, Enum):
    DRAG = "drag"
    BUTTON = "button"


@dataclass(slots=True)
class Transfer:
    """One assignment attempt and where it ended up."""

    id: int
    ticket_id: str
    source: QueueKind
    target: QueueKind
    gesture: TransferGesture
    state: TransferState = TransferState.IDLE
    error: TriageError | None = None
    ticket: Ticket | None = None

    @property
    def settled(self) -> bool:
        return TransferStateMachine.is_settled(self.state)

    def advance(self, state: TransferState) -> None:
        TransferStateMachine.assert_transition(self.state, state)
        self.state = state


class TransferCoordinator:
    """Runs transfers through Idle -> Pending -> Committed | RolledBack.

    The store is updated synchronously before the assignment request goes
    out. A conflict means another agent won the race: the change is undone,
    a warning is shown and the source queue is re-fetched, bypassing any
    edit guard. Other failures undo the change and show an error.
    """

    def __init__(
        self,
        store: TicketStore,
        api: TicketAPI,
        notifier: Notifier,
        agent: AgentProfile,
        *,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._store = store
        self._api = api
        self._notifier = notifier
        self._agent = agent
        self._metrics = metrics or metrics_registry
        self._ids = itertools.count(1)

    async def request_transfer(self, ticket_id: str, source_queue: QueueKind, target_queue: QueueKind) -> Transfer:
        """Entry point for the drag-and-drop gesture layer."""

        return await self.transfer(ticket_id, source_queue, target_queue)

    async def transfer(self, ticket_id: str, source: QueueKind, target: QueueKind) -> Transfer:
        return await self._run(ticket_id, QueueKind(source), QueueKind(target), TransferGesture.DRAG)

    async def assign(self, ticket_id: str) -> Transfer:
        """Button-triggered self-assignment of an unassigned ticket."""

        return await self._run(ticket_id, QueueKind.UNASSIGNED, QueueKind.MINE, TransferGesture.BUTTON)

    async def _run(
        self, ticket_id: str, source: QueueKind, target: QueueKind, gesture: TransferGesture
    ) -> Transfer:
        if target != QueueKind.MINE:
            raise ValidationFailure("Tickets can only be transferred into your own queue", field="target")

        summary = self._store.queue(source).find(ticket_id)
        patch: dict[str, object] = {
            "assignee_id": self._agent.id,
            "assignee_name": self._agent.name,
        }
        if summary is not None and summary.status == TicketStatus.OPEN:
            patch["status"] = TicketStatus.ASSIGNED

        transfer = Transfer(
            id=next(self._ids),
            ticket_id=ticket_id,
            source=source,
            target=target,
            gesture=gesture,
        )
        snapshot = self._store.apply_optimistic_transfer(ticket_id, source, target, patch)
        transfer.advance(TransferState.PENDING)
        self._metrics.counter(TRANSFERS_TOTAL, label_names=("gesture",)).inc(labels={"gesture": gesture.value})
        label = _ticket_label(snapshot.original)
        logger.info("Transfer %d of %s (%s) pending", transfer.id, label, gesture.value)

        try:
            if gesture == TransferGesture.DRAG:
                server_ticket = await self._api.assign_to_me(ticket_id)
            else:
                server_ticket = await self._api.assign(ticket_id)
        except ConflictFailure as exc:
            self._roll_back(transfer, snapshot, exc, "conflict")
            self._notifier.notify(
                f"Ticket {label} was already claimed by another agent", Severity.WARNING
            )
            await self._resync(source)
            return transfer
        except NetworkFailure as exc:
            self._roll_back(transfer, snapshot, exc, "network")
            self._notifier.notify(f"Failed to assign ticket {label}", Severity.ERROR)
            return transfer

        self._store.settle_transfer(snapshot, server_ticket)
        transfer.ticket = server_ticket
        transfer.advance(TransferState.COMMITTED)
        self._outcome(transfer, "ok")
        logger.info("Transfer %d of %s committed", transfer.id, label)
        self._notifier.notify(f"Ticket {label} assigned to you", Severity.SUCCESS)
        return transfer

    def _roll_back(
        self, transfer: Transfer, snapshot: TransferSnapshot, exc: TriageError, reason: str
    ) -> None:
        self._store.rollback_transfer(snapshot)
        transfer.error = exc
        transfer.advance(TransferState.ROLLED_BACK)
        self._outcome(transfer, reason)
        logger.warning("Transfer %d of %s rolled back (%s): %s", transfer.id, transfer.ticket_id, reason, exc)

    async def _resync(self, kind: QueueKind) -> None:
        try:
            await self._store.refresh(kind, force=True)
        except NetworkFailure as exc:
            logger.warning("Resync of %s after conflict failed: %s", kind.value, exc)

    def _outcome(self, transfer: Transfer, reason: str) -> None:
        self._metrics.counter(TRANSFER_OUTCOMES_TOTAL, label_names=("state", "reason")).inc(
            labels={"state": transfer.state.value, "reason": reason}
        )


def _ticket_label(ticket: Ticket) -> str:
    return f"#{ticket.number}" if ticket.number is not None else ticket.id
