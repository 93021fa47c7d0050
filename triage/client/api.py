"""Async adapter for the ticket REST API."""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Protocol, TypeVar

import httpx
from opentelemetry import trace

from triage.tickets.errors import ConflictFailure, NetworkFailure, NotFoundError
from triage.tickets.models import Pagination, Queue, Ticket, TicketDetail
from triage.tickets.state import QueueKind, TicketPriority, TicketStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

QUEUE_PATHS: Mapping[QueueKind, str] = {
    QueueKind.UNASSIGNED: "/api/tickets/unassigned",
    QueueKind.MINE: "/api/tickets/my-tickets",
    QueueKind.CLOSED: "/api/tickets/closed",
}


class TicketAPI(Protocol):
    """Operations the sync engine consumes from the ticket service."""

    async def list(
        self, kind: QueueKind, page: int, page_size: int, filters: Mapping[str, str]
    ) -> Queue:
        ...

    async def get_detail(self, ticket_id: str) -> TicketDetail:
        ...

    async def update_status(self, ticket_id: str, status: TicketStatus, reason: str | None = None) -> None:
        ...

    async def update_priority(self, ticket_id: str, priority: TicketPriority) -> None:
        ...

    async def add_comment(self, ticket_id: str, text: str, is_resolution: bool = False) -> None:
        ...

    async def assign(self, ticket_id: str) -> Ticket | None:
        ...

    async def assign_to_me(self, ticket_id: str) -> Ticket | None:
        ...

    async def mark_read(self, ticket_id: str) -> None:
        ...


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or "Unknown server error"

    if isinstance(data, Mapping):
        for key in ("error", "detail", "message"):
            value = data.get(key)
            if isinstance(value, str):
                return value
            if isinstance(value, Mapping) and "msg" in value:
                return str(value["msg"])
    return "Request failed"


class TicketAPIClient:
    """``httpx`` implementation of :class:`TicketAPI`.

    Every call carries the agent's bearer token. Non-success responses are
    mapped onto the engine's error types: 404 to :class:`NotFoundError`, 409
    to :class:`ConflictFailure`, anything else to :class:`NetworkFailure`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TicketAPIClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        with tracer.start_as_current_span(f"ticket_api {method}") as span:
            span.set_attribute("http.method", method)
            span.set_attribute("http.target", path)
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                logger.warning("Ticket API %s %s failed: %s", method, path, exc)
                raise NetworkFailure(f"Ticket API request failed: {exc}") from exc

            span.set_attribute("http.status_code", response.status_code)
            if response.status_code >= 400:
                message = _extract_error_message(response)
                logger.info("Ticket API %s %s returned %s: %s", method, path, response.status_code, message)
                if response.status_code == 404:
                    raise NotFoundError(message, status_code=404)
                if response.status_code == 409:
                    raise ConflictFailure(message, status_code=409)
                raise NetworkFailure(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkFailure("Ticket API returned a non-JSON body", status_code=response.status_code) from exc

    async def list(
        self, kind: QueueKind, page: int, page_size: int, filters: Mapping[str, str]
    ) -> Queue:
        params = {"page": str(page), "limit": str(page_size), **dict(filters)}
        data = await self._request("GET", QUEUE_PATHS[kind], params=params)
        fallback = Pagination(page=page, page_size=page_size)
        if isinstance(data, list):
            # legacy endpoints return a bare array
            data = {"tickets": data, "pagination": {"page": page, "limit": page_size, "totalCount": len(data)}}
        return _parse(lambda: Queue.from_payload(kind, data or {}, fallback=fallback))

    async def get_detail(self, ticket_id: str) -> TicketDetail:
        data = await self._request("GET", f"/api/tickets/{ticket_id}")
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise NotFoundError("Ticket not found", status_code=404)
        return _parse(lambda: TicketDetail.from_payload(data))

    async def update_status(self, ticket_id: str, status: TicketStatus, reason: str | None = None) -> None:
        payload: dict[str, Any] = {"status": TicketStatus(status).value}
        if reason:
            payload["reason"] = reason
        await self._request("PUT", f"/api/tickets/{ticket_id}/status", json=payload)

    async def update_priority(self, ticket_id: str, priority: TicketPriority) -> None:
        payload = {"priority": TicketPriority(priority).value}
        await self._request("PUT", f"/api/tickets/{ticket_id}/priority", json=payload)

    async def add_comment(self, ticket_id: str, text: str, is_resolution: bool = False) -> None:
        payload = {"comment_text": text, "is_resolution": is_resolution}
        await self._request("POST", f"/api/tickets/{ticket_id}/comments", json=payload)

    async def assign(self, ticket_id: str) -> Ticket | None:
        # an empty body assigns the ticket to the caller
        data = await self._request("POST", f"/api/tickets/{ticket_id}/assign", json={})
        return _parse_assigned(data)

    async def assign_to_me(self, ticket_id: str) -> Ticket | None:
        data = await self._request("POST", f"/api/tickets/{ticket_id}/assign-to-me")
        return _parse_assigned(data)

    async def mark_read(self, ticket_id: str) -> None:
        await self._request("POST", f"/api/tickets/{ticket_id}/mark-read")


def _unwrap_ticket(data: Any) -> Mapping[str, Any]:
    if isinstance(data, list):
        data = data[0] if data else {}
    if isinstance(data, Mapping) and isinstance(data.get("ticket"), Mapping):
        return data["ticket"]
    return data or {}


def _parse_assigned(data: Any) -> Ticket | None:
    """The assignment already happened; a body without a ticket is not an error."""

    payload = _unwrap_ticket(data)
    if not payload or not (payload.get("id") or payload.get("ticket_id")):
        return None
    return _parse(lambda: Ticket.from_payload(payload))


def _parse(factory: Callable[[], T]) -> T:
    try:
        return factory()
    except (KeyError, TypeError, ValueError) as exc:
        raise NetworkFailure(f"Malformed ticket API response: {exc}") from exc
