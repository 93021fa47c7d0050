"""Mirror dashboard filter and pagination state into query parameters."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Mapping, Protocol
from urllib.parse import parse_qsl, urlencode

from triage.tickets.errors import ValidationFailure
from triage.tickets.models import DateRange
from triage.tickets.state import QueueKind

from .filters import ALL_STATUSES, DEFAULT_SORT, SORT_KEYS, FilterSpec, validate_status_filter

logger = logging.getLogger(__name__)

ACTIVE_TAB = "active"
CLOSED_TAB = "closed"
TABS = (ACTIVE_TAB, CLOSED_TAB)

QUEUE_PREFIXES: Mapping[QueueKind, str] = {
    QueueKind.UNASSIGNED: "u_",
    QueueKind.MINE: "m_",
    QueueKind.CLOSED: "c_",
}


class Location(Protocol):
    """The browser location bar, as far as the dashboard needs it."""

    def query_params(self) -> Mapping[str, str]:
        ...

    def replace_query(self, params: Mapping[str, str]) -> None:
        """Swap the query string in place, without navigating."""


class MemoryLocation:
    """In-process :class:`Location`; keeps a history of pushed query strings."""

    def __init__(self, query: str | Mapping[str, str] = "") -> None:
        if isinstance(query, str):
            self._params = dict(parse_qsl(query.lstrip("?"), keep_blank_values=False))
        else:
            self._params = dict(query)
        self.history: list[str] = []

    @property
    def query_string(self) -> str:
        return urlencode(self._params)

    def query_params(self) -> Mapping[str, str]:
        return dict(self._params)

    def replace_query(self, params: Mapping[str, str]) -> None:
        self._params = dict(params)
        self.history.append(self.query_string)


@dataclass(slots=True)
class DashboardState:
    tab: str = ACTIVE_TAB
    filters: dict[QueueKind, FilterSpec] = field(default_factory=dict)


class URLStateSync:
    """Parse query parameters once at mount, push committed changes after.

    Keys are ``tab`` plus, per queue prefix (``u_``, ``m_``, ``c_``):
    ``page``, ``limit``, ``search``, ``sort``, ``status`` and, for closed
    tickets, ``from``/``to``. Values equal to their default are omitted.
    """

    def __init__(
        self,
        location: Location,
        *,
        default_page_size: int = 25,
        allowed_page_sizes: Iterable[int] = (10, 25, 50, 100),
    ) -> None:
        self._location = location
        self.default_page_size = default_page_size
        self.allowed_page_sizes = tuple(allowed_page_sizes)
        self._mounted = False
        self._last_pushed: dict[str, str] | None = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    def mount(self) -> DashboardState:
        state = self.parse(self._location.query_params())
        self._mounted = True
        self._last_pushed = self.build_query(state.tab, state.filters.values())
        return state

    def unmount(self) -> None:
        self._mounted = False

    def push(self, tab: str, specs: Iterable[FilterSpec]) -> bool:
        """Write the current state into the location; no-op before mount or when unchanged."""

        if not self._mounted:
            return False
        query = self.build_query(tab, specs)
        if query == self._last_pushed:
            return False
        self._location.replace_query(query)
        self._last_pushed = query
        logger.debug("Pushed query state: %s", query)
        return True

    def parse(self, params: Mapping[str, str]) -> DashboardState:
        tab = params.get("tab", ACTIVE_TAB)
        if tab not in TABS:
            tab = ACTIVE_TAB
        filters = {kind: self._parse_queue(kind, params) for kind in QueueKind}
        return DashboardState(tab=tab, filters=filters)

    def build_query(self, tab: str, specs: Iterable[FilterSpec]) -> dict[str, str]:
        query: dict[str, str] = {}
        if tab != ACTIVE_TAB:
            query["tab"] = tab
        for spec in specs:
            prefix = QUEUE_PREFIXES[spec.kind]
            if spec.page != 1:
                query[f"{prefix}page"] = str(spec.page)
            if spec.page_size != self.default_page_size:
                query[f"{prefix}limit"] = str(spec.page_size)
            if spec.committed_search:
                query[f"{prefix}search"] = spec.committed_search
            if spec.sort != DEFAULT_SORT[spec.kind]:
                query[f"{prefix}sort"] = spec.sort
            if spec.status != ALL_STATUSES:
                query[f"{prefix}status"] = spec.status
            if spec.date_range.start:
                query[f"{prefix}from"] = spec.date_range.start.isoformat()
            if spec.date_range.end:
                query[f"{prefix}to"] = spec.date_range.end.isoformat()
        return query

    def _parse_queue(self, kind: QueueKind, params: Mapping[str, str]) -> FilterSpec:
        prefix = QUEUE_PREFIXES[kind]
        spec = FilterSpec(kind=kind, page_size=self.default_page_size)

        page = _parse_int(params.get(f"{prefix}page"))
        if page is not None and page >= 1:
            spec.page = page
        limit = _parse_int(params.get(f"{prefix}limit"))
        if limit is not None:
            # unsupported sizes fall back to the default
            spec.page_size = limit if limit in self.allowed_page_sizes else self.default_page_size

        search = params.get(f"{prefix}search", "")
        spec.search = spec.committed_search = search

        sort = params.get(f"{prefix}sort")
        if sort in SORT_KEYS[kind]:
            spec.sort = sort

        status = params.get(f"{prefix}status")
        if status and kind != QueueKind.UNASSIGNED:
            try:
                spec.status = validate_status_filter(kind, status)
            except ValidationFailure:
                logger.debug("Ignoring unknown status %r for %s", status, kind.value)

        if kind == QueueKind.CLOSED:
            start = _parse_date(params.get(f"{prefix}from"))
            end = _parse_date(params.get(f"{prefix}to"))
            try:
                spec.date_range = DateRange(start=start, end=end)
            except ValidationFailure:
                spec.date_range = DateRange()
        return spec


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
