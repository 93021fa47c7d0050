from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

ACTIVE_VIEW = "active"
CLOSED_VIEW = "closed"


def detail_view(ticket_id: str) -> str:
    """View key for a single ticket's detail page."""

    return f"ticket:{ticket_id}"


class EditGuard:
    """Tracks, per view, the fields an agent is currently editing.

    A view is guarded while at least one field is open. Background refreshes
    for a guarded view are dropped, not deferred.
    """

    def __init__(self) -> None:
        self._fields: dict[str, set[str]] = defaultdict(set)

    def begin(self, view: str, field: str = "edit") -> None:
        if field not in self._fields[view]:
            logger.debug("Edit started on %s (%s)", view, field)
        self._fields[view].add(field)

    def end(self, view: str, field: str = "edit") -> None:
        fields = self._fields.get(view)
        if not fields:
            return
        fields.discard(field)
        if not fields:
            del self._fields[view]
            logger.debug("Edit guard released for %s", view)

    def cancel(self, view: str) -> None:
        """Drop every open field of ``view``."""

        if self._fields.pop(view, None):
            logger.debug("Edits cancelled on %s", view)

    def is_active(self, view: str) -> bool:
        return bool(self._fields.get(view))

    def fields(self, view: str) -> frozenset[str]:
        return frozenset(self._fields.get(view, ()))

    @contextmanager
    def editing(self, view: str, field: str = "edit") -> Iterator[None]:
        self.begin(view, field)
        try:
            yield
        finally:
            self.end(view, field)
