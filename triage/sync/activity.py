from __future__ import annotations

import logging
from typing import Awaitable, Callable

from .edit_guard import EditGuard

logger = logging.getLogger(__name__)


class NewActivityDetector:
    """Raise a "new activity" flag when a silent poll brings in more comments."""

    def __init__(
        self,
        view: str,
        edit_guard: EditGuard,
        *,
        refresh: Callable[[], Awaitable[object]],
        scroll_to_latest: Callable[[], None],
    ) -> None:
        self.view = view
        self._guard = edit_guard
        self._refresh = refresh
        self._scroll_to_latest = scroll_to_latest
        self._last_count: int | None = None
        self.has_new_activity = False

    @property
    def last_count(self) -> int | None:
        return self._last_count

    def reset(self, count: int) -> None:
        """Record the count seen by a visible (non-silent) load."""

        self._last_count = count

    def observe(self, count: int) -> bool:
        """Compare a silent poll's comment count with the previous one."""

        previous, self._last_count = self._last_count, count
        if previous is None or count <= previous:
            return False
        if self._guard.is_active(self.view):
            return False
        if not self.has_new_activity:
            logger.info("New comments on %s (%d -> %d)", self.view, previous, count)
        self.has_new_activity = True
        return True

    async def dismiss(self) -> None:
        self.has_new_activity = False
        await self._refresh()
        self._scroll_to_latest()
