"""Background polling for the view the agent is looking at."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Mapping

from triage.metrics import POLLS_SKIPPED_TOTAL, POLLS_TOTAL, MetricsRegistry, metrics_registry
from triage.tickets.errors import TriageError

from .edit_guard import EditGuard

logger = logging.getLogger(__name__)

PollJob = Callable[[], Awaitable[object]]
PollErrorHandler = Callable[[str, TriageError], None]


class PollTask:
    """Repeating timer that runs a view's poll jobs every ``interval`` seconds.

    ``stop()`` cancels the timer only; jobs already dispatched run to
    completion and the store discards their results if they turn out stale.
    """

    def __init__(
        self,
        view: str,
        interval: float,
        jobs: Mapping[str, PollJob],
        *,
        scheduler: "RefreshScheduler",
        on_error: PollErrorHandler | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be greater than zero")
        self.view = view
        self.interval = interval
        self._jobs = dict(jobs)
        self._scheduler = scheduler
        self._on_error = on_error
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"poll:{self.view}")
        logger.debug("Polling %s every %.1fs", self.view, self.interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug("Stopped polling %s", self.view)

    def tick(self) -> list[str]:
        """Dispatch every job that is not still running; returns the dispatched names."""

        return self._scheduler._dispatch(self.view, self._jobs, self._on_error)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()


class RefreshScheduler:
    """Keeps exactly one :class:`PollTask` live at a time.

    A tick is dropped entirely while the view is being edited, and a job
    whose previous run is still outstanding is skipped for that tick. Dropped
    ticks are never replayed; the next scheduled tick resumes coverage.
    """

    def __init__(self, edit_guard: EditGuard, *, metrics: MetricsRegistry | None = None) -> None:
        self._guard = edit_guard
        self._metrics = metrics or metrics_registry
        self._current: PollTask | None = None
        self._outstanding: set[str] = set()
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def current(self) -> PollTask | None:
        return self._current

    @property
    def active_view(self) -> str | None:
        return self._current.view if self._current else None

    def is_outstanding(self, job: str) -> bool:
        return job in self._outstanding

    def start(
        self,
        view: str,
        interval: float,
        jobs: Mapping[str, PollJob],
        *,
        on_error: PollErrorHandler | None = None,
    ) -> PollTask:
        self.stop()
        task = PollTask(view, interval, jobs, scheduler=self, on_error=on_error)
        task.start()
        self._current = task
        return task

    def stop(self, view: str | None = None) -> None:
        if self._current is None:
            return
        if view is not None and self._current.view != view:
            return
        self._current.stop()
        self._current = None

    async def wait_idle(self) -> None:
        """Wait for every dispatched poll job to finish."""

        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def _dispatch(
        self,
        view: str,
        jobs: Mapping[str, PollJob],
        on_error: PollErrorHandler | None,
    ) -> list[str]:
        if self._guard.is_active(view):
            logger.debug("Poll tick for %s dropped: edit in progress", view)
            self._skipped(view, "editing")
            return []

        dispatched: list[str] = []
        for name, job in jobs.items():
            if name in self._outstanding:
                logger.debug("Poll %s skipped: previous request still outstanding", name)
                self._skipped(view, "outstanding")
                continue
            self._outstanding.add(name)
            task = asyncio.create_task(self._run_job(view, name, job, on_error), name=f"poll-job:{name}")
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            dispatched.append(name)
        if dispatched:
            self._metrics.counter(POLLS_TOTAL, label_names=("view",)).inc(len(dispatched), labels={"view": view})
        return dispatched

    async def _run_job(
        self, view: str, name: str, job: PollJob, on_error: PollErrorHandler | None
    ) -> None:
        try:
            await job()
        except TriageError as exc:
            logger.warning("Background poll %s for %s failed: %s", name, view, exc)
            if on_error is not None:
                on_error(name, exc)
        except Exception:
            logger.exception("Unexpected error in background poll %s", name)
        finally:
            self._outstanding.discard(name)

    def _skipped(self, view: str, reason: str) -> None:
        self._metrics.counter(POLLS_SKIPPED_TOTAL, label_names=("view", "reason")).inc(
            labels={"view": view, "reason": reason}
        )
