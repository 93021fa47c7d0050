"""Polling, filtering, edit protection and URL mirroring for the ticket views."""

from .activity import NewActivityDetector
from .edit_guard import ACTIVE_VIEW, CLOSED_VIEW, EditGuard, detail_view
from .filters import FilterSpec, FilterState
from .scheduler import PollTask, RefreshScheduler
from .url_state import MemoryLocation, URLStateSync

__all__ = [
    "ACTIVE_VIEW",
    "CLOSED_VIEW",
    "EditGuard",
    "FilterSpec",
    "FilterState",
    "MemoryLocation",
    "NewActivityDetector",
    "PollTask",
    "RefreshScheduler",
    "URLStateSync",
    "detail_view",
]
