"""Ticket API adapter and agent identity."""

from .api import QUEUE_PATHS, TicketAPI, TicketAPIClient
from .auth import AgentProfile

__all__ = ["AgentProfile", "QUEUE_PATHS", "TicketAPI", "TicketAPIClient"]
