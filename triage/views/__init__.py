"""View lifecycle managers for the dashboard and the ticket detail page."""

from .dashboard import DashboardView
from .detail import MemoryNavigator, Navigator, TicketDetailView

__all__ = ["DashboardView", "MemoryNavigator", "Navigator", "TicketDetailView"]
