from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AgentProfile:
    """The signed-in agent, as supplied by the authentication provider."""

    id: str
    name: str
    token: str | None = None
