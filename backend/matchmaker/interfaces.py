"""Narrow contracts the scheduler depends on.

The arena manager and the agent store are owned elsewhere; the scheduler only
needs the handful of operations below.
"""

from typing import Any, Awaitable, Callable, Iterable, Protocol

from matchmaker.models import Agent, AgentDescriptor, Arena, ArenaStatus, JoinResult, Lobby

MATCH_COMPLETED = "match_completed"
MATCH_ERROR = "match_error"

Listener = Callable[[Any], None]
PostMatchHook = Callable[[Agent], Awaitable[Any]]


class ArenaGateway(Protocol):
    """Query, join and lifecycle events of the arena manager."""

    def list_arenas(self, status: ArenaStatus | None = None) -> list[Arena]: ...

    def get_lobby(self, arena_id: str) -> Lobby | None: ...

    def join_arena(self, arena_id: str, agent: AgentDescriptor) -> JoinResult:
        """Seat the agent. Raises ``ArenaError`` subclasses on failure."""
        ...

    def leave_arena(self, arena_id: str, agent_id: str) -> int:
        """Unseat the agent before launch. Raises ``ArenaError`` once started."""
        ...

    def add_listener(self, event: str, callback: Listener) -> None: ...

    def remove_listener(self, event: str, callback: Listener) -> None: ...


class AgentStore(Protocol):
    """Get and list agents by id."""

    def get(self, agent_id: str) -> Agent | None: ...

    def all(self) -> Iterable[Agent]: ...
