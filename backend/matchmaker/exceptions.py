"""Matchmaker exceptions."""


class MatchmakerError(Exception):
    """Base exception for the matchmaker."""

    pass


class MatchmakerConfigError(MatchmakerError):
    """Invalid configuration."""

    pass


class AgentNotFoundError(MatchmakerError):
    """Agent is not in the store."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class ArenaError(MatchmakerError):
    """Base exception for arena manager failures."""

    def __init__(self, message: str, arena_id: str | None = None):
        super().__init__(message)
        self.arena_id = arena_id


class ArenaNotFoundError(ArenaError):
    """Arena does not exist."""

    pass


class ArenaClosedError(ArenaError):
    """Arena is no longer accepting agents."""

    pass


class ArenaFullError(ArenaError):
    """Arena lobby has reached max agents."""

    pass


class AlreadyInArenaError(ArenaError):
    """Agent is already queued in the arena."""

    pass
