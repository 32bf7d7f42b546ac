"""Storage layer for Matchmaker - agent roster persistence.

Scheduler state (cooldowns, in-match flags) is never persisted; only the
agent roster is read from and written to data/agents.yaml.
"""

from .roster import (
    AgentRoster,
    RosterFile,
    get_roster_path,
    load_roster,
    save_roster,
)

__all__ = [
    "AgentRoster",
    "RosterFile",
    "get_roster_path",
    "load_roster",
    "save_roster",
]
