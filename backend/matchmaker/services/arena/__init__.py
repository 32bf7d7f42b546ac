"""Paper-mode arena manager service."""

from .config import TIER_POOLS, TierPool
from .manager import (
    AGENT_JOINED,
    AGENT_LEFT,
    ARENA_CREATED,
    MATCH_LAUNCHING,
    PaperArenaManager,
)

__all__ = [
    "PaperArenaManager",
    "TIER_POOLS",
    "TierPool",
    "ARENA_CREATED",
    "AGENT_JOINED",
    "AGENT_LEFT",
    "MATCH_LAUNCHING",
]
