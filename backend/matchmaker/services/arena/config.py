"""Arena tier pools."""

from pydantic import BaseModel

from matchmaker.models import TierName


class TierPool(BaseModel):
    """Template for the arenas kept open in one tier."""

    name: str
    entry_fee: float
    max_agents: int
    min_agents: int = 2


TIER_POOLS: dict[TierName, TierPool] = {
    "bronze": TierPool(name="Bronze Arena", entry_fee=0.1, max_agents=8),
    "silver": TierPool(name="Silver Arena", entry_fee=0.3, max_agents=6),
    "gold": TierPool(name="Gold Arena", entry_fee=0.5, max_agents=4),
    "platinum": TierPool(name="Platinum Arena", entry_fee=1.0, max_agents=4),
    "diamond": TierPool(name="Diamond Arena", entry_fee=2.0, max_agents=2),
}

# Rock-paper-scissors arenas are always head to head
RPS_MAX_AGENTS = 2

# Prefix of agents that play fee-free from outside the platform
EXTERNAL_AGENT_PREFIX = "ext_"
