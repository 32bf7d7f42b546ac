"""Arena scoring: which open arena, if any, an agent should join.

Score = risk score * prize attractiveness * lobby factor * aggression bonus.
Any failed gate (tier, budget, already seated) returns ``REJECTED``, which can
never win selection.
"""

import logging
import math
from typing import Iterable

from matchmaker.config import ScoringConfig
from matchmaker.interfaces import ArenaGateway
from matchmaker.models import QUICK_GAME_TYPE, Agent, Arena, GamePreference, Lobby
from matchmaker.tiers import max_allowed_fee

logger = logging.getLogger(__name__)

REJECTED = -1.0


def filter_by_preference(arenas: Iterable[Arena], preference: GamePreference) -> list[Arena]:
    """Apply the agent's game-type preference; ``both`` keeps everything."""
    if preference == "battle":
        return [a for a in arenas if a.game_type != QUICK_GAME_TYPE]
    if preference == "rps":
        return [a for a in arenas if a.game_type == QUICK_GAME_TYPE]
    return list(arenas)


def risk_tolerance_of(agent: Agent, config: ScoringConfig) -> float:
    """Risk tolerance on the 0-100 scale."""
    value = agent.strategy_params.risk_tolerance
    return config.default_risk_tolerance if value is None else value


def aggressiveness_of(agent: Agent, config: ScoringConfig) -> float:
    value = agent.strategy_params.aggressiveness
    return config.default_aggressiveness if value is None else value


def passes_tier_gate(risk_tolerance: float, entry_fee: float) -> bool:
    return entry_fee <= max_allowed_fee(risk_tolerance)


def passes_budget_gate(agent: Agent, entry_fee: float, budget_fraction: float = 0.5) -> bool:
    """Entry fee must fit within a fraction of earnings.

    Agents with nothing earned yet are exempt so new agents can play.
    """
    earnings = agent.stats.total_earnings
    if earnings > 0 and entry_fee > earnings * budget_fraction:
        return False
    return True


def risk_score(entry_fee: float, risk: float) -> float:
    """Risk appetite for the fee, with ``risk`` normalized to 0-1."""
    if entry_fee > 1:
        return risk
    if entry_fee > 0.2:
        return 0.5 + risk * 0.5
    return 1.0


def score_arena(
    agent: Agent,
    arena: Arena,
    lobby: Lobby | None,
    config: ScoringConfig | None = None,
) -> float:
    """Score one arena for one agent. Pure; higher is better."""
    config = config or ScoringConfig()
    entry_fee = arena.entry_fee
    risk_pct = risk_tolerance_of(agent, config)

    if not passes_tier_gate(risk_pct, entry_fee):
        return REJECTED
    if not passes_budget_gate(agent, entry_fee, config.budget_fraction):
        return REJECTED
    if lobby is not None and lobby.has_agent(agent.id):
        return REJECTED

    risk = risk_pct / 100
    prize_attractiveness = math.log(arena.prize_pool + entry_fee + 1)

    lobby_count = lobby.count if lobby is not None else 0
    max_agents = arena.max_agents or config.default_max_agents
    lobby_factor = 1 + lobby_count / max_agents

    aggression_bonus = 0.5 + (aggressiveness_of(agent, config) / 100) * 0.5

    return risk_score(entry_fee, risk) * prize_attractiveness * lobby_factor * aggression_bonus


class ArenaScorer:
    """Picks the best arena for an agent, reading lobbies from the arena manager."""

    def __init__(self, arenas: ArenaGateway, config: ScoringConfig | None = None):
        self.arenas = arenas
        self.config = config or ScoringConfig()

    def score(self, agent: Agent, arena: Arena) -> float:
        return score_arena(agent, arena, self.arenas.get_lobby(arena.arena_id), self.config)

    def evaluate_best_arena(self, agent: Agent, candidates: Iterable[Arena]) -> Arena | None:
        """Highest positive score wins; on a tie the first candidate is kept."""
        best_arena: Arena | None = None
        best_score = -math.inf

        preference = agent.strategy_params.preferred_game_types
        for arena in filter_by_preference(candidates, preference):
            score = self.score(agent, arena)
            logger.debug(f"{agent.name} scored {arena.arena_id} at {score:.4f}")
            if score > 0 and score > best_score:
                best_score = score
                best_arena = arena

        return best_arena
