"""Pydantic models shared by the scheduler, the arena manager and the API."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

AgentStatus = Literal["idle", "searching", "idle_searching", "fighting", "won", "lost"]
ArenaStatus = Literal["open", "lobby", "in_progress", "completed", "error"]
TierName = Literal["bronze", "silver", "gold", "platinum", "diamond"]
GameType = Literal["battle", "rps"]
GamePreference = Literal["battle", "rps", "both"]

SEARCHING_STATUSES: frozenset[str] = frozenset({"searching", "idle_searching"})
SETTLED_STATUSES: frozenset[str] = frozenset({"won", "lost"})

# Arenas of this type are the short best-of-3 games
QUICK_GAME_TYPE: GameType = "rps"


# ============================================================================
# Agents
# ============================================================================


class StrategyCode(BaseModel):
    """Decision strategy attached to an agent."""

    decide: str = Field(default="", description="Source of the decide(gameState) function")


class StrategyParams(BaseModel):
    """Strategy tuning knobs, 0-100 scales."""

    model_config = ConfigDict(extra="allow")

    risk_tolerance: float | None = Field(default=None, ge=0, le=100)
    aggressiveness: float | None = Field(default=None, ge=0, le=100)
    preferred_game_types: GamePreference = "both"
    profit_target: float = 0.0
    withdraw_threshold: float = 0.0


class AgentStats(BaseModel):
    """Match record and money totals."""

    earnings: float | None = Field(default=None, ge=0)
    balance: float | None = None
    wins: int = 0
    losses: int = 0

    @property
    def total_earnings(self) -> float:
        """Earnings, falling back to balance, then zero."""
        if self.earnings is not None:
            return self.earnings
        if self.balance is not None:
            return self.balance
        return 0.0


class Buffs(BaseModel):
    """Temporary stat modifiers, limited by time and by matches played."""

    health: float = 0
    armor: float = 0
    attack: float = 0
    speed: float = 0
    expires_at: float = 0
    matches_left: int = 0


class Financial(BaseModel):
    """Deposit and withdrawal ledger for the agent wallet."""

    initial_deposit: float = 0.0
    total_deposited: float = 0.0
    total_withdrawn: float = 0.0


class AgentDescriptor(BaseModel):
    """What the arena manager receives when an agent joins a lobby."""

    id: str
    name: str
    owner: str
    strategy_code: StrategyCode | None = None
    strategy_params: StrategyParams = Field(default_factory=StrategyParams)
    strategy_description: str = ""
    traits: list[str] = Field(default_factory=list)
    buffs: Buffs = Field(default_factory=Buffs)
    is_external: bool = False


class Agent(BaseModel):
    """Autonomous gladiator. Owned by the agent store, mutated in place."""

    id: str
    name: str
    owner_address: str | None = None
    wallet_address: str | None = None
    status: AgentStatus = "idle"
    strategy_code: StrategyCode | None = None
    strategy_params: StrategyParams = Field(default_factory=StrategyParams)
    strategy_description: str = ""
    traits: list[str] = Field(default_factory=list)
    stats: AgentStats = Field(default_factory=AgentStats)
    buffs: Buffs = Field(default_factory=Buffs)
    financial: Financial = Field(default_factory=Financial)
    is_external: bool = False

    # Transient match bookkeeping
    current_arena_id: str | None = None
    current_arena_name: str | None = None
    last_result: str | None = None

    @property
    def has_strategy(self) -> bool:
        return bool(self.strategy_code and self.strategy_code.decide)

    @property
    def is_searching(self) -> bool:
        return self.status in SEARCHING_STATUSES

    def descriptor(self) -> AgentDescriptor:
        """Build the lobby entry payload for this agent."""
        return AgentDescriptor(
            id=self.id,
            name=self.name,
            owner=self.owner_address or "autonomous",
            strategy_code=self.strategy_code,
            strategy_params=self.strategy_params,
            strategy_description=self.strategy_description,
            traits=list(self.traits),
            buffs=self.buffs.model_copy(),
            is_external=self.is_external,
        )


# ============================================================================
# Arenas
# ============================================================================


class Arena(BaseModel):
    """Joinable match lobby."""

    arena_id: str
    name: str = "Unnamed Arena"
    tier: TierName | None = None
    game_type: GameType = "battle"
    entry_fee: float = Field(default=0.0, ge=0)
    prize_pool: float = 0.0
    max_agents: int | None = None
    min_agents: int = 2
    status: ArenaStatus = "open"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    match_id: str | None = None


class LobbyEntry(BaseModel):
    """Agent seated in a lobby."""

    id: str
    name: str
    owner: str | None = None


class Lobby(BaseModel):
    """Agents currently queued for an arena."""

    arena_id: str
    agents: list[LobbyEntry] = Field(default_factory=list)
    count: int = 0

    def has_agent(self, agent_id: str) -> bool:
        return any(entry.id == agent_id for entry in self.agents)


class JoinResult(BaseModel):
    """Outcome of a successful lobby join."""

    arena_id: str
    lobby_size: int
    status: ArenaStatus


# ============================================================================
# Events
# ============================================================================


class MatchResult(BaseModel):
    """Final result of a match."""

    match_id: str | None = None
    winner: LobbyEntry | None = None
    prize_pool: float = 0.0
    status: str = "completed"


class MatchCompleted(BaseModel):
    """Emitted by the arena manager when a match resolves."""

    arena_id: str
    match_id: str | None = None
    result: MatchResult = Field(default_factory=MatchResult)


class MatchErrored(BaseModel):
    """Emitted by the arena manager when a match crashes."""

    arena_id: str
    reason: str = ""


class AgentAutoJoined(BaseModel):
    """Emitted when the scheduler seats an agent in a lobby."""

    agent_id: str
    agent_name: str
    arena_id: str
    arena_name: str | None = None
    lobby_size: int
    status: AgentStatus = "fighting"


class AgentMatchResult(BaseModel):
    """Emitted when a scheduled agent's match completes."""

    agent_id: str
    status: AgentStatus
    result: str | None = None
