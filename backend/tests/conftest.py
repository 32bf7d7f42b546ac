"""Shared builders for matchmaker tests."""

from collections import defaultdict

import pytest

from matchmaker.config import ScoringConfig, SchedulerConfig, Settings
from matchmaker.exceptions import ArenaClosedError, ArenaError
from matchmaker.models import (
    Agent,
    AgentDescriptor,
    AgentStats,
    Arena,
    Buffs,
    JoinResult,
    Lobby,
    LobbyEntry,
    StrategyCode,
    StrategyParams,
)
from matchmaker.storage import AgentRoster


class FakeArenas:
    """Arena gateway with preset lobbies that records joins."""

    def __init__(self, arenas=(), lobbies=None):
        self.arenas = {a.arena_id: a for a in arenas}
        self.lobbies = {a.arena_id: [] for a in arenas}
        for arena_id, entries in (lobbies or {}).items():
            self.lobbies[arena_id] = list(entries)
        self.joins: list[tuple[str, AgentDescriptor]] = []
        self.join_error: Exception | None = None
        self.listeners = defaultdict(list)

    def list_arenas(self, status=None):
        return [a for a in self.arenas.values() if status is None or a.status == status]

    def get_lobby(self, arena_id):
        entries = self.lobbies.get(arena_id)
        if entries is None:
            return None
        return Lobby(arena_id=arena_id, agents=entries, count=len(entries))

    def join_arena(self, arena_id, agent):
        if self.join_error is not None:
            raise self.join_error
        self.joins.append((arena_id, agent))
        self.lobbies[arena_id].append(LobbyEntry(id=agent.id, name=agent.name, owner=agent.owner))
        return JoinResult(
            arena_id=arena_id,
            lobby_size=len(self.lobbies[arena_id]),
            status=self.arenas[arena_id].status,
        )

    def leave_arena(self, arena_id, agent_id):
        if self.arenas[arena_id].status not in ("open", "lobby"):
            raise ArenaClosedError("Cannot leave once the match has started", arena_id)
        entries = self.lobbies[arena_id]
        if not any(e.id == agent_id for e in entries):
            raise ArenaError(f"Agent {agent_id} not in arena {arena_id}", arena_id)
        self.lobbies[arena_id] = [e for e in entries if e.id != agent_id]
        return len(self.lobbies[arena_id])

    def add_listener(self, event, callback):
        self.listeners[event].append(callback)

    def remove_listener(self, event, callback):
        if callback in self.listeners[event]:
            self.listeners[event].remove(callback)

    def emit(self, event, payload):
        for callback in list(self.listeners[event]):
            callback(payload)


@pytest.fixture
def make_agent():
    def _make(
        agent_id: str = "agent_1",
        risk: float | None = 50,
        aggressiveness: float | None = 50,
        earnings: float | None = None,
        status: str = "searching",
        preference: str = "both",
        strategy: bool = True,
        matches_left: int = 0,
        **fields,
    ) -> Agent:
        return Agent(
            id=agent_id,
            name=fields.pop("name", agent_id.replace("_", " ").title()),
            status=status,
            strategy_code=StrategyCode(decide="function decide(s) { return {}; }") if strategy else None,
            strategy_params=StrategyParams(
                risk_tolerance=risk,
                aggressiveness=aggressiveness,
                preferred_game_types=preference,
            ),
            stats=AgentStats(earnings=earnings),
            buffs=Buffs(attack=5, matches_left=matches_left),
            **fields,
        )

    return _make


@pytest.fixture
def make_arena():
    def _make(
        arena_id: str = "arena_1",
        entry_fee: float = 0.1,
        prize_pool: float = 0.0,
        max_agents: int | None = 8,
        **fields,
    ) -> Arena:
        return Arena(
            arena_id=arena_id,
            name=fields.pop("name", f"Arena {arena_id}"),
            entry_fee=entry_fee,
            prize_pool=prize_pool,
            max_agents=max_agents,
            **fields,
        )

    return _make


@pytest.fixture
def fake_arenas():
    return FakeArenas


@pytest.fixture
def roster():
    return AgentRoster()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        scheduler=SchedulerConfig(
            scan_interval_seconds=60,
            match_cooldown_seconds=30,
            match_timeout_seconds=300,
        ),
        scoring=ScoringConfig(),
    )
