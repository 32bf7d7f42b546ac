"""Paper-mode arena manager.

Keeps arenas and lobbies in memory and resolves matches without a game
engine: when a lobby fills (or its countdown runs out) the match launches and,
after ``match_duration_seconds``, a random lobby member is declared winner.
Hosts and tests can also resolve matches directly with ``complete_match`` and
``fail_match``.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from matchmaker.config import ArenaConfig
from matchmaker.exceptions import (
    AlreadyInArenaError,
    ArenaClosedError,
    ArenaError,
    ArenaFullError,
    ArenaNotFoundError,
)
from matchmaker.interfaces import MATCH_COMPLETED, MATCH_ERROR
from matchmaker.models import (
    AgentDescriptor,
    Arena,
    ArenaStatus,
    GameType,
    JoinResult,
    Lobby,
    LobbyEntry,
    MatchCompleted,
    MatchErrored,
    MatchResult,
    TierName,
)

from .config import EXTERNAL_AGENT_PREFIX, RPS_MAX_AGENTS, TIER_POOLS

logger = logging.getLogger(__name__)

ARENA_CREATED = "arena_created"
AGENT_JOINED = "agent_joined"
AGENT_LEFT = "agent_left"
MATCH_LAUNCHING = "match_launching"

_EVENTS = (ARENA_CREATED, AGENT_JOINED, AGENT_LEFT, MATCH_LAUNCHING, MATCH_COMPLETED, MATCH_ERROR)
_JOINABLE: frozenset[ArenaStatus] = frozenset({"open", "lobby"})


class PaperArenaManager:
    """In-memory arena store with lobby queueing and simulated matches."""

    def __init__(
        self,
        config: ArenaConfig | None = None,
        scheduler: AsyncIOScheduler | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or ArenaConfig()
        self.scheduler = scheduler
        self._rng = rng or random.Random()

        self.arenas: dict[str, Arena] = {}
        self._lobbies: dict[str, list[AgentDescriptor]] = {}
        self._results: dict[str, MatchResult] = {}
        self._listeners: dict[str, list[Callable[[Any], None]]] = {e: [] for e in _EVENTS}

        if self.config.seed_tier_pools:
            self.init_tier_pools()

    # ─── Events ──────────────────────────────────────────────────────────

    def add_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def _emit(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"[ArenaManager] {event} listener failed: {e}")

    # ─── Arena CRUD ──────────────────────────────────────────────────────

    def init_tier_pools(self) -> None:
        """Make sure every tier has an open battle arena and an open RPS arena."""
        for tier in TIER_POOLS:
            for game_type in ("battle", "rps"):
                if not self._has_open(tier, game_type):
                    self.create_tier_arena(tier, game_type)
        logger.info(f"[ArenaManager] Tier pools initialized: {len(self.arenas)} arenas")

    def _has_open(self, tier: TierName, game_type: GameType) -> bool:
        return any(
            a.tier == tier and a.game_type == game_type and a.status == "open"
            for a in self.arenas.values()
        )

    def create_tier_arena(self, tier: TierName, game_type: GameType = "battle") -> Arena:
        pool = TIER_POOLS[tier]
        if game_type == "rps":
            return self.create_arena(
                tier=tier,
                name=f"{pool.name} RPS",
                entry_fee=pool.entry_fee,
                max_agents=RPS_MAX_AGENTS,
                min_agents=pool.min_agents,
                game_type="rps",
            )
        return self.create_arena(
            tier=tier,
            name=pool.name,
            entry_fee=pool.entry_fee,
            max_agents=pool.max_agents,
            min_agents=pool.min_agents,
            game_type="battle",
        )

    def create_arena(self, arena_id: str | None = None, **fields: Any) -> Arena:
        arena = Arena(arena_id=arena_id or f"arena_{uuid4().hex[:8]}", **fields)
        self.arenas[arena.arena_id] = arena
        self._lobbies[arena.arena_id] = []
        self._emit(ARENA_CREATED, arena)
        return arena

    def get_arena(self, arena_id: str) -> Arena | None:
        return self.arenas.get(arena_id)

    def _require_arena(self, arena_id: str) -> Arena:
        arena = self.arenas.get(arena_id)
        if arena is None:
            raise ArenaNotFoundError(f"Arena {arena_id} not found", arena_id)
        return arena

    def list_arenas(
        self,
        status: ArenaStatus | None = None,
        game_type: GameType | None = None,
    ) -> list[Arena]:
        arenas = list(self.arenas.values())
        if status:
            arenas = [a for a in arenas if a.status == status]
        if game_type:
            arenas = [a for a in arenas if a.game_type == game_type]
        return arenas

    # ─── Lobby ───────────────────────────────────────────────────────────

    def join_arena(self, arena_id: str, agent: AgentDescriptor) -> JoinResult:
        arena = self._require_arena(arena_id)
        if arena.status not in _JOINABLE:
            raise ArenaClosedError(
                f"Arena {arena_id} is not accepting agents (status: {arena.status})", arena_id
            )

        lobby = self._lobbies[arena_id]
        if any(entry.id == agent.id for entry in lobby):
            raise AlreadyInArenaError(f"Agent {agent.id} already in arena {arena_id}", arena_id)
        max_agents = arena.max_agents or len(lobby) + 1
        if len(lobby) >= max_agents:
            raise ArenaFullError(f"Arena {arena_id} is full", arena_id)

        lobby.append(agent)
        is_external = agent.is_external or agent.id.startswith(EXTERNAL_AGENT_PREFIX)
        if not is_external:
            arena.prize_pool += arena.entry_fee

        logger.info(
            f"[ARENA] {agent.name} joined {arena.name} ({arena_id}) | "
            f"lobby: {len(lobby)}/{arena.max_agents} | gameType: {arena.game_type}"
        )
        self._emit(
            AGENT_JOINED,
            {"arena_id": arena_id, "agent_id": agent.id, "lobby_size": len(lobby), "is_external": is_external},
        )

        if arena.max_agents and len(lobby) >= arena.max_agents:
            self._cancel_countdown(arena_id)
            self.launch_match(arena_id)
        elif len(lobby) >= arena.min_agents and arena.status == "open":
            arena.status = "lobby"
            self._start_countdown(arena_id)

        return JoinResult(arena_id=arena_id, lobby_size=len(lobby), status=arena.status)

    def leave_arena(self, arena_id: str, agent_id: str) -> int:
        """Remove an agent before launch. Returns the new lobby size."""
        arena = self._require_arena(arena_id)
        if arena.status not in _JOINABLE:
            raise ArenaClosedError("Cannot leave once the match has started", arena_id)

        lobby = self._lobbies[arena_id]
        entry = next((e for e in lobby if e.id == agent_id), None)
        if entry is None:
            raise ArenaError(f"Agent {agent_id} not in arena {arena_id}", arena_id)

        lobby.remove(entry)
        if not (entry.is_external or entry.id.startswith(EXTERNAL_AGENT_PREFIX)):
            arena.prize_pool = max(0.0, arena.prize_pool - arena.entry_fee)

        if len(lobby) < arena.min_agents and arena.status == "lobby":
            arena.status = "open"
            self._cancel_countdown(arena_id)

        self._emit(AGENT_LEFT, {"arena_id": arena_id, "agent_id": agent_id, "lobby_size": len(lobby)})
        return len(lobby)

    def get_lobby(self, arena_id: str) -> Lobby | None:
        lobby = self._lobbies.get(arena_id)
        if lobby is None:
            return None
        return Lobby(
            arena_id=arena_id,
            agents=[LobbyEntry(id=a.id, name=a.name, owner=a.owner) for a in lobby],
            count=len(lobby),
        )

    def is_agent_in_arena(self, agent_id: str) -> bool:
        return any(entry.id == agent_id for lobby in self._lobbies.values() for entry in lobby)

    # ─── Matches ─────────────────────────────────────────────────────────

    def launch_match(self, arena_id: str) -> str:
        arena = self._require_arena(arena_id)
        if arena.status not in _JOINABLE:
            raise ArenaClosedError(f"Arena {arena_id} cannot launch (status: {arena.status})", arena_id)

        arena.status = "in_progress"
        arena.match_id = f"match_{uuid4().hex[:8]}"
        logger.info(
            f"[MATCH] Starting match in {arena_id} with {len(self._lobbies[arena_id])} agents "
            f"(gameType: {arena.game_type})"
        )
        self._emit(MATCH_LAUNCHING, {"arena_id": arena_id, "agent_count": len(self._lobbies[arena_id])})

        if self.scheduler is not None:
            self.scheduler.add_job(
                self._resolve_match,
                "date",
                run_date=self._after(self.config.match_duration_seconds),
                args=[arena_id],
                id=f"resolve:{arena_id}",
                replace_existing=True,
            )
        return arena.match_id

    async def _resolve_match(self, arena_id: str) -> None:
        arena = self.arenas.get(arena_id)
        if arena is None or arena.status != "in_progress":
            return
        try:
            lobby = self._lobbies[arena_id]
            winner = self._rng.choice(lobby) if lobby else None
            self.complete_match(arena_id, winner.id if winner else None)
        except Exception as e:
            logger.error(f"[MATCH] Match error in arena {arena_id}: {e}")
            self.fail_match(arena_id, str(e))

    def complete_match(self, arena_id: str, winner_id: str | None = None) -> MatchResult:
        """Declare the match over and notify listeners."""
        arena = self._require_arena(arena_id)
        if arena.status in ("completed", "error"):
            raise ArenaClosedError(f"Arena {arena_id} already finished ({arena.status})", arena_id)

        lobby = self.get_lobby(arena_id)
        winner = None
        if winner_id is not None:
            winner = next((e for e in lobby.agents if e.id == winner_id), None)
            if winner is None:
                raise ArenaError(f"Winner {winner_id} is not in arena {arena_id}", arena_id)

        self._cancel_countdown(arena_id)
        arena.status = "completed"
        arena.match_id = arena.match_id or f"match_{uuid4().hex[:8]}"
        result = MatchResult(match_id=arena.match_id, winner=winner, prize_pool=arena.prize_pool)
        self._results[arena.match_id] = result

        self._emit(MATCH_COMPLETED, MatchCompleted(arena_id=arena_id, match_id=arena.match_id, result=result))
        self._replenish(arena)
        return result

    def fail_match(self, arena_id: str, reason: str) -> None:
        arena = self._require_arena(arena_id)
        self._cancel_countdown(arena_id)
        self._cancel_job(f"resolve:{arena_id}")
        arena.status = "error"
        logger.error(f"[MATCH] Arena {arena_id} failed: {reason}")
        self._emit(MATCH_ERROR, MatchErrored(arena_id=arena_id, reason=reason))
        self._replenish(arena)

    def get_result(self, match_id: str) -> MatchResult | None:
        return self._results.get(match_id)

    def _replenish(self, arena: Arena) -> None:
        if self.config.replenish and arena.tier and not self._has_open(arena.tier, arena.game_type):
            self.create_tier_arena(arena.tier, arena.game_type)

    # ─── Countdown ───────────────────────────────────────────────────────

    def _start_countdown(self, arena_id: str) -> None:
        if self.scheduler is None:
            return
        self.scheduler.add_job(
            self._countdown_elapsed,
            "date",
            run_date=self._after(self.config.countdown_seconds),
            args=[arena_id],
            id=f"countdown:{arena_id}",
            replace_existing=True,
        )

    async def _countdown_elapsed(self, arena_id: str) -> None:
        arena = self.arenas.get(arena_id)
        if arena is not None and arena.status == "lobby":
            self.launch_match(arena_id)

    def _cancel_countdown(self, arena_id: str) -> None:
        self._cancel_job(f"countdown:{arena_id}")

    def _cancel_job(self, job_id: str) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    @staticmethod
    def _after(seconds: float) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=seconds)
