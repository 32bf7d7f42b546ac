"""Match coordinator: seats agents in arenas and drives them back to searching.

Each successful join opens a ticket for (agent, arena). The first of three
terminal signals settles the ticket:

- ``match_completed`` from the arena manager: win/loss accounting, buff
  decrement, post-match hook, then resume searching after the cooldown.
- ``match_error`` from the arena manager: straight back to searching.
- the match timeout job: force release if the agent is still in that arena.

A settled ticket is dropped and its timeout job removed, so a late signal for
the same match finds nothing to act on. Deactivating an agent abandons its
open tickets the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from matchmaker.config import SchedulerConfig
from matchmaker.eligibility import EligibilityTracker, ReleaseOutcome
from matchmaker.exceptions import AlreadyInArenaError, ArenaError
from matchmaker.interfaces import MATCH_COMPLETED, MATCH_ERROR, ArenaGateway, PostMatchHook
from matchmaker.models import (
    SETTLED_STATUSES,
    Agent,
    AgentAutoJoined,
    AgentMatchResult,
    AgentStatus,
    Arena,
    Buffs,
    MatchCompleted,
    MatchErrored,
)

logger = logging.getLogger(__name__)

AGENT_AUTO_JOINED = "agent_auto_joined"
AGENT_MATCH_RESULT = "agent_match_result"


@dataclass
class MatchTicket:
    """One agent's stake in one arena, open until the first terminal signal."""

    agent: Agent
    arena_id: str
    arena_name: str | None
    settled: bool = False

    @property
    def timeout_job_id(self) -> str:
        return f"match-timeout:{self.agent.id}:{self.arena_id}"


class MatchCoordinator:
    """Joins agents to arenas and owns their lifecycle until release."""

    def __init__(
        self,
        arenas: ArenaGateway,
        tracker: EligibilityTracker,
        scheduler: AsyncIOScheduler,
        config: SchedulerConfig | None = None,
        post_match_hook: PostMatchHook | None = None,
    ):
        self.arenas = arenas
        self.tracker = tracker
        self.scheduler = scheduler
        self.config = config or SchedulerConfig()
        self.post_match_hook = post_match_hook

        self._tickets: dict[str, dict[str, MatchTicket]] = {}
        self._listeners: dict[str, list[Callable[[Any], None]]] = {
            AGENT_AUTO_JOINED: [],
            AGENT_MATCH_RESULT: [],
        }
        self._attached = False

    # ─── Arena manager subscription ──────────────────────────────────────

    def attach(self) -> None:
        """Subscribe to the arena manager's lifecycle events (once)."""
        if self._attached:
            return
        self.arenas.add_listener(MATCH_COMPLETED, self.on_match_completed)
        self.arenas.add_listener(MATCH_ERROR, self.on_match_error)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self.arenas.remove_listener(MATCH_COMPLETED, self.on_match_completed)
        self.arenas.remove_listener(MATCH_ERROR, self.on_match_error)
        self._attached = False

    # ─── Observers ───────────────────────────────────────────────────────

    def add_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        """Register an observer for coordinator events.

        Args:
            event: ``AGENT_AUTO_JOINED`` or ``AGENT_MATCH_RESULT``
            callback: Called with the event payload model. Errors are logged,
                never propagated.

        Raises:
            ValueError: If the event name is unknown
        """
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
                logger.error(f"Listener for {event} failed: {e}")

    # ─── Join ────────────────────────────────────────────────────────────

    def join(self, agent: Agent, arena: Arena) -> bool:
        """Seat the agent in the arena and open a ticket for the match.

        Args:
            agent: Agent to seat. Its status and arena fields are updated in place.
            arena: Target arena, as chosen by the scorer

        Returns:
            True once the lobby accepted the agent. False if the agent was
            already in a match or the arena manager refused the join; in that
            case the agent is left as it was.
        """
        if not self.tracker.mark_entered(agent.id):
            logger.debug(f"{agent.name} already in a match, join skipped")
            return False

        previous_status = agent.status
        agent.status = "fighting"
        agent.current_arena_id = arena.arena_id
        agent.current_arena_name = arena.name or arena.arena_id

        # Open the ticket first so a match that resolves during the join is not missed
        ticket = MatchTicket(agent=agent, arena_id=arena.arena_id, arena_name=arena.name)
        self._tickets.setdefault(arena.arena_id, {})[agent.id] = ticket

        try:
            result = self.arenas.join_arena(arena.arena_id, agent.descriptor())
        except AlreadyInArenaError:
            self._abort_join(ticket, previous_status)
            logger.debug(f"{agent.name} already in arena {arena.arena_id}")
            return False
        except Exception as e:
            self._abort_join(ticket, previous_status)
            logger.error(f"{agent.name} join failed for {arena.arena_id}: {e}")
            return False

        logger.info(
            f"[JOIN] {agent.name} auto-joined {arena.name or arena.arena_id} "
            f"(lobby: {result.lobby_size})"
        )

        self._emit(
            AGENT_AUTO_JOINED,
            AgentAutoJoined(
                agent_id=agent.id,
                agent_name=agent.name,
                arena_id=arena.arena_id,
                arena_name=arena.name,
                lobby_size=result.lobby_size,
            ),
        )

        if not ticket.settled:
            self.scheduler.add_job(
                self._on_timeout,
                "date",
                run_date=self._after(self.config.match_timeout_seconds),
                args=[agent.id, arena.arena_id],
                id=ticket.timeout_job_id,
                replace_existing=True,
            )
        return True

    def _abort_join(self, ticket: MatchTicket, previous_status: AgentStatus) -> None:
        self._drop_ticket(ticket)
        ticket.settled = True
        self.tracker.cancel_entry(ticket.agent.id)
        ticket.agent.status = previous_status
        self._clear_arena(ticket.agent)

    def abandon(self, agent_id: str) -> int:
        """Settle every open ticket for an agent without match accounting.

        Used when the host takes the agent out of play. The timeout jobs are
        removed and the agent is taken out of any lobby it is still waiting
        in, so later signals for those arenas no longer reach it.

        Args:
            agent_id: Agent whose tickets to settle

        Returns:
            Number of tickets abandoned
        """
        tickets = [
            ticket
            for arena_tickets in list(self._tickets.values())
            for ticket in arena_tickets.values()
            if ticket.agent.id == agent_id
        ]
        abandoned = 0
        for ticket in tickets:
            if not self._settle(ticket):
                continue
            abandoned += 1
            self._leave_lobby(ticket)
            logger.info(f"{ticket.agent.name} abandoned match in {ticket.arena_id}")
        return abandoned

    def _leave_lobby(self, ticket: MatchTicket) -> None:
        # Only possible while the arena is still open or in its lobby countdown
        try:
            self.arenas.leave_arena(ticket.arena_id, ticket.agent.id)
        except ArenaError as e:
            logger.debug(f"{ticket.agent.name} stays in {ticket.arena_id}: {e}")

    # ─── Terminal signals ────────────────────────────────────────────────

    def on_match_completed(self, event: MatchCompleted | dict[str, Any]) -> None:
        """Settle every open ticket for the arena with the match outcome.

        Args:
            event: ``match_completed`` payload, as a model or a plain dict
        """
        if not isinstance(event, MatchCompleted):
            event = MatchCompleted.model_validate(event)

        for ticket in list(self._tickets.get(event.arena_id, {}).values()):
            if self._settle(ticket):
                self._complete(ticket, event)

    def on_match_error(self, event: MatchErrored | dict[str, Any]) -> None:
        if not isinstance(event, MatchErrored):
            event = MatchErrored.model_validate(event)

        for ticket in list(self._tickets.get(event.arena_id, {}).values()):
            if not self._settle(ticket):
                continue
            agent = ticket.agent
            self.tracker.mark_released(agent.id, ReleaseOutcome.ERRORED)
            agent.status = "searching"
            self._clear_arena(agent)
            logger.info(
                f"{agent.name} match errored -> searching "
                f"(arena: {event.arena_id}, reason: {event.reason or 'unknown'})"
            )

    async def _on_timeout(self, agent_id: str, arena_id: str) -> None:
        ticket = self._tickets.get(arena_id, {}).get(agent_id)
        if ticket is None:
            return

        agent = ticket.agent
        if not (self.tracker.is_in_match(agent_id) and agent.current_arena_id == arena_id):
            # Not ours to release; the ticket stays for the arena's own signal
            logger.debug(f"{agent.name} timeout for {arena_id} ignored, agent is elsewhere")
            return
        if not self._settle(ticket):
            return

        logger.warning(
            f"{agent.name} match timeout ({self.config.match_timeout_seconds:g}s) "
            f"-> releasing from {arena_id}"
        )
        self.tracker.mark_released(agent_id, ReleaseOutcome.TIMED_OUT)
        agent.status = "searching"
        self._clear_arena(agent)
        self._leave_lobby(ticket)

    def _complete(self, ticket: MatchTicket, event: MatchCompleted) -> None:
        agent = ticket.agent
        winner = event.result.winner
        is_winner = winner is not None and winner.id == agent.id

        agent.status = "won" if is_winner else "lost"
        agent.last_result = f"Won! +{event.result.prize_pool:g} MON" if is_winner else "Lost"
        self._clear_arena(agent)

        if agent.buffs.matches_left > 0:
            agent.buffs.matches_left -= 1
            if agent.buffs.matches_left <= 0:
                agent.buffs = Buffs()

        self.tracker.mark_released(agent.id, ReleaseOutcome.COMPLETED)
        logger.info(f"{agent.name} match completed: {agent.status} (arena: {event.arena_id})")

        self._emit(
            AGENT_MATCH_RESULT,
            AgentMatchResult(agent_id=agent.id, status=agent.status, result=agent.last_result),
        )

        if self.post_match_hook is not None:
            self.scheduler.add_job(
                self._run_post_match_hook,
                args=[agent],
                id=f"post-match:{agent.id}",
                replace_existing=True,
            )

        self.scheduler.add_job(
            self._resume_searching,
            "date",
            run_date=self._after(self.config.match_cooldown_seconds),
            args=[agent],
            id=f"resume:{agent.id}",
            replace_existing=True,
        )

    async def _run_post_match_hook(self, agent: Agent) -> None:
        try:
            await self.post_match_hook(agent)
        except Exception as e:
            logger.error(f"Post-match hook failed for {agent.name}: {e}")

    async def _resume_searching(self, agent: Agent) -> None:
        if agent.status in SETTLED_STATUSES:
            agent.status = "searching"
            logger.info(f"{agent.name} -> searching (cooldown complete)")

    # ─── Tickets ─────────────────────────────────────────────────────────

    def _settle(self, ticket: MatchTicket) -> bool:
        """Claim the ticket for the first terminal signal. False if already claimed."""
        if ticket.settled:
            return False
        ticket.settled = True
        self._drop_ticket(ticket)
        try:
            self.scheduler.remove_job(ticket.timeout_job_id)
        except JobLookupError:
            pass
        return True

    def _drop_ticket(self, ticket: MatchTicket) -> None:
        arena_tickets = self._tickets.get(ticket.arena_id)
        if arena_tickets is None:
            return
        if arena_tickets.get(ticket.agent.id) is ticket:
            del arena_tickets[ticket.agent.id]
        if not arena_tickets:
            del self._tickets[ticket.arena_id]

    def active_matches(self) -> dict[str, list[str]]:
        """Arena id -> agent ids still waiting on a terminal signal."""
        return {arena_id: list(tickets) for arena_id, tickets in self._tickets.items()}

    @staticmethod
    def _clear_arena(agent: Agent) -> None:
        agent.current_arena_id = None
        agent.current_arena_name = None

    @staticmethod
    def _after(seconds: float) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=seconds)
