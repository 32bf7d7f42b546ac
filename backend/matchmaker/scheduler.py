"""Autonomous scan loop using APScheduler.

Every ``scan_interval_seconds`` (and once immediately on start) the loop
snapshots agents and open/lobby arenas, keeps the agents that have a strategy,
are searching and are available, and lets each one join its best arena.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from matchmaker.config import Settings
from matchmaker.coordinator import MatchCoordinator
from matchmaker.eligibility import EligibilityTracker
from matchmaker.exceptions import AgentNotFoundError
from matchmaker.interfaces import AgentStore, ArenaGateway, PostMatchHook
from matchmaker.models import Agent
from matchmaker.scoring import ArenaScorer

logger = logging.getLogger(__name__)

SCAN_JOB_ID = "autonomous-scan"


class ScanScheduler:
    """Periodic driver that matches searching agents to arenas."""

    def __init__(
        self,
        arenas: ArenaGateway,
        agents: AgentStore,
        settings: Settings,
        scheduler: AsyncIOScheduler | None = None,
        post_match_hook: PostMatchHook | None = None,
    ):
        self.arenas = arenas
        self.agents = agents
        self.settings = settings
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

        self.tracker = EligibilityTracker(settings.scheduler.match_cooldown_seconds)
        self.scorer = ArenaScorer(arenas, settings.scoring)
        self.coordinator = MatchCoordinator(
            arenas,
            self.tracker,
            self.scheduler,
            config=settings.scheduler,
            post_match_hook=post_match_hook,
        )
        self.coordinator.attach()

        self.running = False

    # ─── Lifecycle ───────────────────────────────────────────────────────

    def start(self) -> None:
        """Begin scanning, with the first scan due immediately.

        Must be called from within the running event loop. Calling it again
        while running is a no-op. If the timer scheduler cannot start the
        loop stays stopped and the error propagates, so a later call can
        retry.

        Raises:
            RuntimeError: If there is no running event loop
        """
        if self.running:
            return

        if not self.scheduler.running:
            self.scheduler.start()

        interval = self.settings.scheduler.scan_interval_seconds
        self.scheduler.add_job(
            self.scan,
            IntervalTrigger(seconds=interval),
            id=SCAN_JOB_ID,
            name="Autonomous: Arena Scan",
            next_run_time=datetime.now(timezone.utc),
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self.running = True
        logger.info(f"[AutonomousLoop] Started - scanning every {interval:g}s")

    def stop(self) -> None:
        """Stop scanning. In-flight matches keep their timeout and cooldown jobs."""
        if not self.running:
            return
        self.running = False
        try:
            self.scheduler.remove_job(SCAN_JOB_ID)
        except JobLookupError:
            pass
        logger.info("[AutonomousLoop] Stopped")

    def shutdown(self) -> None:
        """Stop scanning and tear down the timer scheduler (process exit)."""
        self.stop()
        self.coordinator.detach()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    # ─── Listeners ───────────────────────────────────────────────────────

    def add_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        self.coordinator.add_listener(event, callback)

    def remove_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        self.coordinator.remove_listener(event, callback)

    # ─── Scan ────────────────────────────────────────────────────────────

    async def scan(self) -> None:
        """One scan tick. Never raises."""
        try:
            self._scan()
        except Exception as e:
            logger.error(f"[AutonomousLoop] Scan error: {e}", exc_info=True)

    def _scan(self) -> int:
        all_agents = list(self.agents.all())
        open_arenas = self.arenas.list_arenas("open")
        lobby_arenas = self.arenas.list_arenas("lobby")
        available_arenas = [*open_arenas, *lobby_arenas]

        searching = [a for a in all_agents if a.is_searching]
        with_strategy = sum(1 for a in all_agents if a.has_strategy)
        eligible = [a for a in searching if a.has_strategy and self.tracker.is_available(a.id)]

        logger.info(
            f"[SCAN] Agents total={len(all_agents)} searching={len(searching)} "
            f"strategy={with_strategy} eligible={len(eligible)} | "
            f"Arenas open={len(open_arenas)} lobby={len(lobby_arenas)}"
        )

        if searching and not eligible:
            self._log_skip_reasons(searching)

        if not available_arenas or not eligible:
            return 0

        joined = 0
        for agent in eligible:
            try:
                if self._evaluate_agent(agent, available_arenas):
                    joined += 1
            except Exception as e:
                logger.error(f"[SCAN] Evaluation failed for {agent.name} ({agent.id}): {e}")
        return joined

    def _evaluate_agent(self, agent: Agent, arenas: list) -> bool:
        best = self.scorer.evaluate_best_arena(agent, arenas)
        if best is None:
            logger.debug(
                f"{agent.name} - no suitable arena found "
                f"({len(arenas)} arenas, pref: {agent.strategy_params.preferred_game_types})"
            )
            return False

        logger.info(
            f"[JOIN] {agent.name} -> {best.name} "
            f"({best.arena_id}, tier: {best.tier}, fee: {best.entry_fee:g})"
        )
        return self.coordinator.join(agent, best)

    def _log_skip_reasons(self, searching: list[Agent]) -> None:
        for agent in searching:
            reasons = []
            if not agent.has_strategy:
                reasons.append("no strategy_code.decide")
            if not self.tracker.is_available(agent.id):
                reasons.append("not available (cooldown/in match)")
            if reasons:
                logger.debug(f"[SCAN] {agent.name} ({agent.id}) skipped: {', '.join(reasons)}")

    # ─── Host controls ───────────────────────────────────────────────────

    def _require_agent(self, agent_id: str) -> Agent:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def activate_agent(self, agent_id: str) -> Agent:
        """Put the agent in the pool and make sure the loop is running.

        Args:
            agent_id: Roster id of the agent

        Returns:
            The updated agent

        Raises:
            AgentNotFoundError: If the id is not in the roster
        """
        agent = self._require_agent(agent_id)
        agent.status = "searching"
        if not self.running:
            self.start()
        logger.info(f"{agent.name} activated, searching for arena")
        return agent

    def deactivate_agent(self, agent_id: str) -> Agent:
        """Take the agent out of play, abandoning any match it is waiting on.

        Raises:
            AgentNotFoundError: If the id is not in the roster
        """
        agent = self._require_agent(agent_id)
        self.coordinator.abandon(agent.id)
        agent.status = "idle"
        agent.current_arena_id = None
        agent.current_arena_name = None
        self.tracker.clear_in_match(agent.id)
        logger.info(f"{agent.name} deactivated")
        return agent

    def get_agent_status(self, agent_id: str) -> dict[str, Any]:
        agent = self._require_agent(agent_id)
        state = self.tracker.get_state(agent.id)
        return {
            "agent_id": agent.id,
            "name": agent.name,
            "status": agent.status,
            "current_arena_id": agent.current_arena_id,
            "current_arena_name": agent.current_arena_name,
            "last_result": agent.last_result,
            "buffs": agent.buffs.model_dump(),
            "eligibility": state.model_dump() if state else None,
        }

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of the loop for status endpoints.

        Returns:
            Dict with running flag, agent counts, per-agent eligibility,
            open tickets by arena and the scheduler config
        """
        all_agents = list(self.agents.all())
        return {
            "running": self.running,
            "total_agents": len(all_agents),
            "autonomous_agents": sum(1 for a in all_agents if a.has_strategy),
            "agent_states": {
                agent_id: state.model_dump()
                for agent_id, state in self.tracker.snapshot().items()
            },
            "active_matches": self.coordinator.active_matches(),
            "config": self.settings.scheduler.model_dump(),
        }
