"""Wiring of the scan loop, the paper arena manager and the agent roster."""

import logging
from dataclasses import dataclass
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from matchmaker.config import Settings
from matchmaker.hooks import ProfitTargetWithdrawal, paper_transfer
from matchmaker.scheduler import ScanScheduler
from matchmaker.services.arena import PaperArenaManager
from matchmaker.storage import AgentRoster, load_roster, save_roster

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything one matchmaker process runs."""

    settings: Settings
    roster: AgentRoster
    arenas: PaperArenaManager
    loop: ScanScheduler
    persist_roster: bool = False

    def save(self) -> None:
        if not self.persist_roster:
            return
        if not self.settings.data_dir.exists():
            logger.warning(f"Data directory missing, roster not saved: {self.settings.data_dir}")
            return
        save_roster(self.roster, self.settings.data_dir)


def build_runtime(settings: Settings, roster: AgentRoster | None = None) -> Runtime:
    """Build a runtime. Without a roster, agents are loaded from the data dir and saved back on exit."""
    persist = roster is None
    if roster is None:
        roster = load_roster(settings.data_dir) if settings.data_dir.exists() else AgentRoster()

    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    arenas = PaperArenaManager(settings.arena, scheduler=scheduler)
    loop = ScanScheduler(
        arenas,
        roster,
        settings,
        scheduler=scheduler,
        post_match_hook=ProfitTargetWithdrawal(paper_transfer, settings.withdraw),
    )
    return Runtime(settings=settings, roster=roster, arenas=arenas, loop=loop, persist_roster=persist)
