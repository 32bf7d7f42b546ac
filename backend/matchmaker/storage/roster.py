"""Agent roster store backed by data/agents.yaml with atomic writes."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

import yaml
from pydantic import BaseModel, Field

from matchmaker.exceptions import AgentNotFoundError
from matchmaker.models import Agent

logger = logging.getLogger(__name__)

ROSTER_FILENAME = "agents.yaml"

# Match state that only means something while the process that scheduled it runs
IN_PLAY_STATUSES = frozenset({"fighting", "won", "lost"})


class RosterFile(BaseModel):
    """Schema of data/agents.yaml."""

    agents: list[Agent] = Field(default_factory=list)


class AgentRoster:
    """In-memory agent store keyed by id. Agents are mutated in place."""

    def __init__(self, agents: list[Agent] | None = None):
        self._agents: dict[str, Agent] = {}
        for agent in agents or []:
            self.add(agent)

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self) -> Iterator[Agent]:
        return iter(list(self._agents.values()))

    def add(self, agent: Agent) -> Agent:
        self._agents[agent.id] = agent
        return agent

    def get(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def require(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def all(self) -> list[Agent]:
        return list(self._agents.values())


def get_roster_path(data_dir: Path) -> Path:
    return data_dir / ROSTER_FILENAME


def load_roster(data_dir: Path) -> AgentRoster:
    """Load agents from data/agents.yaml. Missing file yields an empty roster."""
    roster_path = get_roster_path(data_dir)

    if not roster_path.exists():
        logger.info(f"Roster file not found: {roster_path}. Starting with no agents.")
        return AgentRoster()

    try:
        with open(roster_path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)

        if not raw_data:
            logger.warning(f"Empty roster file: {roster_path}")
            return AgentRoster()

        roster_file = RosterFile(**raw_data)
        logger.debug(f"Loaded {len(roster_file.agents)} agents from {roster_path}")
        return AgentRoster(roster_file.agents)

    except yaml.YAMLError as e:
        logger.error(f"Corrupted YAML in roster file: {e}")
        raise
    except Exception as e:
        logger.error(f"Failed to load roster: {e}")
        raise


def _at_rest(agent: Agent) -> Agent:
    """Copy of the agent with no match in flight, as the next start should see it."""
    updates: dict = {"current_arena_id": None, "current_arena_name": None}
    if agent.status in IN_PLAY_STATUSES:
        updates["status"] = "searching"
    return agent.model_copy(update=updates)


def save_roster(roster: AgentRoster, data_dir: Path) -> None:
    """Atomically save the roster to data/agents.yaml.

    Agents that were fighting or cooling down are written back as searching
    with no arena, since their timers do not survive the process. Writes to a
    temp file in the same directory and renames it over the original, so a
    crash mid-write leaves the previous file intact.
    """
    roster_path = get_roster_path(data_dir)
    roster_dict = RosterFile(agents=[_at_rest(a) for a in roster.all()]).model_dump(mode="json")

    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=roster_path.parent,
            delete=False,
            suffix=".yaml",
            encoding="utf-8",
        ) as temp_file:
            yaml.dump(
                roster_dict,
                temp_file,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
            temp_path = Path(temp_file.name)

        shutil.move(str(temp_path), str(roster_path))
        logger.debug(f"Saved roster to {roster_path}")

    except Exception as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to save roster: {e}")
        raise
