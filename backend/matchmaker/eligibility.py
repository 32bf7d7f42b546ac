"""Per-agent cooldown and in-match bookkeeping."""

import logging
import threading
import time
from enum import Enum
from typing import Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ReleaseOutcome(str, Enum):
    """How an agent's match ended."""

    COMPLETED = "completed"
    ERRORED = "errored"
    TIMED_OUT = "timed_out"


class EligibilityState(BaseModel):
    """Scheduling record for one agent. Created on first contact, never removed."""

    last_match_time: float = 0.0
    in_match: bool = False
    match_count: int = 0


class EligibilityTracker:
    """Decides whether an agent may be scheduled.

    An agent is available when it has no record yet, or when it is not in a
    match and its cooldown has elapsed since ``last_match_time``. Releases
    arrive from timer and event callbacks, so every read and write goes
    through one lock.
    """

    def __init__(
        self,
        cooldown_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._states: dict[str, EligibilityState] = {}
        # last_match_time before the current entry, restored if the join fails
        self._previous_match_time: dict[str, float] = {}
        self._lock = threading.RLock()

    def _get_or_create(self, agent_id: str) -> EligibilityState:
        state = self._states.get(agent_id)
        if state is None:
            state = EligibilityState()
            self._states[agent_id] = state
        return state

    def is_available(self, agent_id: str) -> bool:
        with self._lock:
            state = self._states.get(agent_id)
            if state is None:
                return True
            return not state.in_match and not self._cooling_down(state)

    def _cooling_down(self, state: EligibilityState) -> bool:
        # A zero timestamp means the agent has never played
        if not state.last_match_time:
            return False
        return self._clock() - state.last_match_time < self.cooldown_seconds

    def mark_entered(self, agent_id: str) -> bool:
        """Claim the agent for a match. Returns False if it is already in one."""
        with self._lock:
            state = self._get_or_create(agent_id)
            if state.in_match:
                return False
            self._previous_match_time[agent_id] = state.last_match_time
            state.in_match = True
            state.last_match_time = self._clock()
            return True

    def cancel_entry(self, agent_id: str) -> None:
        """Undo ``mark_entered`` for a join that never happened."""
        with self._lock:
            state = self._get_or_create(agent_id)
            state.in_match = False
            state.last_match_time = self._previous_match_time.pop(
                agent_id, state.last_match_time
            )

    def mark_released(self, agent_id: str, outcome: ReleaseOutcome) -> None:
        """Free the agent and restart its cooldown."""
        with self._lock:
            state = self._get_or_create(agent_id)
            state.in_match = False
            state.last_match_time = self._clock()
            if outcome is ReleaseOutcome.COMPLETED:
                state.match_count += 1
            self._previous_match_time.pop(agent_id, None)
        logger.debug(f"Released {agent_id} ({outcome.value})")

    def clear_in_match(self, agent_id: str) -> None:
        """Drop the in-match flag without touching the cooldown (deactivation)."""
        with self._lock:
            state = self._states.get(agent_id)
            if state is not None:
                state.in_match = False

    def is_in_match(self, agent_id: str) -> bool:
        with self._lock:
            state = self._states.get(agent_id)
            return bool(state and state.in_match)

    def get_state(self, agent_id: str) -> EligibilityState | None:
        with self._lock:
            state = self._states.get(agent_id)
            return state.model_copy() if state is not None else None

    def snapshot(self) -> dict[str, EligibilityState]:
        with self._lock:
            return {agent_id: s.model_copy() for agent_id, s in self._states.items()}
