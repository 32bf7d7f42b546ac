"""Tests for join, completion, error and timeout handling of scheduled matches."""

import asyncio
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from matchmaker.config import SchedulerConfig
from matchmaker.coordinator import AGENT_AUTO_JOINED, AGENT_MATCH_RESULT, MatchCoordinator
from matchmaker.eligibility import EligibilityTracker
from matchmaker.exceptions import AlreadyInArenaError, ArenaFullError
from matchmaker.interfaces import MATCH_COMPLETED, MATCH_ERROR
from matchmaker.models import LobbyEntry, MatchCompleted, MatchErrored, MatchResult


def build(fake_arenas, arena, config=None, hook=None, scheduler=None):
    arenas = fake_arenas([arena])
    tracker = EligibilityTracker(cooldown_seconds=(config or SchedulerConfig()).match_cooldown_seconds)
    coordinator = MatchCoordinator(
        arenas,
        tracker,
        scheduler or AsyncIOScheduler(timezone=timezone.utc),
        config=config,
        post_match_hook=hook,
    )
    coordinator.attach()
    return arenas, tracker, coordinator


def completed(arena_id, winner=None, prize_pool=0.0):
    return MatchCompleted(
        arena_id=arena_id,
        match_id="match_1",
        result=MatchResult(match_id="match_1", winner=winner, prize_pool=prize_pool),
    )


def test_attach_subscribes_once(fake_arenas, make_arena) -> None:
    arenas, _, coordinator = build(fake_arenas, make_arena())
    coordinator.attach()

    assert len(arenas.listeners[MATCH_COMPLETED]) == 1
    assert len(arenas.listeners[MATCH_ERROR]) == 1

    coordinator.detach()
    assert arenas.listeners[MATCH_COMPLETED] == []


def test_join_seats_agent_and_schedules_timeout(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    agent = make_agent()
    joined = []
    coordinator.add_listener(AGENT_AUTO_JOINED, joined.append)

    assert coordinator.join(agent, arena)

    assert agent.status == "fighting"
    assert agent.current_arena_id == arena.arena_id
    assert tracker.is_in_match(agent.id)
    assert arenas.joins[0][1].owner == "autonomous"
    assert joined[0].agent_id == agent.id
    assert joined[0].lobby_size == 1
    assert coordinator.scheduler.get_job(f"match-timeout:{agent.id}:{arena.arena_id}") is not None
    assert coordinator.active_matches() == {arena.arena_id: [agent.id]}


def test_join_refused_while_in_match(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, _, coordinator = build(fake_arenas, arena)
    agent = make_agent()

    assert coordinator.join(agent, arena)
    assert not coordinator.join(agent, arena)
    assert len(arenas.joins) == 1


def test_failed_join_releases_agent(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    arenas.join_error = ArenaFullError("full", arena.arena_id)
    agent = make_agent(status="idle_searching")

    assert not coordinator.join(agent, arena)

    assert agent.status == "idle_searching"
    assert agent.current_arena_id is None
    assert tracker.is_available(agent.id)
    assert coordinator.active_matches() == {}
    assert coordinator.scheduler.get_job(f"match-timeout:{agent.id}:{arena.arena_id}") is None


def test_already_in_arena_is_not_an_error(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    arenas.join_error = AlreadyInArenaError("dup", arena.arena_id)
    agent = make_agent()

    assert not coordinator.join(agent, arena)
    assert agent.status == "searching"
    assert not tracker.is_in_match(agent.id)


def test_completion_with_winner(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    agent = make_agent(matches_left=2)
    results = []
    coordinator.add_listener(AGENT_MATCH_RESULT, results.append)
    coordinator.join(agent, arena)

    arenas.emit(MATCH_COMPLETED, completed(arena.arena_id, LobbyEntry(id=agent.id, name=agent.name), 3))

    assert agent.status == "won"
    assert agent.last_result == "Won! +3 MON"
    assert agent.current_arena_id is None
    assert agent.buffs.matches_left == 1
    assert agent.buffs.attack == 5
    state = tracker.get_state(agent.id)
    assert not state.in_match
    assert state.match_count == 1
    assert results[0].status == "won"
    assert coordinator.scheduler.get_job(f"match-timeout:{agent.id}:{arena.arena_id}") is None
    assert coordinator.scheduler.get_job(f"resume:{agent.id}") is not None


def test_completion_loss_and_buff_expiry(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, _, coordinator = build(fake_arenas, arena)
    agent = make_agent(matches_left=1)
    coordinator.join(agent, arena)

    arenas.emit(MATCH_COMPLETED, completed(arena.arena_id, LobbyEntry(id="someone_else", name="Other")))

    assert agent.status == "lost"
    assert agent.last_result == "Lost"
    assert agent.buffs.matches_left == 0
    assert agent.buffs.attack == 0


def test_completion_accepts_plain_dict(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, _, coordinator = build(fake_arenas, arena)
    agent = make_agent()
    coordinator.join(agent, arena)

    arenas.emit(MATCH_COMPLETED, {"arena_id": arena.arena_id, "result": {"winner": None}})

    assert agent.status == "lost"


def test_error_returns_agent_to_searching(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    agent = make_agent(matches_left=2)
    coordinator.join(agent, arena)

    arenas.emit(MATCH_ERROR, MatchErrored(arena_id=arena.arena_id, reason="engine crashed"))

    assert agent.status == "searching"
    assert agent.current_arena_id is None
    assert agent.buffs.matches_left == 2
    state = tracker.get_state(agent.id)
    assert not state.in_match
    assert state.match_count == 0


def test_first_terminal_signal_wins(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    agent = make_agent()
    coordinator.join(agent, arena)

    arenas.emit(MATCH_COMPLETED, completed(arena.arena_id, LobbyEntry(id=agent.id, name=agent.name), 1))
    arenas.emit(MATCH_ERROR, MatchErrored(arena_id=arena.arena_id, reason="late"))
    arenas.emit(MATCH_COMPLETED, completed(arena.arena_id))
    asyncio.run(coordinator._on_timeout(agent.id, arena.arena_id))

    assert agent.status == "won"
    assert tracker.get_state(agent.id).match_count == 1


def test_events_for_other_arenas_are_ignored(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    agent = make_agent()
    coordinator.join(agent, arena)

    arenas.emit(MATCH_ERROR, MatchErrored(arena_id="arena_other"))

    assert agent.status == "fighting"
    assert tracker.is_in_match(agent.id)


def test_timeout_leaves_ticket_when_agent_is_elsewhere(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    agent = make_agent()
    coordinator.join(agent, arena)
    agent.current_arena_id = "arena_elsewhere"

    asyncio.run(coordinator._on_timeout(agent.id, arena.arena_id))

    # The arena's own signal can still release the agent
    assert coordinator.active_matches() == {arena.arena_id: [agent.id]}
    arenas.emit(MATCH_ERROR, MatchErrored(arena_id=arena.arena_id))
    assert agent.status == "searching"
    assert not tracker.is_in_match(agent.id)


def test_timeout_takes_agent_out_of_lobby(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, tracker, coordinator = build(fake_arenas, arena)
    agent = make_agent()
    coordinator.join(agent, arena)

    asyncio.run(coordinator._on_timeout(agent.id, arena.arena_id))

    assert agent.status == "searching"
    assert arenas.lobbies[arena.arena_id] == []
    assert tracker.get_state(agent.id).match_count == 0


def test_timeout_after_launch_keeps_lobby(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, _, coordinator = build(fake_arenas, arena)
    agent = make_agent()
    coordinator.join(agent, arena)
    arena.status = "in_progress"

    asyncio.run(coordinator._on_timeout(agent.id, arena.arena_id))

    assert agent.status == "searching"
    assert [e.id for e in arenas.lobbies[arena.arena_id]] == [agent.id]


def test_abandon_settles_open_tickets(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    arenas, _, coordinator = build(fake_arenas, arena)
    agent = make_agent()
    results = []
    coordinator.add_listener(AGENT_MATCH_RESULT, results.append)
    coordinator.join(agent, arena)

    assert coordinator.abandon(agent.id) == 1
    assert coordinator.abandon(agent.id) == 0

    assert coordinator.active_matches() == {}
    assert coordinator.scheduler.get_job(f"match-timeout:{agent.id}:{arena.arena_id}") is None
    assert arenas.lobbies[arena.arena_id] == []

    arenas.emit(MATCH_COMPLETED, completed(arena.arena_id, LobbyEntry(id=agent.id, name=agent.name), 1))
    assert results == []


def test_abandoned_arena_cannot_touch_next_match(fake_arenas, make_agent, make_arena) -> None:
    arena_a = make_arena("arena_a")
    arena_b = make_arena("arena_b")
    arenas = fake_arenas([arena_a, arena_b])
    tracker = EligibilityTracker(cooldown_seconds=0)
    coordinator = MatchCoordinator(arenas, tracker, AsyncIOScheduler(timezone=timezone.utc))
    coordinator.attach()
    agent = make_agent()

    coordinator.join(agent, arena_a)
    coordinator.abandon(agent.id)
    tracker.clear_in_match(agent.id)
    assert coordinator.join(agent, arena_b)

    arenas.emit(MATCH_COMPLETED, completed("arena_a"))
    arenas.emit(MATCH_ERROR, MatchErrored(arena_id="arena_a"))
    asyncio.run(coordinator._on_timeout(agent.id, "arena_a"))

    assert agent.status == "fighting"
    assert agent.current_arena_id == "arena_b"
    assert tracker.is_in_match(agent.id)
    assert tracker.get_state(agent.id).match_count == 0
    assert coordinator.active_matches() == {"arena_b": [agent.id]}


def test_listener_errors_do_not_break_join(fake_arenas, make_agent, make_arena) -> None:
    arena = make_arena()
    _, _, coordinator = build(fake_arenas, arena)

    def broken(_event) -> None:
        raise RuntimeError("listener down")

    coordinator.add_listener(AGENT_AUTO_JOINED, broken)
    assert coordinator.join(make_agent(), arena)


def test_match_timeout_releases_agent(fake_arenas, make_agent, make_arena) -> None:
    config = SchedulerConfig(match_timeout_seconds=0.1, match_cooldown_seconds=0)

    async def run() -> None:
        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.start()
        try:
            arena = make_arena()
            _, tracker, coordinator = build(fake_arenas, arena, config, scheduler=scheduler)
            agent = make_agent()
            assert coordinator.join(agent, arena)

            await asyncio.sleep(0.5)

            assert not tracker.is_in_match(agent.id)
            assert agent.status == "searching"
            assert agent.current_arena_id is None
            assert coordinator.active_matches() == {}
        finally:
            scheduler.shutdown(wait=False)

    asyncio.run(run())


def test_completion_resumes_searching_after_cooldown(fake_arenas, make_agent, make_arena) -> None:
    config = SchedulerConfig(match_timeout_seconds=60, match_cooldown_seconds=0.1)
    hooked = []

    async def hook(agent) -> None:
        hooked.append(agent.id)

    async def run() -> None:
        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.start()
        try:
            arena = make_arena()
            arenas, _, coordinator = build(fake_arenas, arena, config, hook=hook, scheduler=scheduler)
            agent = make_agent(matches_left=3)
            coordinator.join(agent, arena)

            arenas.emit(
                MATCH_COMPLETED,
                completed(arena.arena_id, LobbyEntry(id=agent.id, name=agent.name), 2),
            )
            assert agent.status == "won"
            assert agent.buffs.matches_left == 2

            await asyncio.sleep(0.5)

            assert agent.status == "searching"
            assert hooked == [agent.id]
        finally:
            scheduler.shutdown(wait=False)

    asyncio.run(run())
