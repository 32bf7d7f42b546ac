"""Tests for arena scoring and selection."""

import math

import pytest

from matchmaker.config import ScoringConfig
from matchmaker.models import Lobby, LobbyEntry
from matchmaker.scoring import (
    REJECTED,
    ArenaScorer,
    filter_by_preference,
    passes_budget_gate,
    passes_tier_gate,
    risk_score,
    score_arena,
)
from matchmaker.tiers import max_allowed_fee, tier_for_risk


@pytest.mark.parametrize(
    "risk, tier, max_fee",
    [
        (100, "diamond", 2.0),
        (85, "diamond", 2.0),
        (84.9, "platinum", 1.0),
        (70, "platinum", 1.0),
        (50, "gold", 0.5),
        (30, "silver", 0.2),
        (29, "bronze", 0.1),
        (0, "bronze", 0.1),
    ],
)
def test_tier_table(risk, tier, max_fee) -> None:
    band = tier_for_risk(risk)
    assert band.tier == tier
    assert max_allowed_fee(risk) == max_fee


def test_tier_gate_boundaries() -> None:
    assert passes_tier_gate(85, 2.0)
    assert not passes_tier_gate(85, 2.01)
    assert passes_tier_gate(29, 0.1)
    assert not passes_tier_gate(29, 0.11)


def test_tier_gate_rejects_arena(make_agent, make_arena) -> None:
    agent = make_agent(risk=85)
    assert score_arena(agent, make_arena(entry_fee=2.0), None) > 0
    assert score_arena(agent, make_arena(entry_fee=2.01), None) == REJECTED


def test_budget_gate_half_of_earnings(make_agent) -> None:
    agent = make_agent(earnings=10)
    assert passes_budget_gate(agent, 5.0)
    assert not passes_budget_gate(agent, 5.01)


def test_budget_gate_skipped_without_earnings(make_agent) -> None:
    assert passes_budget_gate(make_agent(earnings=None), 100)
    assert passes_budget_gate(make_agent(earnings=0), 100)


def test_budget_gate_rejects_arena(make_agent, make_arena) -> None:
    agent = make_agent(risk=90, earnings=1)
    assert score_arena(agent, make_arena(entry_fee=0.5), None) > 0
    assert score_arena(agent, make_arena(entry_fee=0.6), None) == REJECTED


def test_arena_with_agent_already_seated_is_rejected(make_agent, make_arena, fake_arenas) -> None:
    agent = make_agent()
    arena = make_arena()
    arenas = fake_arenas([arena], {arena.arena_id: [LobbyEntry(id=agent.id, name=agent.name)]})

    assert ArenaScorer(arenas).score(agent, arena) == REJECTED


def test_risk_score_bands() -> None:
    assert risk_score(1.5, 0.9) == 0.9
    assert risk_score(0.5, 0.4) == pytest.approx(0.7)
    assert risk_score(0.1, 0.0) == 1.0


def test_score_formula(make_agent, make_arena) -> None:
    agent = make_agent(risk=90, aggressiveness=50)
    arena = make_arena(entry_fee=1.5, prize_pool=10, max_agents=8)
    lobby_entries = [LobbyEntry(id="a", name="A"), LobbyEntry(id="b", name="B")]

    lobby = Lobby(arena_id=arena.arena_id, agents=lobby_entries, count=2)
    expected = 0.9 * math.log(12.5) * 1.25 * 0.75
    assert score_arena(agent, arena, lobby) == pytest.approx(expected)


def test_missing_params_use_defaults(make_agent, make_arena) -> None:
    agent = make_agent(risk=None, aggressiveness=None)
    arena = make_arena(entry_fee=0.5, prize_pool=1, max_agents=None)

    explicit = score_arena(make_agent(risk=50, aggressiveness=50), arena, None)
    assert score_arena(agent, arena, None) == pytest.approx(explicit)

    config = ScoringConfig(default_risk_tolerance=10)
    assert score_arena(agent, arena, None, config) == REJECTED


def test_high_risk_agent_prefers_larger_arena(make_agent, make_arena, fake_arenas) -> None:
    agent = make_agent(risk=90, aggressiveness=50, earnings=0)
    big = make_arena("arena_big", entry_fee=1.5, prize_pool=10, max_agents=8)
    small = make_arena("arena_small", entry_fee=0.05, prize_pool=1, max_agents=8)
    arenas = fake_arenas(
        [big, small],
        {"arena_big": [LobbyEntry(id="x", name="X"), LobbyEntry(id="y", name="Y")]},
    )

    assert ArenaScorer(arenas).evaluate_best_arena(agent, [small, big]) is big


def test_scoring_is_pure(make_agent, make_arena) -> None:
    agent = make_agent(risk=70, earnings=3)
    arena = make_arena(entry_fee=1.0, prize_pool=4)
    before = (agent.model_dump(), arena.model_dump())

    first = score_arena(agent, arena, None)
    second = score_arena(agent, arena, None)

    assert first == second
    assert (agent.model_dump(), arena.model_dump()) == before


def test_tie_keeps_first_candidate(make_agent, make_arena, fake_arenas) -> None:
    agent = make_agent()
    first = make_arena("arena_a")
    second = make_arena("arena_b")
    scorer = ArenaScorer(fake_arenas([first, second]))

    assert scorer.evaluate_best_arena(agent, [first, second]) is first
    assert scorer.evaluate_best_arena(agent, [second, first]) is second


def test_no_positive_score_returns_none(make_agent, make_arena, fake_arenas) -> None:
    agent = make_agent(risk=10)
    expensive = make_arena(entry_fee=1.0)

    assert ArenaScorer(fake_arenas([expensive])).evaluate_best_arena(agent, [expensive]) is None


def test_preference_filter(make_agent, make_arena, fake_arenas) -> None:
    battle = make_arena("arena_battle", game_type="battle")
    rps = make_arena("arena_rps", game_type="rps", prize_pool=50)
    arenas = [battle, rps]

    assert filter_by_preference(arenas, "battle") == [battle]
    assert filter_by_preference(arenas, "rps") == [rps]
    assert filter_by_preference(arenas, "both") == arenas

    scorer = ArenaScorer(fake_arenas(arenas))
    assert scorer.evaluate_best_arena(make_agent(preference="battle"), arenas) is battle
    assert scorer.evaluate_best_arena(make_agent(preference="both"), arenas) is rps
