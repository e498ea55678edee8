"""
Test suite for the match simulator: set rules, singles matches, byes and
fallbacks, category matches, strength model and match narrative.
"""
from __future__ import annotations

import pytest

from clubengine.models import EquipmentItem, Gender, Injury, InjurySeverity, Player
from clubengine.simulation.match_simulator import (
    BYE_SCORE,
    DOMINANT_SCORES,
    FALLBACK_SCORE,
    UPSET_SCORES,
    MatchSimulator,
    estimate_duration,
    simulate_match,
)
from clubengine.simulation.rng import SeededRNG
from clubengine.simulation.schemas import MatchConfig, SetScore
from clubengine.simulation.set_simulator import (
    format_score,
    parse_score,
    point_probability,
    set_won,
    sets_to_win_match,
    simulate_set,
    simulate_sets,
    swap_score,
)
from clubengine.simulation.strength import StrengthModel, equipment_bonus, form_factor
from clubengine.simulation.summary import summarize_match

NOW_MS = 1_800_000_000_000


def _player(pid: str, stat: float = 50, rank: float = 0.0, **kwargs) -> Player:
    stats = kwargs.pop("stats", None) or {
        s: stat for s in ("endurance", "strength", "agility", "speed", "explosiveness",
                          "injury_prevention", "smash", "defense", "serve", "stick", "slice", "drop")
    }
    return Player(id=pid, name=pid.upper(), gender=kwargs.pop("gender", Gender.MALE), rank=rank, stats=stats, **kwargs)


def _severe(end_ms: int) -> Injury:
    return Injury("inj", "Back Injury", InjurySeverity.SEVERE, 120 * 60_000, end_ms, end_ms - 1, {})


def _valid_set(s: SetScore) -> bool:
    hi, lo = max(s.p1, s.p2), min(s.p1, s.p2)
    if hi == 21:
        return lo <= 19
    if 21 < hi < 30:
        return hi - lo == 2
    return hi == 30 and lo in (28, 29)


# ---- Set rules ----
class TestSetRules:
    def test_set_won_at_21_with_margin(self):
        assert set_won(21, 19) == "a"
        assert set_won(19, 21) == "b"

    def test_set_not_won_without_margin(self):
        assert set_won(21, 20) is None
        assert set_won(20, 20) is None
        assert set_won(25, 24) is None

    def test_extended_set(self):
        assert set_won(24, 22) == "a"
        assert set_won(27, 29) == "b"

    def test_cap_at_30(self):
        assert set_won(30, 29) == "a"
        assert set_won(29, 30) == "b"

    def test_sets_to_win_match(self):
        assert sets_to_win_match(3) == 2
        assert sets_to_win_match(5) == 3

    def test_point_probability(self):
        assert point_probability(50, 50) == 0.5
        assert point_probability(75, 25) == 0.75
        assert point_probability(0, 0) == 0.5

    def test_simulated_sets_are_valid(self):
        rng = SeededRNG(3)
        for p in (0.3, 0.5, 0.5, 0.7):
            for _ in range(50):
                assert _valid_set(simulate_set(p, rng))

    def test_match_has_two_or_three_sets_and_one_winner(self):
        rng = SeededRNG(11)
        for _ in range(100):
            sets = simulate_sets(0.5, rng)
            assert len(sets) in (2, 3)
            wins_a = sum(1 for s in sets if s.winner == 1)
            assert wins_a in (0, 1, 2)
            assert max(wins_a, len(sets) - wins_a) == 2
            # the last set is always won by the match winner
            assert sets[-1].winner == (1 if wins_a == 2 else 2)

    def test_custom_config(self):
        rng = SeededRNG(5)
        cfg = MatchConfig(best_of=1, points_to_win_set=11, win_by=2, point_cap=15)
        sets = simulate_sets(0.5, rng, cfg)
        assert len(sets) == 1
        assert max(sets[0].p1, sets[0].p2) in range(11, 16)


class TestScoreStrings:
    def test_format_and_parse(self):
        sets = [SetScore(21, 15), SetScore(18, 21), SetScore(21, 19)]
        assert format_score(sets) == "21-15, 18-21, 21-19"
        assert parse_score("21-15, 18-21, 21-19") == sets

    def test_swap(self):
        assert swap_score("21-15, 18-21") == "15-21, 21-18"

    def test_malformed_raises(self):
        with pytest.raises(ValueError):
            parse_score("twenty-one")


# ---- Singles ----
class TestSinglesMatch:
    def test_bye(self):
        result = simulate_match(_player("a"), None)
        assert result.is_bye
        assert result.winner_id == "a"
        assert result.loser_id is None
        assert result.score == BYE_SCORE == "21-0, 21-0"

    def test_missing_player_data_falls_back(self):
        sim = MatchSimulator(SeededRNG(1))
        result = sim.simulate_match(_player("a"), None, NOW_MS, player2_id="ghost")
        assert result.is_fallback
        assert {result.winner_id, result.loser_id} == {"a", "ghost"}
        expected = FALLBACK_SCORE if result.winner_id == "a" else swap_score(FALLBACK_SCORE)
        assert result.score == expected

    def test_missing_player1_raises(self):
        with pytest.raises(ValueError):
            MatchSimulator().simulate_match(None, None)

    def test_result_is_consistent(self):
        sim = MatchSimulator(SeededRNG(99))
        a, b = _player("a"), _player("b")
        for _ in range(30):
            result = sim.simulate_match(a, b, NOW_MS)
            assert {result.winner_id, result.loser_id} == {"a", "b"}
            assert result.score == format_score(result.sets)
            p1_sets = sum(1 for s in result.sets if s.winner == 1)
            assert (p1_sets == 2) == (result.winner_id == "a")
            assert all(_valid_set(s) for s in result.sets)

    def test_variance_bounds(self):
        sim = MatchSimulator(SeededRNG(4))
        a, b = _player("a", 60), _player("b", 40)
        for _ in range(30):
            r = sim.simulate_match(a, b, NOW_MS)
            assert 0.85 * r.player1_strength <= r.player1_final_strength <= 1.15 * r.player1_strength
            assert 0.85 * r.player2_strength <= r.player2_final_strength <= 1.15 * r.player2_strength

    def test_same_seed_same_result(self):
        a, b = _player("a", 55), _player("b", 50)
        r1 = simulate_match(a, b, SeededRNG(2024), NOW_MS)
        r2 = simulate_match(a, b, SeededRNG(2024), NOW_MS)
        assert r1.to_dict() == r2.to_dict()

    def test_stronger_player_wins_more_often(self):
        sim = MatchSimulator(SeededRNG(8))
        strong, weak = _player("s", 90), _player("w", 20)
        wins = sum(1 for _ in range(100) if sim.simulate_match(strong, weak, NOW_MS).winner_id == "s")
        assert wins > 80

    def test_duration_estimate(self):
        rng = SeededRNG(1)
        for _ in range(50):
            assert 54 <= estimate_duration(50, 50, rng) <= 68
            assert 36 <= estimate_duration(0, 100, rng) <= 50

    def test_duration_uses_strengths_after_variance(self, monkeypatch):
        seen = []

        def _capture(a, b, rng):
            seen.append((a, b))
            return estimate_duration(a, b, rng)

        monkeypatch.setattr("clubengine.simulation.match_simulator.estimate_duration", _capture)
        result = MatchSimulator(SeededRNG(6)).simulate_match(_player("a", 70), _player("b", 30), NOW_MS)
        assert seen == [(result.player1_final_strength, result.player2_final_strength)]
        assert seen[0] != (result.player1_strength, result.player2_strength)


# ---- Categories ----
class TestCategoryMatch:
    def test_side_strength_defaults_to_500(self):
        sim = MatchSimulator()
        assert sim.side_strength([]) == 500
        assert sim.side_strength([None, _player("a", rank=300)]) == 400
        assert sim.side_strength([_player("a", rank=0)]) == 500

    def test_clearly_stronger_side_wins_with_dominant_score(self):
        sim = MatchSimulator(SeededRNG(6))
        home, away = [_player("h", rank=400)], [_player("a", rank=100)]
        for _ in range(20):
            out = sim.simulate_category(home, away)
            assert out.winner_side == "home"
            assert out.score in DOMINANT_SCORES

    def test_score_is_home_first_and_pool_matches_outcome(self):
        sim = MatchSimulator(SeededRNG(12))
        home = [_player("h1", rank=110), _player("h2", rank=110)]
        away = [_player("a1", rank=100), _player("a2", rank=100)]
        seen_upset = False
        for _ in range(200):
            out = sim.simulate_category(home, away)
            sets = parse_score(out.score)
            home_sets = sum(1 for s in sets if s.winner == 1)
            assert (home_sets * 2 > len(sets)) == (out.winner_side == "home")
            winner_first = out.score if out.winner_side == "home" else swap_score(out.score)
            if out.winner_side == "home":
                assert winner_first in DOMINANT_SCORES
            else:
                assert winner_first in UPSET_SCORES
                seen_upset = True
        assert seen_upset

    def test_empty_side_falls_back(self):
        out = MatchSimulator(SeededRNG(1)).simulate_category([], [_player("a")])
        assert out.winner_side in ("home", "away")
        assert out.score in (FALLBACK_SCORE, swap_score(FALLBACK_SCORE))


# ---- Strength ----
class TestStrengthModel:
    def test_base_for_flat_player(self):
        b = StrengthModel().breakdown(_player("a", 50), NOW_MS)
        assert b.physical == 50
        assert b.technical == 50
        assert b.mental == 50
        assert b.experience == 2
        assert b.strategy == 50
        assert b.base == pytest.approx(45.2)
        assert b.total == pytest.approx(45.2)

    def test_equipment_bonus_is_capped(self):
        assert equipment_bonus([EquipmentItem("Racket", {"smash": 100, "speed": 100})]) == 15
        assert equipment_bonus([EquipmentItem("Grip"), EquipmentItem("Shoes")]) == 2
        assert equipment_bonus([]) == 0

    def test_active_injury_penalty(self):
        model = StrengthModel()
        player = _player("a", 50, injuries=[_severe(NOW_MS + 1000)])
        assert model.breakdown(player, NOW_MS).injury_penalty == 9
        assert model.breakdown(player, NOW_MS + 1000).injury_penalty == 0

    def test_form_factor(self):
        assert form_factor([]) == 0
        assert form_factor([True, True, True, False]) == pytest.approx(2.5)
        assert form_factor([False] * 5) == -5

    def test_floor_at_ten(self):
        player = _player("a", 1, injuries=[_severe(NOW_MS + 1000) for _ in range(10)])
        assert StrengthModel().strength(player, NOW_MS) == 10

    def test_better_rank_adds_experience(self):
        model = StrengthModel()
        low = model.breakdown(_player("a", rank=0), NOW_MS)
        high = model.breakdown(_player("b", rank=600), NOW_MS)
        assert high.experience > low.experience


# ---- Summary ----
class TestSummary:
    def test_straight_sets_narrative(self):
        winner = _player("w", stats={"smash": 80, "endurance": 70, "serve": 65})
        loser = _player("l", stats={"endurance": 40})
        lines = summarize_match(winner, loser, "21-10, 21-19")
        assert lines[0] == "W faced off against L in an intense match."
        assert any("dominant" in line for line in lines)
        assert any("nail-biting" in line for line in lines)
        assert "W's powerful smashes were unstoppable." in lines
        assert "W's superior endurance made the difference." in lines
        assert "W's serves were particularly effective." in lines
        assert lines[-1] == "W secured a straight-sets victory."

    def test_three_set_narrative_with_injury(self):
        winner, loser = _player("w", 50), _player("l", 50)
        injury = _severe(NOW_MS)
        lines = summarize_match(winner, loser, "21-17, 18-21, 21-16", injuries=[(loser, injury)])
        assert sum(1 for line in lines if "solid set" in line) == 3
        assert "During the match, L suffered a serious Back Injury." in lines
        assert lines[-1] == "W emerged victorious in a full three-set match."
