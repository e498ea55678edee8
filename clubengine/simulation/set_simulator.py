"""
Set progression: rally points to 21, win by 2, capped at 30; best of 3 sets.
"""
from __future__ import annotations

from .rng import SeededRNG
from .schemas import MatchConfig, SetScore


def set_won(points_a: int, points_b: int, to_win: int = 21, win_by: int = 2, cap: int = 30) -> str | None:
    """Returns 'a' or 'b' if someone won the set, else None."""
    if points_a >= cap:
        return "a"
    if points_b >= cap:
        return "b"
    if points_a >= to_win and points_a - points_b >= win_by:
        return "a"
    if points_b >= to_win and points_b - points_a >= win_by:
        return "b"
    return None


def sets_to_win_match(best_of: int) -> int:
    return (best_of // 2) + 1


def point_probability(strength_a: float, strength_b: float) -> float:
    """Chance side A wins a rally."""
    total = strength_a + strength_b
    if total <= 0:
        return 0.5
    return strength_a / total


def simulate_set(p_a: float, rng: SeededRNG, config: MatchConfig | None = None) -> SetScore:
    config = config or MatchConfig()
    a = b = 0
    while set_won(a, b, config.points_to_win_set, config.win_by, config.point_cap) is None:
        if rng.random() < p_a:
            a += 1
        else:
            b += 1
    return SetScore(a, b)


def simulate_sets(p_a: float, rng: SeededRNG, config: MatchConfig | None = None) -> list[SetScore]:
    """Play sets until one side has won the match. Returns 2 or 3 sets for best of 3."""
    config = config or MatchConfig()
    needed = sets_to_win_match(config.best_of)
    sets: list[SetScore] = []
    won_a = won_b = 0
    while won_a < needed and won_b < needed:
        s = simulate_set(p_a, rng, config)
        sets.append(s)
        if s.winner == 1:
            won_a += 1
        else:
            won_b += 1
    return sets


def format_score(sets: list[SetScore]) -> str:
    return ", ".join(str(s) for s in sets)


def parse_score(score: str) -> list[SetScore]:
    """Inverse of format_score. Raises ValueError on malformed input."""
    out: list[SetScore] = []
    for part in score.split(","):
        left, _, right = part.strip().partition("-")
        out.append(SetScore(int(left), int(right)))
    return out


def swap_score(score: str) -> str:
    """Same score seen from the other side."""
    return format_score([SetScore(s.p2, s.p1) for s in parse_score(score)])
