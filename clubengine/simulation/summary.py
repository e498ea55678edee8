"""
Human-readable match narrative built from the final score.
"""
from __future__ import annotations

from clubengine.models import Injury, InjurySeverity, Player

from .set_simulator import parse_score

DOMINANT_MARGIN = 5
CLOSE_MARGIN = 2

_SEVERITY_TEXT = {
    InjurySeverity.MINOR: "minor",
    InjurySeverity.MODERATE: "concerning",
    InjurySeverity.SEVERE: "serious",
}


def summarize_match(
    winner: Player,
    loser: Player,
    score: str,
    injuries: list[tuple[Player, Injury]] | None = None,
) -> list[str]:
    """
    Narrative lines for a completed singles match. score may be written from
    either side; each set is described by its own winning margin.
    """
    lines = [f"{winner.name} faced off against {loser.name} in an intense match."]
    sets = parse_score(score)
    for number, s in enumerate(sets, start=1):
        text = str(s)
        margin = abs(s.p1 - s.p2)
        if margin > DOMINANT_MARGIN:
            lines.append(f"Set {number}: A dominant performance with a score of {text}.")
            if winner.stats.get("smash", 0) > 70:
                lines.append(f"{winner.name}'s powerful smashes were unstoppable.")
        elif margin <= CLOSE_MARGIN:
            lines.append(f"Set {number}: A nail-biting set ending {text}.")
            if winner.stats.get("endurance", 0) > loser.stats.get("endurance", 0):
                lines.append(f"{winner.name}'s superior endurance made the difference.")
        else:
            lines.append(f"Set {number}: A solid set victory with {text}.")
            if winner.stats.get("agility", 0) > 65:
                lines.append(f"{winner.name}'s agility on the court was remarkable.")

    if winner.stats.get("serve", 0) > 60:
        lines.append(f"{winner.name}'s serves were particularly effective.")
    if winner.stats.get("defense", 0) > 65:
        lines.append(f"Some impressive defense shots from {winner.name}.")

    for player, injury in injuries or []:
        lines.append(
            f"During the match, {player.name} suffered a {_SEVERITY_TEXT[injury.severity]} {injury.type}."
        )

    if len(sets) == 2:
        lines.append(f"{winner.name} secured a straight-sets victory.")
    else:
        lines.append(f"{winner.name} emerged victorious in a full three-set match.")
    return lines
