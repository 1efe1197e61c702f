import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from curlingsim import Owner, Stone


@dataclass(frozen=True)
class EndResult:
    winner: Optional[Owner]
    points: int
    counted: List[Tuple[float, Owner]] = field(default_factory=list)

    @property
    def scored(self) -> bool:
        return self.winner is not None and self.points > 0


def distance_to_button(stone: Stone, button: Tuple[float, float]) -> float:
    return math.hypot(stone.x - button[0], stone.y - button[1])


def in_house(stone: Stone, button: Tuple[float, float], house_radius: float) -> bool:
    return distance_to_button(stone, button) <= house_radius + stone.radius


def house_score(stones: Sequence[Stone], button: Tuple[float, float], house_radius: float) -> EndResult:
    """
    Score an end from the resting stones.

    Only stones touching the house count. The side with the stone closest to
    the button scores one point for each of its stones that is closer than the
    opponent's closest stone.
    """
    tagged = [(distance_to_button(s, button), s.owner) for s in stones if in_house(s, button, house_radius)]
    if not tagged:
        return EndResult(winner=None, points=0)

    # list.sort is stable: exact ties keep throw order
    tagged.sort(key=lambda t: t[0])
    winner = tagged[0][1]
    points = 0
    for _, owner in tagged:
        if owner is not winner:
            break
        points += 1
    return EndResult(winner=winner, points=points, counted=tagged)
