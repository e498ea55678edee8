"""
Seeded RNG shared by the simulator, injury model and bracket shuffles.
One instance per tick; pass a seed to replay a tick exactly.
"""
from __future__ import annotations

import random
import string
from typing import Sequence, TypeVar

T = TypeVar("T")

_ID_ALPHABET = string.ascii_lowercase + string.digits


class SeededRNG:
    """Wrapper around random.Random for reproducible simulations."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)
        self._seed = seed

    @property
    def seed(self) -> int | None:
        return self._seed

    def random(self) -> float:
        return self._rng.random()

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def shuffled(self, seq: Sequence[T]) -> list[T]:
        """Fisher-Yates shuffle of a copy; the input is left untouched."""
        out = list(seq)
        self._rng.shuffle(out)
        return out

    def token(self, length: int = 9) -> str:
        return "".join(self._rng.choice(_ID_ALPHABET) for _ in range(length))
