"""
Seeded RNG for deterministic daily challenges and sample data.
"""
from __future__ import annotations

import random


class SeededRNG:
    """Wrapper around random.Random so every random draw can be injected and replayed."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)
        self._seed = seed

    @property
    def seed(self) -> int | None:
        return self._seed

    def random(self) -> float:
        return self._rng.random()

    def choice(self, seq):
        return self._rng.choice(seq)

    def sample(self, population, k: int) -> list:
        return self._rng.sample(population, k)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)

    def getstate(self):
        return self._rng.getstate()

    def setstate(self, state) -> None:
        self._rng.setstate(state)
