"""
Randomness for synthetic factor evolution.

Kept apart from the numpy generators used for statistical sampling
(Monte Carlo, ensemble noise) so factor paths can be pinned in tests
without touching the simulations, and vice versa.
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np


class RandomSource:
    """Uniform [0, 1) source consumed by the factor store."""

    def uniform(self) -> float:
        raise NotImplementedError


class SeededRandomSource(RandomSource):
    """numpy-backed source; the same seed reproduces the same factor paths."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def uniform(self) -> float:
        return float(self.rng.random())


class ConstantRandomSource(RandomSource):
    """Always returns ``value``. 0.5 cancels the volatility term entirely."""

    def __init__(self, value: float = 0.5):
        if not 0.0 <= value < 1.0:
            raise ValueError(f"value must be in [0, 1), got {value}")
        self.value = value

    def uniform(self) -> float:
        return self.value


class SequenceRandomSource(RandomSource):
    """Replays a fixed sequence, cycling when exhausted."""

    def __init__(self, values: Iterable[float]):
        self.values = [float(v) for v in values]
        if not self.values:
            raise ValueError("values must not be empty")
        self._pos = 0

    def uniform(self) -> float:
        value = self.values[self._pos % len(self.values)]
        self._pos += 1
        return value
