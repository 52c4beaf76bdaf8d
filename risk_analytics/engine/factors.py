"""
Risk Factor Store
=================
Catalog of primitive risk indicators with bounded history.

Implements:
  - Synthetic evolution of each factor along its trend and volatility
  - Fixed-capacity history ring (oldest points evicted first)
  - Scoped perturbation with guaranteed restoration for what-if analyses
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from risk_analytics.config import (
    FactorSeed,
    TREND_DECREASING,
    TREND_IMPROVING,
    TREND_INCREASING,
)
from risk_analytics.engine.random_source import RandomSource, SeededRandomSource
from risk_analytics.exceptions import ComputationError, NotFoundError, RestorationFailure

logger = logging.getLogger(__name__)

Override = Union[float, Callable[[float], float]]


def finite_or_zero(value: float, context: str) -> float:
    """Resolve NaN/inf to 0 at the computation site."""
    if math.isfinite(value):
        return value
    logger.warning("%s", ComputationError(f"{context} produced {value}; using 0"))
    return 0.0


def clamp(value: float, lo: float = 0.0, hi: float = 1.0, context: str = "value") -> float:
    """Clip to [lo, hi]; NaN and inf resolve to 0 first."""
    return max(lo, min(hi, finite_or_zero(float(value), context)))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HistoryPoint:
    timestamp: datetime
    value: float


@dataclass
class RiskFactor:
    """One risk driver and its recent history."""
    id: str
    category: str
    value: float
    trend: str
    volatility: float
    history: Deque[HistoryPoint]
    correlation: Dict[str, float] = field(default_factory=dict)
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "category": self.category,
            "value": self.value,
            "trend": self.trend,
            "volatility": self.volatility,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    def snapshot(self) -> "RiskFactor":
        return replace(
            self,
            history=deque(self.history, maxlen=self.history.maxlen),
            correlation=dict(self.correlation),
        )


# ═══════════════════════════════════════════════════════════════════════════════
#  Store
# ═══════════════════════════════════════════════════════════════════════════════

class RiskFactorStore:
    """
    Owns every RiskFactor. All reads and writes go through a re-entrant
    lock, which a perturbation holds for its whole window so readers on
    other threads never see an overridden value.
    """

    def __init__(
        self,
        capacity: int = 30,
        random_source: Optional[RandomSource] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.capacity = capacity
        self.random = random_source or SeededRandomSource()
        self.clock = clock
        self._factors: Dict[str, RiskFactor] = {}
        self._lock = threading.RLock()

    # ── Seeding ──────────────────────────────────────────────────────────

    def seed(self, seeds: Iterable[FactorSeed], backfill: bool = True) -> None:
        """
        Register factors from the monitoring layer.

        With ``backfill`` each history is pre-filled with ``capacity`` daily
        points scattered around the seed value so correlation analysis has
        data from the first cycle.
        """
        now = self.clock()
        with self._lock:
            for s in seeds:
                value = clamp(s.value, context=f"Factor {s.id}")
                history: Deque[HistoryPoint] = deque(maxlen=self.capacity)
                if backfill:
                    for days_ago in range(self.capacity - 1, -1, -1):
                        jitter = (self.random.uniform() - 0.5) * s.volatility * 0.5
                        history.append(HistoryPoint(
                            now - timedelta(days=days_ago), clamp(value + jitter)
                        ))
                self._factors[s.id] = RiskFactor(
                    id=s.id,
                    category=s.category,
                    value=value,
                    trend=s.trend,
                    volatility=s.volatility,
                    history=history,
                    last_updated=now,
                )
        logger.info("Configured %d risk factors", len(self._factors))

    # ── Evolution ────────────────────────────────────────────────────────

    def update(self, factor_id: str) -> float:
        """
        Evolve one factor a single step and append it to its history.

        Returns the new value. Raises NotFoundError for unknown ids.
        """
        with self._lock:
            factor = self._require(factor_id)
            volatility_change = (self.random.uniform() - 0.5) * factor.volatility * 0.1
            value = factor.value

            if factor.trend == TREND_INCREASING:
                value += self.random.uniform() * 0.02 + volatility_change
            elif factor.trend == TREND_DECREASING:
                value -= self.random.uniform() * 0.02 + volatility_change
            elif factor.trend == TREND_IMPROVING:
                value -= self.random.uniform() * 0.015 + volatility_change
            else:
                value += volatility_change

            self._record(factor, clamp(value, context=f"Factor {factor_id}"))
            return factor.value

    def update_all(self, factor_ids: Optional[Iterable[str]] = None) -> List[str]:
        """
        Update every factor (or the given ids). Unknown ids are logged and
        skipped. Returns the ids actually updated.
        """
        updated = []
        with self._lock:
            ids = list(factor_ids) if factor_ids is not None else list(self._factors)
            for factor_id in ids:
                try:
                    self.update(factor_id)
                except NotFoundError as exc:
                    logger.warning("Skipping factor update: %s", exc)
                    continue
                updated.append(factor_id)
        logger.debug("Updated %d risk factors", len(updated))
        return updated

    def set_value(self, factor_id: str, value: float) -> float:
        """Record an observed value in place of the synthetic step."""
        with self._lock:
            factor = self._require(factor_id)
            self._record(factor, clamp(value, context=f"Factor {factor_id}"))
            return factor.value

    def _record(self, factor: RiskFactor, value: float) -> None:
        now = self.clock()
        factor.value = value
        factor.history.append(HistoryPoint(now, value))
        factor.last_updated = now

    # ── Queries ──────────────────────────────────────────────────────────

    def _require(self, factor_id: str) -> RiskFactor:
        try:
            return self._factors[factor_id]
        except KeyError:
            raise NotFoundError("risk factor", factor_id) from None

    def __contains__(self, factor_id: str) -> bool:
        with self._lock:
            return factor_id in self._factors

    def __len__(self) -> int:
        with self._lock:
            return len(self._factors)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._factors)

    def get(self, factor_id: str) -> RiskFactor:
        """Detached copy of one factor as it stands now."""
        with self._lock:
            return self._require(factor_id).snapshot()

    def get_all(self) -> List[RiskFactor]:
        with self._lock:
            return [f.snapshot() for f in self._factors.values()]

    def value(self, factor_id: str) -> Optional[float]:
        """Current value, or None if the factor is unknown."""
        with self._lock:
            factor = self._factors.get(factor_id)
            return factor.value if factor is not None else None

    def values(self) -> Dict[str, float]:
        with self._lock:
            return {fid: f.value for fid, f in self._factors.items()}

    def get_history(self, factor_id: str, n: Optional[int] = None) -> List[HistoryPoint]:
        """Most recent ``n`` history points (all of them if n is None), oldest first."""
        with self._lock:
            history = list(self._require(factor_id).history)
        if n is None:
            return history
        return history[-n:] if n > 0 else []

    def history_values(self) -> Dict[str, List[float]]:
        with self._lock:
            return {fid: [p.value for p in f.history] for fid, f in self._factors.items()}

    def set_correlations(self, correlations: Mapping[str, Dict[str, float]]) -> None:
        with self._lock:
            for factor_id, row in correlations.items():
                if factor_id in self._factors:
                    self._factors[factor_id].correlation = dict(row)

    def to_dicts(self) -> List[Dict]:
        with self._lock:
            return [f.to_dict() for f in self._factors.values()]

    # ── Perturbation ─────────────────────────────────────────────────────

    @contextmanager
    def perturbation(self, overrides: Mapping[str, Override]) -> Iterator[Dict[str, float]]:
        """
        Temporarily override factor values.

        Holds the store lock for the whole window, snapshots the affected
        values, applies the (clamped) overrides and restores the originals
        on every exit path. History and timestamps are not touched.
        Unknown ids are skipped. Yields the originals that were replaced.

        An override is either a value or a callable of the current value,
        evaluated under the lock.

        >>> with store.perturbation({"threat_landscape": 0.95}):
        ...     registry.evaluate()
        >>> with store.perturbation({"threat_landscape": lambda v: v * 1.1}):
        ...     registry.evaluate()
        """
        with self._lock:
            originals: Dict[str, float] = {}
            try:
                for factor_id, override in overrides.items():
                    factor = self._factors.get(factor_id)
                    if factor is None:
                        logger.warning("Perturbation skips unknown factor %s", factor_id)
                        continue
                    if factor_id not in originals:
                        originals[factor_id] = factor.value
                    value = override(factor.value) if callable(override) else override
                    factor.value = clamp(value, context=f"Perturbation of {factor_id}")
                yield dict(originals)
            finally:
                for factor_id, value in originals.items():
                    self._factors[factor_id].value = value
                drifted = [fid for fid, value in originals.items()
                           if self._factors[fid].value != value]
                if drifted:
                    raise RestorationFailure(f"Factors not restored: {drifted}")
