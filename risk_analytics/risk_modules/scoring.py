"""
Risk Model Registry — Composite Scoring
=======================================
Implements:
  - Weighted composite score Σ wᵢ · factorᵢ per model
  - Methodology adjustments: FAIR, Monte Carlo, VaR, RCSA, Tiered, Scenario Analysis
  - Cycle-over-cycle score trend
  - Side-effect-free evaluation for what-if analyses

Methodology adjustments are deterministic by default. FAIR and Tiered
draw their multiplier at random only when ``stochastic_adjustments`` is
enabled; Monte Carlo always samples, from the generator handed in.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Mapping, Optional

import numpy as np
from scipy.stats import norm

from risk_analytics.config import (
    EngineConfig,
    RiskModelParams,
    FAIR,
    MONTE_CARLO,
    VALUE_AT_RISK,
    RCSA,
    TIERED,
    SCENARIO_ANALYSIS,
    SCORE_TREND_THRESHOLD,
    TREND_DECREASING,
    TREND_INCREASING,
    TREND_STABLE,
    Z_SCORES,
)
from risk_analytics.engine.factors import RiskFactorStore, finite_or_zero, utc_now
from risk_analytics.exceptions import (
    ConfigurationError,
    DataQualityWarning,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def z_score(confidence: float) -> float:
    """
    One-sided standard normal quantile.

    Uses the rounded table values for 90/95/99 % and the exact inverse
    CDF for anything else.
    """
    for level, z in Z_SCORES.items():
        if math.isclose(level, confidence, abs_tol=1e-9):
            return z
    if not 0.0 < confidence < 1.0:
        raise ConfigurationError(f"confidence must be in (0, 1), got {confidence}")
    return float(norm.ppf(confidence))


def score_trend(previous: float, current: float,
                threshold: float = SCORE_TREND_THRESHOLD) -> str:
    if current > previous + threshold:
        return TREND_INCREASING
    if current < previous - threshold:
        return TREND_DECREASING
    return TREND_STABLE


@dataclass
class RiskModel:
    """A model definition plus its derived, per-cycle state."""
    params: RiskModelParams
    current_score: float = 0.0
    trend: str = TREND_STABLE
    last_calculation: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.params.id

    @property
    def name(self) -> str:
        return self.params.name

    @property
    def methodology(self) -> str:
        return self.params.methodology

    @property
    def confidence(self) -> float:
        return self.params.confidence

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "domain": self.params.domain,
            "methodology": self.methodology,
            "score": self.current_score,
            "trend": self.trend,
            "confidence": self.confidence,
            "last_calculation": (self.last_calculation.isoformat()
                                 if self.last_calculation else None),
        }


# ═══════════════════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════════════════

class RiskModelRegistry:
    """
    Scores every registered model against the factor store.

    Models are independent of each other, so ``compute_all`` is
    insensitive to registration order.
    """

    def __init__(
        self,
        factors: RiskFactorStore,
        config: Optional[EngineConfig] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.factors = factors
        self.config = config or EngineConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.sampling_seed)
        self.clock = clock
        self._models: Dict[str, RiskModel] = {}

    # ── Catalog ──────────────────────────────────────────────────────────

    def register(self, params: RiskModelParams) -> RiskModel:
        model = RiskModel(params=params)
        self._models[params.id] = model
        return model

    def register_all(self, params: Iterable[RiskModelParams]) -> None:
        for p in params:
            self.register(p)
        logger.info("Configured %d risk assessment models", len(self._models))

    def get(self, model_id: str) -> RiskModel:
        try:
            return self._models[model_id]
        except KeyError:
            raise NotFoundError("risk model", model_id) from None

    def get_all(self) -> List[RiskModel]:
        return list(self._models.values())

    def ids(self) -> List[str]:
        return list(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def scores(self) -> Dict[str, float]:
        """Committed scores from the last cycle."""
        return {mid: m.current_score for mid, m in self._models.items()}

    # ── Core Scoring ─────────────────────────────────────────────────────

    def weighted_score(self, params: RiskModelParams,
                       values: Optional[Mapping[str, float]] = None) -> float:
        """
        Σ weight · factor value. A factor missing from the store
        contributes 0 and raises a DataQualityWarning.
        """
        if values is None:
            values = self.factors.values()
        total = 0.0
        for factor_id, weight in params.weights.items():
            value = values.get(factor_id)
            if value is None:
                logger.warning("Model %s references unknown factor %s",
                               params.id, factor_id)
                warnings.warn(
                    f"Model {params.id} references unknown factor {factor_id}; "
                    f"it contributes 0",
                    DataQualityWarning,
                    stacklevel=2,
                )
                continue
            total += weight * value
        return total

    def apply_methodology(self, base_score: float, params: RiskModelParams,
                          rng: Optional[np.random.Generator] = None) -> float:
        """Adjust a raw weighted score according to the model's methodology."""
        cfg = self.config
        rng = rng if rng is not None else self.rng
        method = params.methodology

        if method == FAIR:
            b = cfg.fair_bound
            if cfg.stochastic_adjustments:
                return base_score * rng.uniform(1 - b, 1 + b)
            # Higher-confidence models lean to the top of the ± band
            return base_score * (1 - b + 2 * b * params.confidence)
        if method == MONTE_CARLO:
            return self.monte_carlo_adjustment(base_score, rng)
        if method == VALUE_AT_RISK:
            return base_score * (1 + self.var_adjustment())
        if method == RCSA:
            return base_score * cfg.rcsa_discount
        if method == TIERED:
            lo, hi = cfg.tiered_range
            if cfg.stochastic_adjustments:
                return base_score * rng.uniform(lo, hi)
            return base_score * (lo + (hi - lo) * params.confidence)
        if method == SCENARIO_ANALYSIS:
            return self.scenario_adjustment(base_score, params)
        logger.debug("Model %s: no adjustment for methodology %r", params.id, method)
        return base_score

    def monte_carlo_adjustment(self, base_score: float,
                               rng: Optional[np.random.Generator] = None,
                               n_draws: Optional[int] = None) -> float:
        """
        Average of N log-normal multiplicative shocks with mean 1.

        ln(m) ~ N(−σ²/2, σ²)  ⇒  E[m] = 1
        """
        rng = rng if rng is not None else self.rng
        n = n_draws or self.config.monte_carlo_draws
        sigma = self.config.monte_carlo_sigma
        multipliers = rng.lognormal(mean=-0.5 * sigma ** 2, sigma=sigma, size=n)
        return float(base_score * multipliers.mean())

    def var_adjustment(self) -> float:
        """σ · √(horizon / 365) · z(confidence)."""
        cfg = self.config
        horizon_vol = cfg.var_volatility * math.sqrt(cfg.var_horizon_days / 365.0)
        return horizon_vol * z_score(cfg.var_confidence)

    @staticmethod
    def scenario_adjustment(base_score: float, params: RiskModelParams) -> float:
        """Probability-weighted score across the model's scenario set."""
        if not params.scenarios:
            return base_score
        return sum(s.probability * base_score * s.impact_multiplier
                   for s in params.scenarios)

    def _score(self, params: RiskModelParams, values: Mapping[str, float],
               rng: np.random.Generator) -> float:
        base = self.weighted_score(params, values)
        adjusted = self.apply_methodology(base, params, rng)
        return finite_or_zero(float(adjusted), f"Model {params.id} score")

    # ── Committing ───────────────────────────────────────────────────────

    def compute_score(self, model_id: str) -> float:
        """Recompute one model and commit its score, trend and timestamp."""
        model = self.get(model_id)
        score = self._score(model.params, self.factors.values(), self.rng)
        self._commit(model, score, self.clock())
        return score

    def compute_all(self) -> Dict[str, float]:
        """Recompute and commit every model against one read of the factors."""
        values = self.factors.values()
        now = self.clock()
        scores = {}
        for model in self._models.values():
            score = self._score(model.params, values, self.rng)
            self._commit(model, score, now)
            scores[model.id] = score
        logger.debug("Recomputed %d model scores", len(scores))
        return scores

    @staticmethod
    def _commit(model: RiskModel, score: float, now: datetime) -> None:
        # First calculation has nothing to compare against
        if model.last_calculation is None:
            model.trend = TREND_STABLE
        else:
            model.trend = score_trend(model.current_score, score)
        model.current_score = score
        model.last_calculation = now

    # ── What-if ──────────────────────────────────────────────────────────

    def evaluate(self, rng: Optional[np.random.Generator] = None) -> Dict[str, float]:
        """
        Score every model against the current factor values without
        committing anything. Callers pass a freshly seeded generator to
        get common random numbers across evaluations.
        """
        rng = rng if rng is not None else self.rng
        values = self.factors.values()
        return {model.id: self._score(model.params, values, rng)
                for model in self._models.values()}

    def to_dicts(self) -> List[Dict]:
        return [m.to_dict() for m in self._models.values()]
