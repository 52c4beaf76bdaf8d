"""
Predictive Risk Engine
======================
Implements one forecast per predictive model per cycle, by archetype:
  - Time series      : linear trend over recent overall scores + weekly
                       seasonality + bounded noise
  - Ensemble         : mean of many weak threshold estimators over factors
  - Monte Carlo      : high percentile of randomised multiplicative draws
                       on the overall score (tail risk, not central tendency)
  - Bayesian         : single-step posterior from summary statistics

The Bayesian archetype is an approximation: it treats the mean factor
level as the likelihood of an adverse outcome and applies Bayes' rule
once against a fixed prior. There is no sequential belief updating.
"""

from __future__ import annotations

import logging
import math
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, Iterable, List, Optional, Sequence

import numpy as np
from scipy.stats import linregress

from risk_analytics.config import (
    EngineConfig,
    PredictiveModelParams,
    TIME_SERIES,
    ENSEMBLE,
    MONTE_CARLO_PERCENTILE,
    BAYESIAN,
)
from risk_analytics.engine.factors import RiskFactorStore, clamp, utc_now
from risk_analytics.exceptions import NotFoundError

logger = logging.getLogger(__name__)


SEASONALITY_AMPLITUDE = 0.05
SEASONALITY_PERIOD = timedelta(days=7)
TIME_SERIES_NOISE = 0.05
ENSEMBLE_HIGH, ENSEMBLE_LOW, ENSEMBLE_STEP = 0.7, 0.3, 0.1
ENSEMBLE_NOISE = 0.1
MONTE_CARLO_MULTIPLIER_RANGE = (0.5, 2.5)

_HORIZON_UNITS = {
    "day": timedelta(days=1),
    "days": timedelta(days=1),
    "hour": timedelta(hours=1),
    "hours": timedelta(hours=1),
    "minute": timedelta(minutes=1),
    "minutes": timedelta(minutes=1),
}


def parse_horizon(horizon: str) -> timedelta:
    """'90 days' → timedelta(days=90). Anything unparseable is one day."""
    match = re.match(r"\s*(\d+)\s*(\w+)", horizon or "")
    if not match:
        return timedelta(days=1)
    unit = _HORIZON_UNITS.get(match.group(2).lower())
    if unit is None:
        return timedelta(days=1)
    return int(match.group(1)) * unit


@dataclass(frozen=True)
class Prediction:
    timestamp: datetime
    prediction_date: datetime
    value: float
    confidence: float
    algorithm: str

    def to_dict(self) -> Dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "prediction_date": self.prediction_date.isoformat(),
            "value": self.value,
            "confidence": self.confidence,
            "algorithm": self.algorithm,
        }


@dataclass
class PredictiveModel:
    params: PredictiveModelParams
    predictions: Deque[Prediction] = field(default_factory=deque)
    last_training: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.params.id

    @property
    def confidence(self) -> float:
        return self.params.accuracy

    @property
    def latest(self) -> Optional[Prediction]:
        return self.predictions[-1] if self.predictions else None

    def to_dict(self) -> Dict:
        p = self.params
        latest = self.latest
        return {
            "id": p.id,
            "name": p.name,
            "algorithm": p.algorithm,
            "accuracy": p.accuracy,
            "prediction_horizon": p.prediction_horizon,
            "latest_prediction": latest.to_dict() if latest else None,
        }


# ═══════════════════════════════════════════════════════════════════════════════
#  Predictive Engine
# ═══════════════════════════════════════════════════════════════════════════════

class PredictiveEngine:
    """Runs every registered forecast model against the current state."""

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
        self._models: Dict[str, PredictiveModel] = {}

    # ── Catalog ──────────────────────────────────────────────────────────

    def register_all(self, params: Iterable[PredictiveModelParams]) -> None:
        now = self.clock()
        for p in params:
            self._models[p.id] = PredictiveModel(
                params=p,
                predictions=deque(maxlen=self.config.prediction_buffer_size),
                last_training=now,
            )
        logger.info("Initialized %d predictive models", len(self._models))

    def get(self, model_id: str) -> PredictiveModel:
        try:
            return self._models[model_id]
        except KeyError:
            raise NotFoundError("predictive model", model_id) from None

    def get_all(self) -> List[PredictiveModel]:
        return list(self._models.values())

    # ── Inputs ───────────────────────────────────────────────────────────

    def _factor_values(self, params: PredictiveModelParams) -> np.ndarray:
        values = self.factors.values()
        if params.factor_ids is None:
            selected = list(values.values())
        else:
            selected = [values[fid] for fid in params.factor_ids if fid in values]
        return np.asarray(selected, dtype=float)

    # ── Algorithms ───────────────────────────────────────────────────────

    def time_series_forecast(self, overall_score: float,
                             history: Sequence[float]) -> float:
        """
        Least-squares line through the recent overall scores, extrapolated
        one step, plus weekly seasonality and uniform noise.
        """
        data = list(history)[-self.config.trend_buffer_size:]
        if len(data) >= 2:
            fit = linregress(np.arange(len(data), dtype=float), np.asarray(data, dtype=float))
            level = fit.intercept + fit.slope * len(data)
        else:
            level = overall_score
        phase = self.clock().timestamp() / SEASONALITY_PERIOD.total_seconds()
        seasonality = SEASONALITY_AMPLITUDE * math.sin(2 * math.pi * phase)
        noise = self.rng.uniform(-TIME_SERIES_NOISE, TIME_SERIES_NOISE)
        return clamp(float(level + seasonality + noise))

    def ensemble_forecast(self, params: PredictiveModelParams) -> float:
        """
        Mean of N weak estimators. Each starts from 0.5, moves one step per
        factor above/below the thresholds, and adds its own noise.
        """
        values = self._factor_values(params)
        nudge = ENSEMBLE_STEP * (np.sum(values > ENSEMBLE_HIGH) - np.sum(values < ENSEMBLE_LOW))
        noise = self.rng.uniform(-ENSEMBLE_NOISE, ENSEMBLE_NOISE,
                                 size=self.config.ensemble_estimators)
        estimates = np.clip(0.5 + nudge + noise, 0.0, 1.0)
        return float(estimates.mean())

    def monte_carlo_forecast(self, overall_score: float) -> float:
        """High percentile of overall × U(0.5, 2.5), clipped to [0, 1]."""
        lo, hi = MONTE_CARLO_MULTIPLIER_RANGE
        draws = overall_score * self.rng.uniform(lo, hi, size=self.config.forecast_draws)
        outcomes = np.clip(draws, 0.0, 1.0)
        return float(np.percentile(outcomes, self.config.forecast_percentile))

    def bayesian_forecast(self, params: PredictiveModelParams) -> float:
        """P(adverse | evidence) with likelihood = mean factor level."""
        values = self._factor_values(params)
        likelihood = float(values.mean()) if values.size else 0.0
        prior = self.config.bayesian_prior
        evidence = likelihood * prior + (1 - likelihood) * (1 - prior)
        if evidence <= 0:
            return 0.0
        return clamp(likelihood * prior / evidence)

    # ── Orchestration ────────────────────────────────────────────────────

    def predict(self, model: PredictiveModel, overall_score: float,
                history: Sequence[float]) -> Prediction:
        params = model.params
        algorithm = params.algorithm
        if algorithm == TIME_SERIES:
            value = self.time_series_forecast(overall_score, history)
        elif algorithm == ENSEMBLE:
            value = self.ensemble_forecast(params)
        elif algorithm == MONTE_CARLO_PERCENTILE:
            value = self.monte_carlo_forecast(overall_score)
        elif algorithm == BAYESIAN:
            value = self.bayesian_forecast(params)
        else:
            logger.debug("Model %s: unknown algorithm %r, using overall score",
                         params.id, algorithm)
            value = clamp(overall_score)

        now = self.clock()
        return Prediction(
            timestamp=now,
            prediction_date=now + parse_horizon(params.prediction_horizon),
            value=value,
            confidence=model.confidence,
            algorithm=algorithm,
        )

    def generate_all(self, overall_score: float,
                     history: Sequence[float] = ()) -> Dict[str, Prediction]:
        """One prediction per model, appended to its rolling buffer."""
        results = {}
        for model in self._models.values():
            prediction = self.predict(model, overall_score, history)
            model.predictions.append(prediction)
            results[model.id] = prediction
        logger.debug("Generated %d predictions", len(results))
        return results

    def to_dicts(self) -> List[Dict]:
        return [m.to_dict() for m in self._models.values()]
