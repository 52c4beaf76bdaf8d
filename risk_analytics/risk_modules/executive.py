"""Executive risk reporting: overall score, threshold breaches, top risks, trend."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, Dict, List, Mapping, Optional, Tuple

from risk_analytics.config import (
    EngineConfig,
    SCORE_TREND_THRESHOLD,
    TREND_DECREASING,
    TREND_INCREASING,
    TREND_STABLE,
)
from risk_analytics.engine.factors import utc_now
from risk_analytics.risk_modules.business_impact import BusinessImpact
from risk_analytics.risk_modules.scoring import RiskModelRegistry

logger = logging.getLogger(__name__)


def mean_score(scores: Mapping[str, float]) -> float:
    if not scores:
        return 0.0
    return sum(scores.values()) / len(scores)


def rank_scores(scores: Mapping[str, float], n: int) -> List[Tuple[str, float]]:
    """Highest score first; equal scores ordered by model id."""
    ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return ranked[:max(n, 0)]


@dataclass(frozen=True)
class ExecutiveMetrics:
    """Snapshot rebuilt from scratch every cycle."""
    overall_risk_score: float
    risk_tolerance: float
    risk_appetite: float
    risk_exceeded: bool
    appetite_exceeded: bool
    top_risks: List[Dict] = field(default_factory=list)
    risk_trend: str = TREND_STABLE
    business_impact: Optional[BusinessImpact] = None
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "overall_risk_score": self.overall_risk_score,
            "risk_tolerance": self.risk_tolerance,
            "risk_appetite": self.risk_appetite,
            "risk_exceeded": self.risk_exceeded,
            "appetite_exceeded": self.appetite_exceeded,
            "top_risks": [dict(r) for r in self.top_risks],
            "risk_trend": self.risk_trend,
            "business_impact": self.business_impact.to_dict() if self.business_impact else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class ExecutiveReportAggregator:
    """Rolls model scores up into the executive view."""

    def __init__(
        self,
        registry: RiskModelRegistry,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.config = config or EngineConfig()
        self.clock = clock
        self.risk_trends: Deque[float] = deque(maxlen=self.config.trend_buffer_size)
        self.metrics: Optional[ExecutiveMetrics] = None

    def overall_risk_score(self) -> float:
        return mean_score(self.registry.scores())

    def top_risks(self, n: Optional[int] = None) -> List[Dict]:
        n = self.config.top_risks_count if n is None else n
        result = []
        for model_id, score in rank_scores(self.registry.scores(), n):
            model = self.registry.get(model_id)
            result.append({"id": model_id, "name": model.name,
                           "score": score, "trend": model.trend})
        return result

    def record_overall(self, score: float) -> None:
        self.risk_trends.append(score)

    def risk_trend(self) -> str:
        recent = list(self.risk_trends)[-self.config.trend_window:]
        if len(recent) < 2:
            return TREND_STABLE
        delta = recent[-1] - recent[0]
        if delta > SCORE_TREND_THRESHOLD:
            return TREND_INCREASING
        if delta < -SCORE_TREND_THRESHOLD:
            return TREND_DECREASING
        return TREND_STABLE

    def update(self, business_impact: Optional[BusinessImpact] = None) -> ExecutiveMetrics:
        """
        Rebuild the snapshot from the committed model scores and push
        the overall score onto the trend buffer.
        """
        cfg = self.config
        overall = self.overall_risk_score()
        self.record_overall(overall)
        self.metrics = ExecutiveMetrics(
            overall_risk_score=overall,
            risk_tolerance=cfg.risk_tolerance,
            risk_appetite=cfg.risk_appetite,
            risk_exceeded=overall > cfg.risk_tolerance,
            appetite_exceeded=overall > cfg.risk_appetite,
            top_risks=self.top_risks(),
            risk_trend=self.risk_trend(),
            business_impact=business_impact,
            last_updated=self.clock(),
        )
        if self.metrics.risk_exceeded:
            logger.warning("Overall risk %.3f exceeds tolerance %.2f",
                           overall, cfg.risk_tolerance)
        return self.metrics
