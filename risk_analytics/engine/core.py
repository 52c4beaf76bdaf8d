"""
Risk Analytics Engine
=====================
Owns every registry and snapshot, runs the recomputation cycle and
exposes the read API consumed by the reporting layer.

Cycle stages, in dependency order:
  1. factors        — evolve every risk factor one step
  2. scores         — recompute every model score
  3. correlation    — pairwise factor correlation
  4. predictions    — one forecast per predictive model
  5. executive      — asset risk levels, business impact, executive metrics
  6. quantitative   — VaR, EL/UL, sensitivity and stress tests

A failing stage is logged and the cycle carries on with whatever the
earlier stages produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from risk_analytics.config import (
    BusinessAssetParams,
    DEFAULT_ASSETS,
    DEFAULT_FACTORS,
    DEFAULT_MODELS,
    DEFAULT_PREDICTIVE_MODELS,
    DEFAULT_STRESS_SCENARIOS,
    EngineConfig,
    FactorSeed,
    PredictiveModelParams,
    RiskModelParams,
    StressScenario,
)
from risk_analytics.engine.events import (
    CORRELATION_UPDATED,
    ENGINE_STARTED,
    ENGINE_STOPPED,
    EXECUTIVE_METRICS_UPDATED,
    FACTORS_UPDATED,
    PREDICTIONS_GENERATED,
    QUANTITATIVE_ANALYSIS_UPDATED,
    SCORES_UPDATED,
    EventBus,
    Handler,
)
from risk_analytics.engine.factors import RiskFactorStore, utc_now
from risk_analytics.engine.random_source import RandomSource
from risk_analytics.engine.scheduler import CycleScheduler
from risk_analytics.exceptions import RiskAnalyticsError
from risk_analytics.forecasting import PredictiveEngine
from risk_analytics.risk_modules.business_impact import BusinessImpactCalculator
from risk_analytics.risk_modules.correlation import CorrelationAnalyzer
from risk_analytics.risk_modules.executive import ExecutiveReportAggregator
from risk_analytics.risk_modules.scoring import RiskModelRegistry
from risk_analytics.stress_testing import QuantitativeRiskAnalyzer

logger = logging.getLogger(__name__)


STAGES = ("factors", "scores", "correlation", "predictions", "executive", "quantitative")


@dataclass
class CycleReport:
    """What one recomputation cycle managed to do."""
    cycle: int
    started_at: datetime
    completed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class RiskAnalyticsEngine:
    """
    One engine instance = one independent set of factors, models,
    assets and snapshots. Nothing is shared between instances.

    >>> engine = RiskAnalyticsEngine(EngineConfig(sampling_seed=7))
    >>> engine.initialize()
    >>> engine.run_cycle()
    >>> engine.get_risk_overview()["overall_score"]
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        random_source: Optional[RandomSource] = None,
        clock: Callable[[], datetime] = utc_now,
        factors: Optional[Sequence[FactorSeed]] = None,
        models: Optional[Sequence[RiskModelParams]] = None,
        assets: Optional[Sequence[BusinessAssetParams]] = None,
        predictive_models: Optional[Sequence[PredictiveModelParams]] = None,
        stress_scenarios: Optional[Sequence[StressScenario]] = None,
    ):
        self.config = config or EngineConfig()
        self.clock = clock
        self.events = EventBus()

        self._factor_seeds = list(DEFAULT_FACTORS if factors is None else factors)
        self._model_params = list(DEFAULT_MODELS if models is None else models)
        self._asset_params = list(DEFAULT_ASSETS if assets is None else assets)
        self._predictive_params = list(
            DEFAULT_PREDICTIVE_MODELS if predictive_models is None else predictive_models
        )

        # Scoring and forecasting sample from independent streams of one seed
        scoring_seq, forecast_seq = np.random.SeedSequence(self.config.sampling_seed).spawn(2)

        self.factors = RiskFactorStore(self.config.history_capacity, random_source, clock)
        self.registry = RiskModelRegistry(
            self.factors, self.config, rng=np.random.default_rng(scoring_seq), clock=clock
        )
        self.correlation = CorrelationAnalyzer(self.factors)
        self.impact = BusinessImpactCalculator(clock)
        self.executive = ExecutiveReportAggregator(self.registry, self.config, clock)
        self.predictive = PredictiveEngine(
            self.factors, self.config, rng=np.random.default_rng(forecast_seq), clock=clock
        )
        self.quantitative = QuantitativeRiskAnalyzer(
            self.factors, self.registry, self.impact, self.config,
            scenarios=DEFAULT_STRESS_SCENARIOS if stress_scenarios is None else stress_scenarios,
            clock=clock,
        )
        self.scheduler = CycleScheduler(self._run_stages, self.config.cycle_period_seconds)

        self.is_initialized = False
        self.is_running = False
        self.cycle_count = 0
        self.last_report: Optional[CycleReport] = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def initialize(self, start: bool = False) -> "RiskAnalyticsEngine":
        """
        Seed factors, models, assets and forecast models. With ``start``
        the periodic scheduler is launched as well.
        """
        if self.is_initialized:
            logger.debug("Engine already initialized")
        else:
            logger.info("Initializing risk analytics engine")
            self.factors.seed(self._factor_seeds)
            self.registry.register_all(self._model_params)
            self.impact.register_all(self._asset_params)
            self.predictive.register_all(self._predictive_params)
            self.is_initialized = True
            self.is_running = True
            self.events.publish(ENGINE_STARTED, {"cycle_period": self.config.cycle_period_seconds})
            logger.info("Risk analytics engine initialized")
        if start:
            self.start()
        return self

    def start(self, period: Optional[float] = None) -> None:
        if not self.is_initialized:
            self.initialize()
        if period is not None:
            self.scheduler.period_seconds = period
        self.is_running = True
        self.scheduler.start()

    def stop(self) -> None:
        """Halt the periodic cycle; a cycle already running completes."""
        self.scheduler.stop()
        was_running = self.is_running
        self.is_running = False
        if was_running:
            self.events.publish(ENGINE_STOPPED, {"cycles": self.cycle_count})

    def trigger(self) -> bool:
        """Run one cycle through the scheduler's non-reentrancy guard."""
        return self.scheduler.trigger()

    # ── Cycle ────────────────────────────────────────────────────────────

    def run_cycle(self) -> Optional[CycleReport]:
        """
        Run every stage once, in order, on the calling thread.

        Shares the scheduler's non-reentrancy guard: while another cycle
        is in flight the call is skipped, counted in
        ``scheduler.cycles_skipped`` and returns None.
        """
        if not self.is_initialized:
            raise RiskAnalyticsError("Engine not initialized; call initialize() first")

        reports: List[CycleReport] = []
        if not self.scheduler.trigger(lambda: reports.append(self._run_stages())):
            logger.warning("Cycle already in progress; run_cycle skipped")
            return None
        return reports[0] if reports else None

    def _run_stages(self) -> CycleReport:
        self.cycle_count += 1
        report = CycleReport(cycle=self.cycle_count, started_at=self.clock())
        for name in STAGES:
            try:
                getattr(self, f"_update_{name}")()
            except Exception as exc:
                logger.exception("Cycle %d: stage %s failed", report.cycle, name)
                report.failed[name] = f"{type(exc).__name__}: {exc}"
                continue
            report.completed.append(name)

        self.last_report = report
        logger.debug("Cycle %d complete (%d/%d stages)",
                     report.cycle, len(report.completed), len(STAGES))
        return report

    def _update_factors(self) -> None:
        self.factors.update_all()
        self.events.publish(FACTORS_UPDATED, self.factors.to_dicts())

    def _update_scores(self) -> None:
        self.registry.compute_all()
        self.events.publish(SCORES_UPDATED, self.registry.to_dicts())

    def _update_correlation(self) -> None:
        self.correlation.analyze()
        self.events.publish(CORRELATION_UPDATED, self.correlation.ranked())

    def _update_predictions(self) -> None:
        overall = self.executive.overall_risk_score()
        self.predictive.generate_all(overall, list(self.executive.risk_trends))
        self.events.publish(PREDICTIONS_GENERATED, self.predictive.to_dicts())

    def _update_executive(self) -> None:
        overall = self.executive.overall_risk_score()
        self.impact.update_risk_levels(overall)
        metrics = self.executive.update(self.impact.total_business_impact())
        self.events.publish(EXECUTIVE_METRICS_UPDATED, metrics.to_dict())

    def _update_quantitative(self) -> None:
        analysis = self.quantitative.analyze()
        self.events.publish(QUANTITATIVE_ANALYSIS_UPDATED, analysis.to_dict())

    # ── Observers ────────────────────────────────────────────────────────

    def subscribe(self, event: str, handler: Handler) -> None:
        self.events.subscribe(event, handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        self.events.unsubscribe(event, handler)

    # ── Public API ───────────────────────────────────────────────────────

    def get_risk_overview(self) -> Dict[str, Any]:
        metrics = self.executive.metrics
        return {
            "overall_score": self.executive.overall_risk_score(),
            "models": self.registry.to_dicts(),
            "executive_metrics": metrics.to_dict() if metrics else {},
            "business_impact": self.impact.total_business_impact().to_dict(),
        }

    def get_risk_factors(self) -> List[Dict]:
        return self.factors.to_dicts()

    def get_predictive_analysis(self) -> Dict[str, Any]:
        analysis = self.quantitative.analysis
        return {
            "models": self.predictive.to_dicts(),
            "quantitative_analysis": analysis.to_dict() if analysis else {},
        }

    def get_business_assets(self) -> List[Dict]:
        return self.impact.to_dicts()

    def get_correlation_analysis(self) -> List[Dict]:
        return self.correlation.ranked()

    def get_risk_model(self, model_id: str) -> Dict:
        return self.registry.get(model_id).to_dict()

    def get_factor_history(self, factor_id: str, n: Optional[int] = None) -> List[Dict]:
        return [{"timestamp": p.timestamp.isoformat(), "value": p.value}
                for p in self.factors.get_history(factor_id, n)]
