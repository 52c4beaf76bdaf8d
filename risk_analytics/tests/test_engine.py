"""
Test Suite for the Risk Analytics Engine components.
Covers the factor store, model scoring, correlation, forecasting,
business impact, executive reporting and quantitative analysis.
"""

import sys
import os
import math
import threading
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from risk_analytics.config import (
    BusinessAssetParams,
    DEFAULT_ASSETS,
    DEFAULT_FACTORS,
    DEFAULT_MODELS,
    DEFAULT_STRESS_SCENARIOS,
    EngineConfig,
    FactorSeed,
    ModelScenario,
    PredictiveModelParams,
    RiskModelParams,
    StressScenario,
    BAYESIAN,
    ENSEMBLE,
    FAIR,
    MONTE_CARLO,
    MONTE_CARLO_PERCENTILE,
    RCSA,
    SCENARIO_ANALYSIS,
    TIERED,
    TIME_SERIES,
    VALUE_AT_RISK,
    TREND_DECREASING,
    TREND_IMPROVING,
    TREND_INCREASING,
    TREND_STABLE,
)
from risk_analytics.engine.factors import RiskFactorStore, clamp
from risk_analytics.engine.random_source import (
    ConstantRandomSource,
    SeededRandomSource,
    SequenceRandomSource,
)
from risk_analytics.exceptions import (
    ConfigurationError,
    DataQualityWarning,
    NotFoundError,
)
from risk_analytics.forecasting import PredictiveEngine, parse_horizon
from risk_analytics.risk_modules.business_impact import (
    BusinessImpactCalculator,
    cost_breakdown,
)
from risk_analytics.risk_modules.correlation import (
    CorrelationAnalyzer,
    correlation_strength,
    pearson,
)
from risk_analytics.risk_modules.executive import (
    ExecutiveReportAggregator,
    mean_score,
    rank_scores,
)
from risk_analytics.risk_modules.scoring import RiskModelRegistry, z_score
from risk_analytics.stress_testing import QuantitativeRiskAnalyzer


T0 = datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)


def fixed_clock():
    return T0


def make_store(values, capacity=30, random_source=None):
    """Store of stable factors seeded without backfill, so values stay exact."""
    store = RiskFactorStore(capacity, random_source or ConstantRandomSource(0.5), fixed_clock)
    store.seed([FactorSeed(fid, "test", v, TREND_STABLE, 0.1) for fid, v in values.items()],
               backfill=False)
    return store


def model(methodology, weights=None, confidence=0.8, model_id="m", **kwargs):
    return RiskModelParams(
        id=model_id,
        name=model_id.upper(),
        domain="test",
        weights=weights or {"a": 0.30, "b": 0.25, "c": 0.25, "e": 0.20},
        methodology=methodology,
        confidence=confidence,
        **kwargs,
    )


@pytest.fixture
def values():
    return {"a": 0.9, "b": 0.2, "c": 0.5, "e": 0.6}


@pytest.fixture
def store(values):
    return make_store(values)


@pytest.fixture
def registry(store):
    return RiskModelRegistry(store, EngineConfig(), rng=np.random.default_rng(1), clock=fixed_clock)


@pytest.fixture
def default_store():
    store = RiskFactorStore(30, ConstantRandomSource(0.5), fixed_clock)
    store.seed(DEFAULT_FACTORS)
    return store


@pytest.fixture
def default_registry(default_store):
    registry = RiskModelRegistry(default_store, EngineConfig(),
                                 rng=np.random.default_rng(1), clock=fixed_clock)
    registry.register_all(DEFAULT_MODELS)
    return registry


BASE = 0.30 * 0.9 + 0.25 * 0.2 + 0.25 * 0.5 + 0.20 * 0.6


# ═══════════════════════════════════════════════════════════════════════════════
#  Configuration Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestConfiguration:
    def test_default_model_weights_sum_to_one(self):
        for params in DEFAULT_MODELS:
            assert abs(sum(params.weights.values()) - 1.0) < 1e-6, params.id

    def test_default_scenario_probabilities_sum_to_one(self):
        for params in DEFAULT_MODELS:
            assert abs(sum(s.probability for s in params.scenarios) - 1.0) < 1e-6

    def test_bad_weights_rejected(self):
        with pytest.raises(ConfigurationError):
            model(RCSA, weights={"a": 0.5, "b": 0.4})

    def test_bad_scenario_probabilities_rejected(self):
        with pytest.raises(ConfigurationError):
            model(SCENARIO_ANALYSIS, scenarios=[ModelScenario("x", 0.5, 1.0)])

    def test_unknown_factor_trend_rejected(self):
        with pytest.raises(ConfigurationError):
            FactorSeed("a", "test", 0.5, "sideways")

    def test_unknown_criticality_rejected(self):
        with pytest.raises(ConfigurationError):
            BusinessAssetParams("x", "X", "data", "extreme", 1.0)

    def test_engine_config_validation(self):
        with pytest.raises(ConfigurationError):
            EngineConfig(risk_tolerance=1.5)
        with pytest.raises(ConfigurationError):
            EngineConfig(tiered_range=(1.2, 0.8))

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            EngineConfig(history_capacity=1)


# ═══════════════════════════════════════════════════════════════════════════════
#  Risk Factor Store Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestRiskFactorStore:
    def test_seed_backfills_history(self, default_store):
        assert len(default_store) == len(DEFAULT_FACTORS)
        for fid in default_store.ids():
            assert len(default_store.get_history(fid)) == 30

    def test_backfill_leaves_current_value(self, default_store):
        assert default_store.value("threat_landscape") == 0.75

    def test_values_stay_in_unit_interval(self):
        store = RiskFactorStore(30, SeededRandomSource(3), fixed_clock)
        store.seed(DEFAULT_FACTORS)
        for _ in range(300):
            store.update_all()
            for v in store.values().values():
                assert 0.0 <= v <= 1.0

    def test_history_is_bounded_fifo(self):
        store = make_store({"a": 0.0}, capacity=5)
        for i in range(1, 8):
            store.set_value("a", i / 10)
        history = [p.value for p in store.get_history("a")]
        assert history == [0.3, 0.4, 0.5, 0.6, 0.7]

    def test_get_history_last_n(self):
        store = make_store({"a": 0.0})
        for i in range(1, 6):
            store.set_value("a", i / 10)
        assert [p.value for p in store.get_history("a", 2)] == [0.4, 0.5]
        assert store.get_history("a", 0) == []

    @pytest.mark.parametrize("trend,expected", [
        (TREND_INCREASING, 0.51),
        (TREND_DECREASING, 0.49),
        (TREND_IMPROVING, 0.4925),
        (TREND_STABLE, 0.50),
    ])
    def test_trend_step_with_neutral_randomness(self, trend, expected):
        store = RiskFactorStore(30, ConstantRandomSource(0.5), fixed_clock)
        store.seed([FactorSeed("a", "test", 0.5, trend, 0.2)], backfill=False)
        assert store.update("a") == pytest.approx(expected)

    def test_update_clamps_at_one(self):
        store = RiskFactorStore(30, ConstantRandomSource(0.99), fixed_clock)
        store.seed([FactorSeed("a", "test", 0.999, TREND_INCREASING, 0.3)], backfill=False)
        assert store.update("a") == 1.0

    def test_update_clamps_at_zero(self):
        store = RiskFactorStore(30, SequenceRandomSource([0.0, 0.99]), fixed_clock)
        store.seed([FactorSeed("a", "test", 0.001, TREND_DECREASING, 0.0)], backfill=False)
        assert store.update("a") == 0.0

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_observation_resolves_to_zero(self, store, bad):
        assert store.set_value("a", bad) == 0.0
        assert store.value("a") == 0.0
        assert store.get_history("a")[-1].value == 0.0

    def test_clamp_non_finite(self):
        assert clamp(float("nan")) == 0.0
        assert clamp(1.7) == 1.0

    def test_get_returns_detached_copy(self, store):
        factor = store.get("a")
        factor.value = 0.0
        factor.history.append(None)
        assert store.value("a") == 0.9
        assert len(store.get_history("a")) == 0

    def test_update_appends_history(self, store):
        before = len(store.get_history("a"))
        store.update("a")
        assert len(store.get_history("a")) == before + 1
        assert store.get("a").last_updated == T0

    def test_unknown_factor_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update("nope")
        with pytest.raises(KeyError):
            store.get_history("nope")
        assert store.value("nope") is None

    def test_update_all_skips_unknown(self, store):
        assert store.update_all(["a", "nope", "b"]) == ["a", "b"]

    def test_seeded_source_is_reproducible(self):
        paths = []
        for _ in range(2):
            store = RiskFactorStore(30, SeededRandomSource(99), fixed_clock)
            store.seed(DEFAULT_FACTORS)
            for _ in range(10):
                store.update_all()
            paths.append(store.history_values())
        assert paths[0] == paths[1]


class TestPerturbation:
    def test_override_visible_inside_and_restored(self, store):
        with store.perturbation({"a": 0.1, "b": 0.95}) as originals:
            assert store.value("a") == 0.1
            assert store.value("b") == 0.95
            assert originals == {"a": 0.9, "b": 0.2}
        assert store.value("a") == 0.9
        assert store.value("b") == 0.2

    def test_restored_on_exception(self, store):
        with pytest.raises(RuntimeError):
            with store.perturbation({"a": 0.0}):
                raise RuntimeError("analysis failed")
        assert store.value("a") == 0.9

    def test_overrides_are_clamped(self, store):
        with store.perturbation({"a": 1.4, "b": -0.2}):
            assert store.value("a") == 1.0
            assert store.value("b") == 0.0

    def test_non_finite_override_resolves_to_zero(self, store):
        with store.perturbation({"a": float("nan")}):
            assert store.value("a") == 0.0
        assert store.value("a") == 0.9

    def test_callable_override_applied_to_current_value(self, store):
        with store.perturbation({"a": lambda v: v / 3, "b": lambda v: v * 10}):
            assert store.value("a") == pytest.approx(0.3)
            assert store.value("b") == 1.0
        assert store.value("a") == 0.9
        assert store.value("b") == 0.2

    def test_copy_taken_before_window_keeps_value(self, store):
        before = store.get("a")
        with store.perturbation({"a": 0.1}):
            assert before.value == 0.9
            assert store.get("a").value == 0.1

    def test_unknown_ids_skipped(self, store):
        with store.perturbation({"nope": 0.5, "a": 0.3}) as originals:
            assert "nope" not in store
            assert list(originals) == ["a"]

    def test_history_untouched(self, store):
        before = store.history_values()
        with store.perturbation({"a": 0.1}):
            pass
        assert store.history_values() == before

    def test_other_threads_never_see_overrides(self, store):
        seen = []
        with store.perturbation({"a": 0.1}):
            reader = threading.Thread(target=lambda: seen.append(store.value("a")))
            reader.start()
            reader.join(0.2)
            assert reader.is_alive(), "reader should block while the perturbation holds the lock"
        reader.join(5)
        assert seen == [0.9]


# ═══════════════════════════════════════════════════════════════════════════════
#  Model Scoring Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestWeightedScore:
    def test_missing_factor_contributes_zero(self):
        store = make_store({"a": 0.9, "b": 0.2, "c": 0.5})
        registry = RiskModelRegistry(store, EngineConfig(), rng=np.random.default_rng(0))
        params = model(RCSA, weights={"a": 0.3, "b": 0.25, "c": 0.25, "d": 0.2})
        with pytest.warns(DataQualityWarning):
            score = registry.weighted_score(params)
        assert score == pytest.approx(0.445)

    def test_all_factors_present(self, registry):
        assert registry.weighted_score(model(RCSA)) == pytest.approx(BASE)


class TestMethodologies:
    def test_rcsa(self, registry):
        registry.register(model(RCSA))
        assert registry.compute_score("m") == pytest.approx(BASE * 0.95)

    def test_scenario_analysis_default_scenarios(self, registry):
        registry.register(model(SCENARIO_ANALYSIS))
        # 0.1 × 0.5 + 0.7 × 1.0 + 0.2 × 2.0 = 1.15
        assert registry.compute_score("m") == pytest.approx(BASE * 1.15)

    def test_scenario_analysis_custom_scenarios(self, registry):
        scenarios = [ModelScenario("calm", 0.5, 1.0), ModelScenario("storm", 0.5, 3.0)]
        registry.register(model(SCENARIO_ANALYSIS, scenarios=scenarios))
        assert registry.compute_score("m") == pytest.approx(BASE * 2.0)

    def test_value_at_risk(self, registry):
        registry.register(model(VALUE_AT_RISK))
        adjustment = 0.15 * math.sqrt(30 / 365) * 1.645
        assert registry.compute_score("m") == pytest.approx(BASE * (1 + adjustment))

    def test_fair_deterministic(self, registry):
        registry.register(model(FAIR, confidence=0.8))
        assert registry.compute_score("m") == pytest.approx(BASE * (0.9 + 0.2 * 0.8))

    def test_tiered_deterministic(self, registry):
        registry.register(model(TIERED, confidence=0.8))
        assert registry.compute_score("m") == pytest.approx(BASE * (0.85 + 0.30 * 0.8))

    @pytest.mark.parametrize("methodology", [RCSA, SCENARIO_ANALYSIS, FAIR, TIERED, VALUE_AT_RISK])
    def test_deterministic_methods_repeat_exactly(self, registry, methodology):
        registry.register(model(methodology))
        assert registry.compute_score("m") == registry.compute_score("m")

    def test_stochastic_fair_stays_in_band(self, store):
        cfg = EngineConfig(stochastic_adjustments=True)
        registry = RiskModelRegistry(store, cfg, rng=np.random.default_rng(5))
        registry.register(model(FAIR))
        for _ in range(200):
            assert BASE * 0.9 <= registry.compute_score("m") <= BASE * 1.1

    def test_stochastic_tiered_stays_in_band(self, store):
        cfg = EngineConfig(stochastic_adjustments=True)
        registry = RiskModelRegistry(store, cfg, rng=np.random.default_rng(5))
        registry.register(model(TIERED))
        for _ in range(200):
            assert BASE * 0.85 <= registry.compute_score("m") <= BASE * 1.15

    def test_unknown_methodology_leaves_base(self, registry):
        registry.register(model("Expert Judgement"))
        assert registry.compute_score("m") == pytest.approx(BASE)


class TestMonteCarlo:
    def test_mean_multiplier_is_one(self, registry):
        rng = np.random.default_rng(11)
        assert registry.monte_carlo_adjustment(1.0, rng, n_draws=200_000) == pytest.approx(1.0, abs=0.005)

    def test_variance_shrinks_with_more_draws(self, registry):
        rng = np.random.default_rng(12)
        few = [registry.monte_carlo_adjustment(1.0, rng, n_draws=10) for _ in range(300)]
        many = [registry.monte_carlo_adjustment(1.0, rng, n_draws=2_000) for _ in range(300)]
        assert np.var(many) < np.var(few) / 10

    def test_same_seed_same_score(self, registry):
        params = model(MONTE_CARLO)
        registry.register(params)
        first = registry.evaluate(np.random.default_rng(7))
        second = registry.evaluate(np.random.default_rng(7))
        assert first == second


class TestRiskModelRegistry:
    def test_first_calculation_is_stable(self, registry):
        registry.register(model(RCSA))
        registry.compute_score("m")
        assert registry.get("m").trend == TREND_STABLE
        assert registry.get("m").last_calculation == T0

    def test_trend_follows_score_moves(self, registry, store):
        registry.register(model(RCSA))
        registry.compute_score("m")
        store.set_value("b", 1.0)
        registry.compute_score("m")
        assert registry.get("m").trend == TREND_INCREASING
        store.set_value("b", 0.0)
        registry.compute_score("m")
        assert registry.get("m").trend == TREND_DECREASING
        registry.compute_score("m")
        assert registry.get("m").trend == TREND_STABLE

    def test_unknown_model_raises(self, registry):
        with pytest.raises(NotFoundError):
            registry.compute_score("nope")

    def test_evaluate_does_not_commit(self, registry, store):
        registry.register(model(RCSA))
        registry.compute_all()
        committed = registry.scores()
        store.set_value("a", 0.1)
        evaluated = registry.evaluate()
        assert evaluated["m"] != committed["m"]
        assert registry.scores() == committed

    def test_compute_all_insensitive_to_registration_order(self, store):
        catalog = [model(m, model_id=f"m{i}") for i, m in
                   enumerate([FAIR, VALUE_AT_RISK, RCSA, TIERED, SCENARIO_ANALYSIS])]
        forward = RiskModelRegistry(store, EngineConfig(), rng=np.random.default_rng(0))
        backward = RiskModelRegistry(store, EngineConfig(), rng=np.random.default_rng(0))
        forward.register_all(catalog)
        backward.register_all(reversed(catalog))
        assert forward.compute_all() == backward.compute_all()

    def test_default_catalog_scores(self, default_registry):
        with pytest.warns(DataQualityWarning):
            scores = default_registry.compute_all()
        assert set(scores) == {p.id for p in DEFAULT_MODELS}
        assert all(math.isfinite(s) and s >= 0 for s in scores.values())


class TestZScore:
    def test_table_values(self):
        assert z_score(0.95) == 1.645
        assert z_score(0.99) == 2.326
        assert z_score(0.90) == 1.282

    def test_inverse_cdf_fallback(self):
        assert z_score(0.975) == pytest.approx(1.95996, abs=1e-4)

    def test_out_of_range(self):
        with pytest.raises(ConfigurationError):
            z_score(1.0)


# ═══════════════════════════════════════════════════════════════════════════════
#  Correlation Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestPearson:
    def test_perfect_positive(self):
        assert pearson([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson([1, 2, 3, 4], [8, 6, 4, 2]) == pytest.approx(-1.0)

    def test_constant_series(self):
        assert pearson([0.5, 0.5, 0.5], [0.1, 0.2, 0.3]) == 0.0

    def test_length_mismatch(self):
        assert pearson([0.1, 0.2, 0.3], [0.1, 0.2]) == 0.0

    def test_single_point(self):
        assert pearson([0.1], [0.2]) == 0.0

    @pytest.mark.parametrize("r,label", [
        (0.8, "strong"), (-0.75, "strong"), (0.7, "moderate"),
        (0.5, "moderate"), (0.3, "weak"), (0.0, "weak"),
    ])
    def test_strength_bands(self, r, label):
        assert correlation_strength(r) == label


class TestCorrelationAnalyzer:
    @pytest.fixture
    def analyzer(self):
        store = RiskFactorStore(30, SeededRandomSource(21), fixed_clock)
        store.seed(DEFAULT_FACTORS)
        for _ in range(10):
            store.update_all()
        analyzer = CorrelationAnalyzer(store)
        analyzer.analyze()
        return analyzer

    def test_symmetric_and_no_self(self, analyzer):
        matrix = analyzer.matrix
        for a, row in matrix.items():
            assert a not in row
            for b, r in row.items():
                assert matrix[b][a] == r
                assert -1.0 <= r <= 1.0

    def test_every_pair_present(self, analyzer):
        n = len(DEFAULT_FACTORS)
        assert len(analyzer.ranked()) == n * (n - 1)

    def test_written_back_to_factors(self, analyzer):
        factor = analyzer.factors.get("threat_landscape")
        assert factor.correlation == analyzer.matrix["threat_landscape"]

    def test_ranked_strongest_first(self, analyzer):
        magnitudes = [abs(row["correlation"]) for row in analyzer.ranked()]
        assert magnitudes == sorted(magnitudes, reverse=True)

    def test_unequal_histories_give_zero(self):
        store = make_store({"a": 0.5, "b": 0.5})
        for v in (0.1, 0.2, 0.3):
            store.set_value("a", v)
        for v in (0.3, 0.1):
            store.set_value("b", v)
        analyzer = CorrelationAnalyzer(store)
        analyzer.analyze()
        assert analyzer.correlation("a", "b") == 0.0

    def test_frame_is_square_with_unit_diagonal(self, analyzer):
        frame = analyzer.to_frame()
        assert frame.shape == (len(DEFAULT_FACTORS), len(DEFAULT_FACTORS))
        np.testing.assert_allclose(np.diag(frame.values), 1.0)
        np.testing.assert_allclose(frame.values, frame.values.T)


# ═══════════════════════════════════════════════════════════════════════════════
#  Forecasting Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestParseHorizon:
    @pytest.mark.parametrize("text,expected", [
        ("90 days", timedelta(days=90)),
        ("1 day", timedelta(days=1)),
        ("12 hours", timedelta(hours=12)),
        ("45 minutes", timedelta(minutes=45)),
        ("soon", timedelta(days=1)),
        ("3 fortnights", timedelta(days=1)),
        ("", timedelta(days=1)),
    ])
    def test_parse(self, text, expected):
        assert parse_horizon(text) == expected


class TestPredictiveEngine:
    @pytest.fixture
    def high_store(self):
        return make_store({"a": 0.9, "b": 0.7, "c": 0.8})

    def engine(self, store, **cfg):
        return PredictiveEngine(store, EngineConfig(**cfg), rng=np.random.default_rng(4), clock=fixed_clock)

    def params(self, algorithm, horizon="30 days", factor_ids=None):
        return PredictiveModelParams("p", "P", algorithm, 0.8, horizon, factor_ids=factor_ids)

    def test_time_series_extrapolates_trend(self, high_store):
        engine = self.engine(high_store)
        value = engine.time_series_forecast(0.5, [0.1, 0.2, 0.3, 0.4, 0.5])
        assert 0.5 - 1e-9 <= value <= 0.7 + 1e-9

    def test_time_series_short_history_uses_overall(self, high_store):
        engine = self.engine(high_store)
        value = engine.time_series_forecast(0.4, [])
        assert 0.3 - 1e-9 <= value <= 0.5 + 1e-9

    def test_time_series_clamped(self, high_store):
        engine = self.engine(high_store)
        assert engine.time_series_forecast(0.9, [0.5, 0.7, 0.9]) <= 1.0

    def test_ensemble_high_factors(self, high_store):
        engine = self.engine(high_store)
        value = engine.ensemble_forecast(self.params(ENSEMBLE, factor_ids=["a", "b", "c"]))
        # Two factors above 0.7, none below 0.3
        assert value == pytest.approx(0.7, abs=0.03)

    def test_ensemble_low_factors(self):
        engine = self.engine(make_store({"a": 0.1, "b": 0.2, "c": 0.25}))
        value = engine.ensemble_forecast(self.params(ENSEMBLE))
        assert value == pytest.approx(0.2, abs=0.03)

    def test_monte_carlo_is_tail_percentile(self, high_store):
        engine = self.engine(high_store)
        # 95th percentile of 0.4 × U(0.5, 2.5) is 0.4 × 2.4
        assert engine.monte_carlo_forecast(0.4) == pytest.approx(0.96, abs=0.02)

    def test_monte_carlo_clipped(self, high_store):
        assert self.engine(high_store).monte_carlo_forecast(0.8) == 1.0

    def test_bayesian_even_prior(self, high_store):
        value = self.engine(high_store).bayesian_forecast(self.params(BAYESIAN))
        assert value == pytest.approx(0.8)

    def test_bayesian_custom_prior(self, high_store):
        value = self.engine(high_store, bayesian_prior=0.3).bayesian_forecast(self.params(BAYESIAN))
        assert value == pytest.approx(0.24 / 0.38)

    def test_bayesian_zero_evidence(self):
        engine = self.engine(make_store({"a": 1.0}), bayesian_prior=0.0)
        assert engine.bayesian_forecast(self.params(BAYESIAN)) == 0.0

    def test_buffer_bounded_and_dated(self, high_store):
        engine = self.engine(high_store)
        engine.register_all([
            PredictiveModelParams(f"p{i}", "P", alg, 0.8, horizon)
            for i, (alg, horizon) in enumerate([
                (TIME_SERIES, "90 days"), (ENSEMBLE, "30 days"),
                (MONTE_CARLO_PERCENTILE, "180 days"), (BAYESIAN, "12 hours"),
            ])
        ])
        for i in range(15):
            engine.generate_all(0.5, [0.4, 0.45, 0.5][: i % 4])
        for m in engine.get_all():
            assert len(m.predictions) == 10
            latest = m.latest
            assert 0.0 <= latest.value <= 1.0
            assert latest.prediction_date - latest.timestamp == parse_horizon(m.params.prediction_horizon)
            assert latest.confidence == 0.8

    def test_unknown_model_raises(self, high_store):
        with pytest.raises(NotFoundError):
            self.engine(high_store).get("nope")


# ═══════════════════════════════════════════════════════════════════════════════
#  Business Impact Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestBusinessImpact:
    @pytest.fixture
    def impact(self):
        calc = BusinessImpactCalculator(fixed_clock)
        calc.register_all(DEFAULT_ASSETS)
        return calc

    def test_cost_breakdown(self):
        costs = cost_breakdown(1_000_000)
        assert costs == pytest.approx({
            "direct_costs": 100_000,
            "indirect_costs": 50_000,
            "opportunity_costs": 30_000,
            "regulatory_fines": 20_000,
            "reputation_damage": 80_000,
        })

    def test_total_asset_value(self, impact):
        assert impact.total_asset_value() == 455_000_000

    def test_no_exposure_before_assessment(self, impact):
        result = impact.total_business_impact()
        assert result.potential_loss == 0.0
        assert result.risk_percentage == 0.0

    def test_risk_levels_scale_with_criticality(self, impact):
        impact.update_risk_levels(0.5)
        assert impact.get("customer_data").current_risk_level == pytest.approx(0.75)
        assert impact.get("brand_reputation").current_risk_level == pytest.approx(0.6)
        assert impact.get("employee_data").current_risk_level == pytest.approx(0.5)

    def test_risk_levels_clamped(self, impact):
        impact.update_risk_levels(0.9)
        assert impact.get("payment_systems").current_risk_level == 1.0

    def test_potential_loss(self, impact):
        impact.update_risk_levels(0.5)
        result = impact.total_business_impact()
        expected = 225_000_000 * 0.75 + 225_000_000 * 0.6 + 5_000_000 * 0.5
        assert result.potential_loss == pytest.approx(expected)
        assert result.risk_percentage == pytest.approx(expected / 455_000_000 * 100)

    def test_empty_catalog(self):
        result = BusinessImpactCalculator().total_business_impact()
        assert result.total_asset_value == 0.0
        assert result.risk_percentage == 0.0

    def test_unknown_asset_raises(self, impact):
        with pytest.raises(NotFoundError):
            impact.get("nope")


# ═══════════════════════════════════════════════════════════════════════════════
#  Executive Reporting Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestExecutiveReporting:
    @pytest.fixture
    def aggregator(self, registry):
        for mid in ("m1", "m2", "m3"):
            registry.register(model(RCSA, model_id=mid))
        registry.get("m1").current_score = 0.5
        registry.get("m2").current_score = 0.9
        registry.get("m3").current_score = 0.5
        return ExecutiveReportAggregator(registry, EngineConfig(), fixed_clock)

    def test_mean_score_empty(self):
        assert mean_score({}) == 0.0

    def test_rank_scores_breaks_ties_by_id(self):
        assert rank_scores({"b": 0.5, "a": 0.5, "c": 0.9}, 3) == [("c", 0.9), ("a", 0.5), ("b", 0.5)]

    def test_top_risks_stable(self, aggregator):
        first = aggregator.top_risks()
        assert [r["id"] for r in first] == ["m2", "m1", "m3"]
        assert aggregator.top_risks() == first

    def test_overall_and_breaches(self, aggregator):
        metrics = aggregator.update()
        assert metrics.overall_risk_score == pytest.approx(1.9 / 3)
        assert metrics.appetite_exceeded is True
        assert metrics.risk_exceeded is False
        assert metrics.last_updated == T0

    def test_trend_buffer(self, aggregator):
        assert aggregator.risk_trend() == TREND_STABLE
        for score in (0.3, 0.35, 0.4):
            aggregator.record_overall(score)
        assert aggregator.risk_trend() == TREND_INCREASING
        for score in (0.3, 0.2):
            aggregator.record_overall(score)
        assert aggregator.risk_trend() == TREND_DECREASING

    def test_trend_uses_recent_window(self, aggregator):
        aggregator.record_overall(0.9)
        for _ in range(10):
            aggregator.record_overall(0.4)
        assert aggregator.risk_trend() == TREND_STABLE

    def test_trend_buffer_bounded(self, aggregator):
        for i in range(50):
            aggregator.record_overall(i / 100)
        assert len(aggregator.risk_trends) == 30


# ═══════════════════════════════════════════════════════════════════════════════
#  Quantitative Analysis Tests
# ═══════════════════════════════════════════════════════════════════════════════

def snapshot(store, registry):
    return (
        store.values(),
        store.history_values(),
        registry.scores(),
        [(m.trend, m.last_calculation) for m in registry.get_all()],
    )


class TestLossMetrics:
    @pytest.fixture
    def analyzer(self):
        store = make_store({"a": 0.5, "b": 0.4})
        registry = RiskModelRegistry(store, EngineConfig(), rng=np.random.default_rng(0))
        registry.register(model(RCSA, weights={"a": 1.0}, model_id="m1", impact_weight=1_000))
        registry.register(model(SCENARIO_ANALYSIS, weights={"b": 1.0}, model_id="m2", impact_weight=2_000))
        registry.compute_all()
        impact = BusinessImpactCalculator(fixed_clock)
        impact.register_all([BusinessAssetParams("vault", "Vault", "system", "medium", 1_000_000)])
        return QuantitativeRiskAnalyzer(store, registry, impact, EngineConfig(), clock=fixed_clock)

    def test_value_at_risk(self, analyzer):
        assert analyzer.value_at_risk(0.95) == pytest.approx(329_000)
        assert analyzer.value_at_risk(0.99, 1_000_000) == pytest.approx(465_200)

    def test_expected_loss(self, analyzer):
        assert analyzer.expected_loss() == pytest.approx(0.475 * 1_000 + 0.46 * 2_000)

    def test_loss_variance_is_population(self, analyzer):
        assert analyzer.loss_variance() == pytest.approx(((920 - 475) / 2) ** 2)

    def test_unexpected_loss_clamped(self, analyzer):
        assert analyzer.unexpected_loss() == 0.0
        assert analyzer.unexpected_loss(expected_loss=1.0, loss_variance=5.0) == pytest.approx(2.0)

    def test_confidence_interval(self):
        interval = QuantitativeRiskAnalyzer.confidence_interval(100.0, 10.0)
        assert interval == pytest.approx({
            "lower95": 80.4, "upper95": 119.6,
            "lower99": 74.2, "upper99": 125.8,
        })

    def test_analyze_snapshot(self, analyzer):
        result = analyzer.analyze()
        assert result.var_95 == pytest.approx(329_000)
        assert result.variance_deficit is True
        assert result.unexpected_loss == 0.0
        assert set(result.sensitivity_analysis) == {"a", "b"}
        assert set(result.stress_test_results) == {s.name for s in DEFAULT_STRESS_SCENARIOS}
        assert result.last_analysis == T0


class TestSensitivityAnalysis:
    @pytest.fixture
    def setup(self):
        store = make_store({"a": 0.5, "b": 0.4})
        registry = RiskModelRegistry(store, EngineConfig(), rng=np.random.default_rng(0))
        registry.register(model(RCSA, weights={"a": 1.0}))
        registry.compute_all()
        analyzer = QuantitativeRiskAnalyzer(store, registry, BusinessImpactCalculator(),
                                            EngineConfig(), scenarios=[], clock=fixed_clock)
        return store, registry, analyzer

    def test_relative_change(self, setup):
        _, _, analyzer = setup
        result = analyzer.sensitivity_analysis(seed=1)
        assert result["a"] == pytest.approx(0.1)
        assert result["b"] == 0.0

    def test_zero_base_gives_zero(self):
        store = make_store({"a": 0.0})
        registry = RiskModelRegistry(store, EngineConfig())
        registry.register(model(RCSA, weights={"a": 1.0}))
        analyzer = QuantitativeRiskAnalyzer(store, registry, BusinessImpactCalculator(), scenarios=[])
        assert analyzer.sensitivity_analysis(seed=1) == {"a": 0.0}

    def test_store_and_scores_untouched(self, setup):
        store, registry, analyzer = setup
        before = snapshot(store, registry)
        analyzer.sensitivity_analysis(seed=1)
        assert snapshot(store, registry) == before

    def test_restored_when_evaluation_fails(self, setup, monkeypatch):
        store, registry, analyzer = setup
        before = snapshot(store, registry)
        real = registry.evaluate
        calls = []

        def flaky(rng=None):
            calls.append(rng)
            if len(calls) == 3:
                raise RuntimeError("evaluation failed")
            return real(rng)

        monkeypatch.setattr(registry, "evaluate", flaky)
        with pytest.raises(RuntimeError):
            analyzer.sensitivity_analysis(seed=1)
        assert snapshot(store, registry) == before

    def test_common_random_numbers(self, default_registry, default_store):
        default_store.seed([FactorSeed("unused", "test", 0.5)], backfill=False)
        default_registry.compute_all()
        analyzer = QuantitativeRiskAnalyzer(default_store, default_registry,
                                            BusinessImpactCalculator(), scenarios=[])
        result = analyzer.sensitivity_analysis(seed=3)
        # Monte Carlo scoring draws are shared, so only real factor moves show up
        assert result["unused"] == 0.0
        assert all(delta > 0 for fid, delta in result.items() if fid != "unused")
        assert analyzer.sensitivity_analysis(seed=3) == result


class TestStressTesting:
    @pytest.fixture
    def analyzer(self, default_store, default_registry):
        default_registry.compute_all()
        impact = BusinessImpactCalculator(fixed_clock)
        impact.register_all(DEFAULT_ASSETS)
        return QuantitativeRiskAnalyzer(default_store, default_registry, impact,
                                        EngineConfig(), clock=fixed_clock)

    def test_cyber_attack_raises_cyber_model(self, analyzer, default_store, default_registry):
        base = default_registry.evaluate(np.random.default_rng(9))
        with default_store.perturbation({"threat_landscape": 0.95}):
            stressed = default_registry.evaluate(np.random.default_rng(9))
        assert stressed["cyber_risk_model"] > base["cyber_risk_model"]
        assert default_store.value("threat_landscape") == 0.75

    def test_scenario_raises_overall(self, analyzer, default_registry):
        base = mean_score(default_registry.evaluate(np.random.default_rng(9)))
        results = analyzer.stress_test(seed=9)
        assert results["Cyber Attack"]["overall_risk_score"] > base
        assert results["Cyber Attack"]["stressed_factors"] == ["threat_landscape", "vulnerability_exposure"]

    def test_store_restored_after_every_scenario(self, analyzer, default_store, default_registry):
        before = snapshot(default_store, default_registry)
        analyzer.stress_test(seed=9)
        assert snapshot(default_store, default_registry) == before
        assert default_store.value("threat_landscape") == 0.75

    def test_scenarios_are_independent(self, analyzer):
        together = analyzer.stress_test(seed=5)
        alone = analyzer.stress_test([DEFAULT_STRESS_SCENARIOS[1]], seed=5)
        assert together["Regulatory Change"] == alone["Regulatory Change"]

    def test_impacted_models_ranked(self, analyzer):
        for result in analyzer.stress_test(seed=5).values():
            scores = [m["score"] for m in result["impacted_models"]]
            assert len(scores) == 3
            assert scores == sorted(scores, reverse=True)

    def test_unknown_factor_skipped(self, analyzer):
        scenario = StressScenario("Alien Invasion", {"alien_activity": 1.0, "threat_landscape": 0.9})
        result = analyzer.stress_test([scenario], seed=5)["Alien Invasion"]
        assert result["stressed_factors"] == ["threat_landscape"]

    def test_restored_when_evaluation_fails(self, analyzer, default_store, default_registry, monkeypatch):
        before = snapshot(default_store, default_registry)

        def broken(rng=None):
            raise RuntimeError("evaluation failed")

        monkeypatch.setattr(default_registry, "evaluate", broken)
        with pytest.raises(RuntimeError):
            analyzer.stress_test(seed=5)
        assert snapshot(default_store, default_registry) == before
