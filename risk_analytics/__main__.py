"""
Main entry point — run a few recomputation cycles and print the executive summary.
Usage: python -m risk_analytics [cycles]
"""

import logging
import sys

from risk_analytics.config import EngineConfig
from risk_analytics.engine.core import RiskAnalyticsEngine
from risk_analytics.utils import dict_list_to_df, format_pct, format_usd, risk_light


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    n_cycles = int(argv[0]) if argv else 5

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    engine = RiskAnalyticsEngine(EngineConfig(sampling_seed=42))
    engine.initialize()
    for _ in range(n_cycles):
        engine.run_cycle()
    engine.stop()

    cfg = engine.config
    overview = engine.get_risk_overview()
    metrics = overview["executive_metrics"]
    impact = overview["business_impact"]

    print("=" * 72)
    print("  ENTERPRISE RISK ANALYTICS — EXECUTIVE SUMMARY")
    print("=" * 72)

    # ── Executive Metrics ────────────────────────────────────────────────
    print(f"\n{'─' * 40}")
    print(f"EXECUTIVE METRICS (after {engine.cycle_count} cycles)")
    print(f"{'─' * 40}")
    score = overview["overall_score"]
    print(f"  Overall Risk Score: {score:>8.3f} {risk_light(score, cfg.risk_appetite, cfg.risk_tolerance)}")
    print(f"  Risk Appetite:      {cfg.risk_appetite:>8.2f}  exceeded={metrics['appetite_exceeded']}")
    print(f"  Risk Tolerance:     {cfg.risk_tolerance:>8.2f}  exceeded={metrics['risk_exceeded']}")
    print(f"  Trend:              {metrics['risk_trend']:>8s}")
    print(f"  Asset Value:        {format_usd(impact['total_asset_value']):>16s}")
    print(f"  Potential Loss:     {format_usd(impact['potential_loss']):>16s}"
          f" ({impact['risk_percentage']:.1f}%)")

    # ── Models ───────────────────────────────────────────────────────────
    print(f"\n{'─' * 40}")
    print("RISK MODELS")
    print(f"{'─' * 40}")
    models = dict_list_to_df(overview["models"], ["id", "methodology", "score", "trend"])
    print(models.to_string(index=False, float_format=lambda v: f"{v:.3f}"))

    # ── Quantitative ─────────────────────────────────────────────────────
    quant = engine.get_predictive_analysis()["quantitative_analysis"]
    print(f"\n{'─' * 40}")
    print("QUANTITATIVE ANALYSIS")
    print(f"{'─' * 40}")
    print(f"  VaR (95%):        {format_usd(quant['var_95']):>16s}")
    print(f"  VaR (99%):        {format_usd(quant['var_99']):>16s}")
    print(f"  Expected Loss:    {format_usd(quant['expected_loss']):>16s}")
    print(f"  Unexpected Loss:  {format_usd(quant['unexpected_loss']):>16s}")
    print(f"\n  Stress Tests:")
    for name, result in quant["stress_test_results"].items():
        top = ", ".join(m["id"] for m in result["impacted_models"])
        print(f"    {name:22s}: {result['overall_risk_score']:.3f}  [{top}]")
    print(f"\n  Most Sensitive Factors:")
    ranked = sorted(quant["sensitivity_analysis"].items(), key=lambda kv: -abs(kv[1]))
    for factor_id, delta in ranked[:5]:
        print(f"    {factor_id:26s}: {format_pct(delta)}")

    # ── Forecasts ────────────────────────────────────────────────────────
    print(f"\n{'─' * 40}")
    print("FORECASTS")
    print(f"{'─' * 40}")
    for model in engine.get_predictive_analysis()["models"]:
        latest = model["latest_prediction"]
        value = f"{latest['value']:.3f}" if latest else "n/a"
        print(f"  {model['name']:38s} {model['prediction_horizon']:>9s}: {value}")

    # ── Correlation ──────────────────────────────────────────────────────
    print(f"\n{'─' * 40}")
    print("STRONGEST FACTOR CORRELATIONS")
    print(f"{'─' * 40}")
    # Each pair appears twice (a→b, b→a); show one direction
    pairs = [c for c in engine.get_correlation_analysis() if c["factor1"] < c["factor2"]]
    print(dict_list_to_df(pairs[:5]).to_string(index=False, float_format=lambda v: f"{v:+.3f}"))

    print(f"\n{'=' * 72}")


if __name__ == "__main__":
    main()
