"""
Enterprise Risk Analytics Engine
================================
Continuous scoring, correlation, forecasting and stress testing of
aggregate business risk for executive risk reporting.

A catalog of weighted risk indicators (cyber, operational, financial,
compliance, third-party, strategic) is rolled up into composite model
scores, which feed correlation analysis, predictive forecasts and
quantitative loss estimates.

Modules
-------
- engine         : Factor store, event bus, cycle scheduler and the engine itself
- risk_modules   : Model scoring, correlation, business impact, executive metrics
- forecasting    : Multi-algorithm predictive engine
- stress_testing : VaR, expected/unexpected loss, sensitivity and stress tests
"""

__version__ = "1.0.0"

from risk_analytics.engine.core import RiskAnalyticsEngine

__all__ = ["RiskAnalyticsEngine", "__version__"]
