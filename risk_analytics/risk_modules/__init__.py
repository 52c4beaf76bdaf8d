"""Risk modules sub-package — scoring, correlation, impact and executive reporting."""

from risk_analytics.risk_modules.scoring import RiskModel, RiskModelRegistry
from risk_analytics.risk_modules.correlation import CorrelationAnalyzer
from risk_analytics.risk_modules.business_impact import BusinessImpactCalculator
from risk_analytics.risk_modules.executive import ExecutiveReportAggregator

__all__ = [
    "RiskModel",
    "RiskModelRegistry",
    "CorrelationAnalyzer",
    "BusinessImpactCalculator",
    "ExecutiveReportAggregator",
]
