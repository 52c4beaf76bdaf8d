"""Engine settings and the default risk catalog (factors, models, assets, forecasts)."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from risk_analytics.exceptions import ConfigurationError


# ── Tolerances ───────────────────────────────────────────────────────────────
WEIGHT_TOLERANCE = 1e-6        # Σ weights and Σ scenario probabilities
SCORE_TREND_THRESHOLD = 0.05   # |Δ| that flips a trend away from "stable"


# ── Trend labels ─────────────────────────────────────────────────────────────
TREND_INCREASING = "increasing"
TREND_DECREASING = "decreasing"
TREND_IMPROVING = "improving"   # Lower is better for risk
TREND_STABLE = "stable"

FACTOR_TRENDS = (TREND_INCREASING, TREND_DECREASING, TREND_IMPROVING, TREND_STABLE)


# ── Scoring methodologies ────────────────────────────────────────────────────
FAIR = "FAIR"                                         # Factor Analysis of Information Risk
MONTE_CARLO = "Monte Carlo"
VALUE_AT_RISK = "Value at Risk (VaR)"
RCSA = "Risk Control Self Assessment (RCSA)"
TIERED = "Tiered Assessment"
SCENARIO_ANALYSIS = "Scenario Analysis"

METHODOLOGIES = (FAIR, MONTE_CARLO, VALUE_AT_RISK, RCSA, TIERED, SCENARIO_ANALYSIS)


# ── Forecast algorithm archetypes ────────────────────────────────────────────
TIME_SERIES = "LSTM Neural Network"
ENSEMBLE = "Random Forest"
MONTE_CARLO_PERCENTILE = "Monte Carlo Simulation"
BAYESIAN = "Bayesian Network"

ALGORITHMS = (TIME_SERIES, ENSEMBLE, MONTE_CARLO_PERCENTILE, BAYESIAN)


# ── Normal quantiles ─────────────────────────────────────────────────────────
Z_SCORES = {
    0.90: 1.282,
    0.95: 1.645,
    0.99: 2.326,
}

VAR_CONFIDENCE_LEVELS = (0.95, 0.99)

# Two-sided interval multipliers applied to unexpected loss
CONFIDENCE_INTERVAL_MULTIPLIERS = {
    "95": 1.96,
    "99": 2.58,
}


# ── Business impact ──────────────────────────────────────────────────────────
COST_BUCKET_WEIGHTS = {
    "direct_costs": 0.10,
    "indirect_costs": 0.05,
    "opportunity_costs": 0.03,
    "regulatory_fines": 0.02,
    "reputation_damage": 0.08,
}

CRITICALITY_MULTIPLIERS = {
    "critical": 1.5,
    "high": 1.2,
    "medium": 1.0,
    "low": 0.5,
}


# ── Correlation strength bands (|r| strictly above) ──────────────────────────
STRONG_CORRELATION = 0.7
MODERATE_CORRELATION = 0.3


# ── Per-model monetary impact (loss coefficient per unit score) ──────────────
DEFAULT_MODEL_IMPACT = 500_000.0


# ═══════════════════════════════════════════════════════════════════════════════
#  Engine settings
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class EngineConfig:
    """Tunable parameters for one engine instance."""
    # Buffers
    history_capacity: int = 30          # Points kept per factor
    prediction_buffer_size: int = 10    # Predictions kept per forecast model
    trend_buffer_size: int = 30         # Overall scores kept for forecasting
    trend_window: int = 10              # Overall scores used for the executive trend

    # Methodology adjustments
    stochastic_adjustments: bool = False   # Opt-in noise for FAIR / Tiered
    fair_bound: float = 0.10               # ± band for FAIR
    tiered_range: Tuple[float, float] = (0.85, 1.15)
    rcsa_discount: float = 0.95
    monte_carlo_draws: int = 1_000
    monte_carlo_sigma: float = 0.20        # σ of ln(multiplier)
    var_volatility: float = 0.15           # Annual volatility for the VaR methodology
    var_horizon_days: int = 30
    var_confidence: float = 0.95

    # Quantitative analysis
    portfolio_volatility: float = 0.20
    sensitivity_bump: float = 0.10         # +10 % per factor
    stress_top_n: int = 3

    # Executive reporting
    risk_tolerance: float = 0.70
    risk_appetite: float = 0.60
    top_risks_count: int = 5

    # Forecasting
    forecast_draws: int = 10_000
    forecast_percentile: float = 95.0
    ensemble_estimators: int = 100
    bayesian_prior: float = 0.5

    # Scheduling and sampling
    cycle_period_seconds: float = 45.0
    sampling_seed: Optional[int] = 42

    def __post_init__(self):
        if self.history_capacity < 2:
            raise ConfigurationError("history_capacity must be at least 2")
        if self.prediction_buffer_size < 1 or self.trend_buffer_size < 1:
            raise ConfigurationError("buffer sizes must be positive")
        if self.trend_window < 2:
            raise ConfigurationError("trend_window must be at least 2")
        if self.monte_carlo_draws < 1 or self.forecast_draws < 1:
            raise ConfigurationError("draw counts must be positive")
        if self.ensemble_estimators < 1:
            raise ConfigurationError("ensemble_estimators must be positive")
        lo, hi = self.tiered_range
        if lo > hi:
            raise ConfigurationError(f"tiered_range is inverted: {self.tiered_range}")
        if not 0.0 <= self.fair_bound < 1.0:
            raise ConfigurationError("fair_bound must be in [0, 1)")
        for name in ("risk_tolerance", "risk_appetite", "bayesian_prior"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        if not 0.0 < self.forecast_percentile <= 100.0:
            raise ConfigurationError("forecast_percentile must be in (0, 100]")
        if self.cycle_period_seconds <= 0:
            raise ConfigurationError("cycle_period_seconds must be positive")


# ═══════════════════════════════════════════════════════════════════════════════
#  Catalog definitions
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class FactorSeed:
    """Initial state of one risk indicator, as delivered by the monitoring layer."""
    id: str
    category: str
    value: float
    trend: str = TREND_STABLE
    volatility: float = 0.1

    def __post_init__(self):
        if self.trend not in FACTOR_TRENDS:
            raise ConfigurationError(f"Factor {self.id}: unknown trend {self.trend!r}")
        if self.volatility < 0:
            raise ConfigurationError(f"Factor {self.id}: negative volatility")


@dataclass
class ModelScenario:
    """Weighted outcome used by the Scenario Analysis methodology."""
    name: str
    probability: float
    impact_multiplier: float


DEFAULT_MODEL_SCENARIOS = [
    ModelScenario("Best Case",   0.1, 0.5),
    ModelScenario("Likely Case", 0.7, 1.0),
    ModelScenario("Worst Case",  0.2, 2.0),
]


@dataclass
class RiskModelParams:
    """Definition of a weighted composite model over risk factors."""
    id: str
    name: str
    domain: str
    weights: Dict[str, float]
    methodology: str
    confidence: float
    impact_weight: float = DEFAULT_MODEL_IMPACT
    scenarios: List[ModelScenario] = field(
        default_factory=lambda: list(DEFAULT_MODEL_SCENARIOS)
    )
    description: str = ""

    def __post_init__(self):
        if not self.weights:
            raise ConfigurationError(f"Model {self.id}: no factor weights")
        total = sum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ConfigurationError(
                f"Model {self.id}: weights sum to {total:.8f}, expected 1.0"
            )
        if self.scenarios:
            prob = sum(s.probability for s in self.scenarios)
            if abs(prob - 1.0) > WEIGHT_TOLERANCE:
                raise ConfigurationError(
                    f"Model {self.id}: scenario probabilities sum to {prob:.8f}"
                )
        if not 0.0 <= self.confidence <= 1.0:
            raise ConfigurationError(f"Model {self.id}: confidence outside [0, 1]")

    @property
    def factors(self) -> List[str]:
        return list(self.weights)


@dataclass
class BusinessAssetParams:
    """Business asset definition supplied by asset/configuration management."""
    id: str
    name: str
    type: str
    criticality: str
    financial_value: float
    regulatory_implications: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.criticality not in CRITICALITY_MULTIPLIERS:
            raise ConfigurationError(
                f"Asset {self.id}: unknown criticality {self.criticality!r}"
            )
        if self.financial_value < 0:
            raise ConfigurationError(f"Asset {self.id}: negative financial value")


@dataclass
class PredictiveModelParams:
    """Definition of a forecast model."""
    id: str
    name: str
    algorithm: str
    accuracy: float
    prediction_horizon: str                 # e.g. "90 days"
    inputs: List[str] = field(default_factory=list)
    factor_ids: Optional[List[str]] = None  # None = every factor in the store


@dataclass
class StressScenario:
    """Named set of factor overrides for stress testing."""
    name: str
    factors: Dict[str, float]


# ═══════════════════════════════════════════════════════════════════════════════
#  Default catalog
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_FACTORS = [
    # Cybersecurity
    FactorSeed("threat_landscape",        "cyber",       0.75, TREND_INCREASING, 0.15),
    FactorSeed("vulnerability_exposure",  "cyber",       0.65, TREND_DECREASING, 0.20),
    FactorSeed("control_effectiveness",   "cyber",       0.85, TREND_IMPROVING,  0.10),
    # Operational
    FactorSeed("process_maturity",        "operational", 0.78, TREND_STABLE,     0.08),
    FactorSeed("human_factors",           "operational", 0.70, TREND_IMPROVING,  0.12),
    FactorSeed("technology_risk",         "operational", 0.60, TREND_INCREASING, 0.18),
    # Financial
    FactorSeed("revenue_impact",          "financial",   0.55, TREND_STABLE,     0.25),
    FactorSeed("regulatory_fines",        "financial",   0.45, TREND_INCREASING, 0.30),
    FactorSeed("recovery_costs",          "financial",   0.50, TREND_STABLE,     0.20),
    # Compliance
    FactorSeed("regulatory_changes",      "compliance",  0.68, TREND_INCREASING, 0.22),
    FactorSeed("compliance_gaps",         "compliance",  0.35, TREND_DECREASING, 0.15),
    FactorSeed("audit_findings",          "compliance",  0.40, TREND_STABLE,     0.18),
    # Third party
    FactorSeed("vendor_security_posture", "third_party", 0.72, TREND_IMPROVING,  0.16),
    FactorSeed("data_access_level",       "third_party", 0.58, TREND_STABLE,     0.14),
    # Strategic
    FactorSeed("market_volatility",       "strategic",   0.82, TREND_INCREASING, 0.35),
    FactorSeed("competitive_pressure",    "strategic",   0.75, TREND_STABLE,     0.20),
    FactorSeed("technology_disruption",   "strategic",   0.80, TREND_INCREASING, 0.25),
]

# Several models reference drivers the monitoring layer does not publish
# (business_impact, external_dependencies, ...); those contribute 0.
DEFAULT_MODELS = [
    RiskModelParams(
        id="cyber_risk_model",
        name="Cybersecurity Risk Model",
        domain="cyber",
        weights={"threat_landscape": 0.30, "vulnerability_exposure": 0.25,
                 "control_effectiveness": 0.25, "business_impact": 0.20},
        methodology=FAIR,
        confidence=0.85,
        impact_weight=1_000_000.0,
        description="Comprehensive cybersecurity risk assessment model",
    ),
    RiskModelParams(
        id="operational_risk_model",
        name="Operational Risk Model",
        domain="operational",
        weights={"process_maturity": 0.35, "human_factors": 0.25,
                 "technology_risk": 0.25, "external_dependencies": 0.15},
        methodology=MONTE_CARLO,
        confidence=0.78,
        impact_weight=500_000.0,
        description="Business operational risk assessment model",
    ),
    RiskModelParams(
        id="financial_risk_model",
        name="Financial Impact Risk Model",
        domain="financial",
        weights={"revenue_impact": 0.40, "regulatory_fines": 0.25,
                 "recovery_costs": 0.20, "reputation_damage": 0.15},
        methodology=VALUE_AT_RISK,
        confidence=0.82,
        impact_weight=2_000_000.0,
        description="Financial loss and business impact assessment model",
    ),
    RiskModelParams(
        id="compliance_risk_model",
        name="Compliance Risk Model",
        domain="compliance",
        weights={"regulatory_changes": 0.30, "compliance_gaps": 0.30,
                 "audit_findings": 0.25, "policy_violations": 0.15},
        methodology=RCSA,
        confidence=0.88,
        impact_weight=750_000.0,
        description="Regulatory and compliance risk assessment model",
    ),
    RiskModelParams(
        id="third_party_risk_model",
        name="Third Party Risk Model",
        domain="third_party",
        weights={"vendor_security_posture": 0.35, "data_access_level": 0.30,
                 "business_criticality": 0.25, "geographic_risk": 0.10},
        methodology=TIERED,
        confidence=0.75,
        impact_weight=300_000.0,
        description="Vendor and supplier risk assessment model",
    ),
    RiskModelParams(
        id="strategic_risk_model",
        name="Strategic Risk Model",
        domain="strategic",
        weights={"market_volatility": 0.30, "competitive_pressure": 0.25,
                 "technology_disruption": 0.25, "regulatory_environment": 0.20},
        methodology=SCENARIO_ANALYSIS,
        confidence=0.70,
        impact_weight=1_500_000.0,
        scenarios=[
            ModelScenario("Normal",          0.60, 1.0),
            ModelScenario("Moderate Stress", 0.25, 1.3),
            ModelScenario("High Stress",     0.10, 1.8),
            ModelScenario("Extreme",         0.05, 2.5),
        ],
        description="Strategic business risk assessment model",
    ),
]

DEFAULT_ASSETS = [
    BusinessAssetParams("customer_data", "Customer Personal Data", "data", "critical",
                        50_000_000, ["GDPR", "CCPA", "HIPAA"],
                        ["database_systems", "application_infrastructure"]),
    BusinessAssetParams("intellectual_property", "Intellectual Property", "data", "critical",
                        100_000_000, ["Trade Secrets", "Patents"],
                        ["development_systems", "source_code_repositories"]),
    BusinessAssetParams("payment_systems", "Payment Processing Systems", "system", "critical",
                        75_000_000, ["PCI-DSS", "SOX"],
                        ["payment_gateways", "financial_networks"]),
    BusinessAssetParams("operational_systems", "Core Operational Systems", "system", "high",
                        25_000_000, ["SOC2", "ISO27001"],
                        ["cloud_infrastructure", "network_systems"]),
    BusinessAssetParams("brand_reputation", "Brand and Reputation", "intangible", "high",
                        200_000_000, ["Public Relations", "Marketing"],
                        ["public_communications", "customer_experience"]),
    BusinessAssetParams("employee_data", "Employee Information", "data", "medium",
                        5_000_000, ["GDPR", "Employment Law"],
                        ["hr_systems", "payroll_systems"]),
]

DEFAULT_PREDICTIVE_MODELS = [
    PredictiveModelParams("risk_trend_predictor", "Risk Trend Prediction Model",
                          TIME_SERIES, 0.84, "90 days",
                          ["historical_risk_scores", "factor_trends", "external_indicators"]),
    PredictiveModelParams("incident_probability_model", "Security Incident Probability Model",
                          ENSEMBLE, 0.78, "30 days",
                          ["threat_intelligence", "vulnerability_data", "control_status"]),
    PredictiveModelParams("financial_impact_predictor", "Financial Impact Prediction Model",
                          MONTE_CARLO_PERCENTILE, 0.82, "180 days",
                          ["business_metrics", "market_conditions", "regulatory_environment"]),
    PredictiveModelParams("business_disruption_model", "Business Disruption Model",
                          BAYESIAN, 0.76, "60 days",
                          ["operational_metrics", "dependency_analysis", "external_factors"]),
]

DEFAULT_STRESS_SCENARIOS = [
    StressScenario("Cyber Attack",        {"threat_landscape": 0.95, "vulnerability_exposure": 0.85}),
    StressScenario("Regulatory Change",   {"regulatory_changes": 0.90, "compliance_gaps": 0.70}),
    StressScenario("Market Crash",        {"market_volatility": 0.95, "revenue_impact": 0.80}),
    StressScenario("Operational Failure", {"technology_risk": 0.90, "process_maturity": 0.40}),
]
