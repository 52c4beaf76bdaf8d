"""Error taxonomy shared by every stage of the recomputation cycle."""


class RiskAnalyticsError(Exception):
    """Base class for engine errors."""


class ConfigurationError(RiskAnalyticsError, ValueError):
    """Invalid catalog entry or engine setting (weights, probabilities, thresholds)."""


class NotFoundError(RiskAnalyticsError, KeyError):
    """Unknown factor, model, asset or predictive model id in a targeted query."""

    def __init__(self, kind: str, item_id: str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"Unknown {kind}: {item_id!r}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class ComputationError(RiskAnalyticsError, ArithmeticError):
    """Arithmetic produced NaN/inf or divided by zero."""


class RestorationFailure(RiskAnalyticsError):
    """A perturbation analysis failed to put the factor store back as it found it."""


class DataQualityWarning(UserWarning):
    """A model references a factor the store does not know; it contributes 0."""
