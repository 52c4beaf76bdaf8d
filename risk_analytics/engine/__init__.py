"""Engine sub-package — factor store, event bus, scheduler and the engine."""

from risk_analytics.engine.random_source import (
    RandomSource,
    SeededRandomSource,
    ConstantRandomSource,
    SequenceRandomSource,
)
from risk_analytics.engine.factors import HistoryPoint, RiskFactor, RiskFactorStore
from risk_analytics.engine.events import EventBus
from risk_analytics.engine.scheduler import CycleScheduler

__all__ = [
    "RandomSource",
    "SeededRandomSource",
    "ConstantRandomSource",
    "SequenceRandomSource",
    "HistoryPoint",
    "RiskFactor",
    "RiskFactorStore",
    "EventBus",
    "CycleScheduler",
]
