"""
Business Impact
===============
Maps the overall risk score onto monetised exposure of business assets.

  potential loss = Σ asset value × asset risk level
  asset risk level = clamp(overall score × criticality multiplier)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from risk_analytics.config import (
    BusinessAssetParams,
    COST_BUCKET_WEIGHTS,
    CRITICALITY_MULTIPLIERS,
)
from risk_analytics.engine.factors import clamp, utc_now
from risk_analytics.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def cost_breakdown(financial_value: float) -> Dict[str, float]:
    """Fixed proportional split of an asset's value across cost buckets."""
    return {bucket: financial_value * weight
            for bucket, weight in COST_BUCKET_WEIGHTS.items()}


@dataclass
class BusinessAsset:
    params: BusinessAssetParams
    current_risk_level: float = 0.0
    impact_analysis: Dict[str, float] = field(default_factory=dict)
    last_assessment: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.params.id

    @property
    def financial_value(self) -> float:
        return self.params.financial_value

    def to_dict(self) -> Dict:
        p = self.params
        return {
            "id": p.id,
            "name": p.name,
            "type": p.type,
            "criticality": p.criticality,
            "financial_value": p.financial_value,
            "regulatory_implications": list(p.regulatory_implications),
            "dependencies": list(p.dependencies),
            "current_risk_level": self.current_risk_level,
            "impact_analysis": dict(self.impact_analysis),
            "last_assessment": (self.last_assessment.isoformat()
                                if self.last_assessment else None),
        }


@dataclass(frozen=True)
class BusinessImpact:
    total_asset_value: float
    potential_loss: float
    risk_percentage: float

    def to_dict(self) -> Dict:
        return {
            "total_asset_value": self.total_asset_value,
            "potential_loss": self.potential_loss,
            "risk_percentage": self.risk_percentage,
        }


class BusinessImpactCalculator:
    """Holds the asset catalog and its derived exposure."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self._assets: Dict[str, BusinessAsset] = {}

    def register_all(self, assets: Iterable[BusinessAssetParams]) -> None:
        now = self.clock()
        for params in assets:
            self._assets[params.id] = BusinessAsset(
                params=params,
                impact_analysis=cost_breakdown(params.financial_value),
                last_assessment=now,
            )
        logger.info("Configured %d business assets for impact analysis", len(self._assets))

    def get(self, asset_id: str) -> BusinessAsset:
        try:
            return self._assets[asset_id]
        except KeyError:
            raise NotFoundError("business asset", asset_id) from None

    def get_all(self) -> List[BusinessAsset]:
        return list(self._assets.values())

    def update_risk_levels(self, overall_score: float) -> None:
        """Scale the overall score by each asset's criticality."""
        now = self.clock()
        for asset in self._assets.values():
            multiplier = CRITICALITY_MULTIPLIERS.get(asset.params.criticality, 1.0)
            asset.current_risk_level = clamp(overall_score * multiplier)
            asset.last_assessment = now

    def total_asset_value(self) -> float:
        return float(sum(a.financial_value for a in self._assets.values()))

    def total_business_impact(self) -> BusinessImpact:
        total = self.total_asset_value()
        loss = float(sum(a.financial_value * a.current_risk_level
                         for a in self._assets.values()))
        return BusinessImpact(
            total_asset_value=total,
            potential_loss=loss,
            risk_percentage=(loss / total) * 100 if total > 0 else 0.0,
        )

    def to_dicts(self) -> List[Dict]:
        return [a.to_dict() for a in self._assets.values()]
