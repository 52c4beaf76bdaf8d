"""
Correlation Analysis
====================
Pairwise Pearson correlation of factor histories.

Each unordered pair is computed once and written to both factors, so
r(a, b) and r(b, a) are the same float. Self-correlation is never stored.
"""

from __future__ import annotations

import logging
from itertools import combinations
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from risk_analytics.config import MODERATE_CORRELATION, STRONG_CORRELATION
from risk_analytics.engine.factors import RiskFactorStore

logger = logging.getLogger(__name__)


def pearson(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson r of two equal-length series.

    Returns 0 for mismatched lengths, fewer than two points, or a
    constant series (zero variance).
    """
    if len(x) != len(y) or len(x) < 2:
        return 0.0
    a = np.asarray(x, dtype=float)
    b = np.asarray(y, dtype=float)
    da = a - a.mean()
    db = b - b.mean()
    denominator = np.sqrt((da * da).sum() * (db * db).sum())
    if denominator == 0 or not np.isfinite(denominator):
        return 0.0
    r = float((da * db).sum() / denominator)
    # Rounding can push |r| a hair past 1
    return max(-1.0, min(1.0, r))


def correlation_strength(r: float) -> str:
    magnitude = abs(r)
    if magnitude > STRONG_CORRELATION:
        return "strong"
    if magnitude > MODERATE_CORRELATION:
        return "moderate"
    return "weak"


class CorrelationAnalyzer:
    """Maintains the factor-by-factor correlation map."""

    def __init__(self, factors: RiskFactorStore):
        self.factors = factors
        self.matrix: Dict[str, Dict[str, float]] = {}

    def analyze(self) -> Dict[str, Dict[str, float]]:
        """Recompute every pair and publish the rows back onto the factors."""
        histories = self.factors.history_values()
        matrix: Dict[str, Dict[str, float]] = {fid: {} for fid in histories}
        for a, b in combinations(histories, 2):
            r = pearson(histories[a], histories[b])
            matrix[a][b] = r
            matrix[b][a] = r
        self.matrix = matrix
        self.factors.set_correlations(matrix)
        logger.debug("Correlated %d factor pairs",
                     len(histories) * (len(histories) - 1) // 2)
        return matrix

    def correlation(self, a: str, b: str) -> Optional[float]:
        return self.matrix.get(a, {}).get(b)

    def ranked(self) -> List[Dict]:
        """
        Every ordered pair, strongest first.

        Ties on |r| are broken by factor ids so the listing is stable.
        """
        rows = [
            {
                "factor1": a,
                "factor2": b,
                "correlation": r,
                "strength": correlation_strength(r),
            }
            for a, row in self.matrix.items()
            for b, r in row.items()
        ]
        rows.sort(key=lambda row: (-abs(row["correlation"]), row["factor1"], row["factor2"]))
        return rows

    def to_frame(self) -> pd.DataFrame:
        """Square correlation matrix as a DataFrame (diagonal = 1)."""
        ids = sorted(self.matrix)
        frame = pd.DataFrame(
            [[1.0 if a == b else self.matrix[a].get(b, 0.0) for b in ids] for a in ids],
            index=ids,
            columns=ids,
        )
        return frame
