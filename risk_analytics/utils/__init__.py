"""Utility helpers for formatting and tabular display."""

import pandas as pd
from typing import List, Dict


def format_pct(value: float, decimals: int = 2) -> str:
    """Format a decimal as percentage string."""
    return f"{value * 100:.{decimals}f}%"


def format_usd(value: float, decimals: int = 0) -> str:
    """Format a monetary amount in dollars."""
    return f"${value:,.{decimals}f}"


def dict_list_to_df(data: List[Dict], columns: List[str] = None) -> pd.DataFrame:
    """Convert a list of dicts to a DataFrame, optionally keeping only ``columns``."""
    frame = pd.DataFrame(data)
    if columns is not None and not frame.empty:
        frame = frame[[c for c in columns if c in frame.columns]]
    return frame


def risk_light(score: float, appetite: float, tolerance: float) -> str:
    """Traffic light for a risk score: within appetite, within tolerance, beyond."""
    if score <= appetite:
        return "🟢"
    elif score <= tolerance:
        return "🟡"
    return "🔴"
