"""
Deal scoring: three 1-10 axes combined into a weighted composite.

Weights: attractiveness 40%, fit 35%, risk 25%. Partially scored deals use
only the available axes, with weights re-normalised.
"""

from __future__ import annotations

import math
from typing import Any, Optional

SCORE_WEIGHTS = {
    "attractiveness": 0.4,
    "fit": 0.35,
    "risk": 0.25,
}


def _is_valid_score(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, float) and not value.is_integer():
        return False
    if not isinstance(value, (int, float)):
        return False
    return 1 <= value <= 10


def validate_deal_scores(attractiveness: Any, fit: Any, risk: Any) -> Optional[str]:
    """Return an error message when any score is not an integer in 1..10."""
    for label, value in (("Attractiveness", attractiveness), ("Fit", fit), ("Risk", risk)):
        if not _is_valid_score(value):
            return f"{label} score must be an integer between 1 and 10"
    return None


def compute_composite_score(
    attractiveness: Optional[float],
    fit: Optional[float],
    risk: Optional[float],
) -> Optional[float]:
    entries = [
        (value, SCORE_WEIGHTS[key])
        for key, value in (("attractiveness", attractiveness), ("fit", fit), ("risk", risk))
        if value is not None
    ]
    if not entries:
        return None
    total_weight = sum(weight for _, weight in entries)
    weighted = sum(value * weight for value, weight in entries)
    # half-up rounding to one decimal
    return math.floor(weighted / total_weight * 10 + 0.5) / 10


def get_score_band(score: float) -> str:
    """8-10 strong, 5-7 moderate, 1-4 weak."""
    if score >= 8:
        return "strong"
    if score >= 5:
        return "moderate"
    return "weak"
