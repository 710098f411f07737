"""
analytics/ai_usage.py
---------------------

Pure helper for summarizing AI copilot usage.

- Input: list[dict] (AIInteraction audit rows, from the database or Supabase)
- Output: dict[str, Any] (JSON-serializable insights)

Used by backend.routes.copilot:/copilot/usage.
"""

from __future__ import annotations

from typing import Any, Dict, List

import numpy as np


def _changed_value(changes: Dict[str, Any], key: str) -> Any:
    entry = changes.get(key)
    if isinstance(entry, dict):
        return entry.get("new")
    return entry


def compute_ai_usage_insights(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Compute summary statistics from AI interaction records.

    Parameters
    ----------
    rows : list of dict
        Audit rows whose ``changes`` carry input_tokens, output_tokens,
        total_tokens, cost_usd and model as ``{"old": None, "new": value}``.

    Returns
    -------
    dict : JSON-serializable summary with keys:
        - total_interactions
        - interactions_by_model
        - token_stats
        - cost_stats
        - total_cost_usd
    """
    if not rows:
        return {
            "total_interactions": 0,
            "interactions_by_model": {},
            "token_stats": {},
            "cost_stats": {},
            "total_cost_usd": 0.0,
        }

    interactions_by_model: Dict[str, int] = {}
    token_values = []
    cost_values = []

    for row in rows:
        changes = row.get("changes") or {}
        model = str(_changed_value(changes, "model") or "unknown")
        interactions_by_model[model] = interactions_by_model.get(model, 0) + 1

        tokens = _changed_value(changes, "total_tokens")
        if isinstance(tokens, (int, float)):
            token_values.append(tokens)
        cost = _changed_value(changes, "cost_usd")
        if isinstance(cost, (int, float)):
            cost_values.append(cost)

    def _summary(vals: list[float]) -> Dict[str, float]:
        if not vals:
            return {}
        arr = np.array(vals, dtype=float)
        return {
            "count": len(arr),
            "mean": float(np.nanmean(arr)),
            "min": float(np.nanmin(arr)),
            "max": float(np.nanmax(arr)),
            "sum": float(np.nansum(arr)),
        }

    return {
        "total_interactions": len(rows),
        "interactions_by_model": interactions_by_model,
        "token_stats": _summary(token_values),
        "cost_stats": _summary(cost_values),
        "total_cost_usd": round(float(np.nansum(cost_values)) if cost_values else 0.0, 4),
    }
