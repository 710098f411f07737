"""
analytics/portfolio_monitoring.py
---------------------------------

Pure helpers for portfolio monitoring: period-over-period changes, KPI trends,
portfolio aggregation, valuation history and holding periods.

Inputs are plain dicts / dataclasses so the functions can be fed from ORM rows,
API payloads or tests alike.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

# KPI columns that may be charted as a trend (snake_case column -> API name)
KPI_METRICS: Dict[str, str] = {
    "revenue": "revenue",
    "revenueGrowth": "revenue_growth",
    "grossProfit": "gross_profit",
    "grossMargin": "gross_margin",
    "ebitda": "ebitda",
    "ebitdaMargin": "ebitda_margin",
    "netIncome": "net_income",
    "operatingCashFlow": "operating_cash_flow",
    "freeCashFlow": "free_cash_flow",
    "cashBalance": "cash_balance",
    "totalDebt": "total_debt",
    "netDebt": "net_debt",
    "employeeCount": "employee_count",
    "customerCount": "customer_count",
    "currentValuation": "current_valuation",
    "evEbitda": "ev_ebitda",
}

INACTIVE_STATUSES = ("EXITED", "WRITTEN_OFF")


def resolve_metric_name(name: str) -> Optional[str]:
    """Map an API metric name (camelCase or snake_case) to its column, or None."""
    if name in KPI_METRICS:
        return KPI_METRICS[name]
    if name in KPI_METRICS.values():
        return name
    return None


def compute_period_over_period_change(current: Optional[float], prior: Optional[float]) -> Optional[float]:
    """Percentage change vs. prior; None when prior is missing or zero."""
    if prior is None or prior == 0 or current is None:
        return None
    return (current - prior) / abs(prior) * 100


def build_kpi_trend(metrics: Iterable[Mapping[str, Any]], column: str) -> List[Dict[str, Any]]:
    """
    Trend points for one KPI column, oldest first.

    Periods where the metric is missing are skipped and do not reset the
    comparison baseline.
    """
    ordered = sorted(metrics, key=lambda m: m["period_date"])
    points: List[Dict[str, Any]] = []
    prior: Optional[float] = None
    for row in ordered:
        raw = row.get(column)
        if raw is None:
            continue
        value = float(raw)
        points.append(
            {
                "date": row["period_date"],
                "value": value,
                "change": compute_period_over_period_change(value, prior),
            }
        )
        prior = value
    return points


def aggregate_portfolio_metrics(companies: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Totals across active companies (EXITED and WRITTEN_OFF are excluded).

    ``total_companies`` still counts every company passed in.
    """
    companies = list(companies)
    active = [c for c in companies if c.get("status") not in INACTIVE_STATUSES]

    total_invested = sum(float(c.get("equity_invested") or 0) for c in active)
    total_current = sum(float(c.get("total_value") or 0) for c in active)
    total_realized = sum(float(c.get("realized_value") or 0) for c in active)
    total_unrealized = sum(float(c.get("unrealized_value") or 0) for c in active)

    return {
        "total_companies": len(companies),
        "active_companies": len(active),
        "total_invested": total_invested,
        "total_current_value": total_current,
        "total_realized_value": total_realized,
        "total_unrealized_value": total_unrealized,
        "portfolio_moic": total_current / total_invested if total_invested > 0 else 0.0,
    }


def compute_valuation_changes(valuations: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Attach ``change_percent`` vs. the previous entry of a date-ordered list."""
    out: List[Dict[str, Any]] = []
    for i, v in enumerate(valuations):
        prior = valuations[i - 1] if i > 0 else None
        entry = dict(v)
        entry["change_percent"] = (
            compute_period_over_period_change(float(v["value"]), float(prior["value"])) if prior else None
        )
        out.append(entry)
    return out


def holding_period_months(acquisition_date: date, exit_date: Optional[date] = None) -> int:
    """Whole calendar months held, at least 1."""
    end = exit_date or datetime.now().date()
    months = (end.year - acquisition_date.year) * 12 + (end.month - acquisition_date.month)
    return max(1, months)
