"""
analytics/performance.py
------------------------

Fund-level performance ratios and deal-pipeline analytics.

Pure functions over plain numbers and dict rows; pandas is used for the
per-company table and the pipeline group-by so report builders can export the
same frames to CSV.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from core.formatters import format_money, format_percent
from core.stages import TERMINAL_STAGES, get_stage_display

# Simplified net-of-fees haircut applied to gross MOIC
NET_MOIC_FACTOR = 0.85

ACTIVE_COMPANY_STATUSES = ("HOLDING", "PREPARING_EXIT", "UNDER_LOI")
EXITED_COMPANY_STATUSES = ("EXITED", "PARTIALLY_EXITED")

WON_STAGES = ("CLOSED_WON", "CLOSED")
LOST_STAGES = ("CLOSED_LOST", "PASSED")


@dataclass
class FundMetrics:
    gross_moic: float
    net_moic: float
    dpi: float
    rvpi: float
    tvpi: float
    gross_irr: Optional[float]
    net_irr: Optional[float]

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compute_fund_metrics(
    *,
    total_paid: float,
    total_distributed: float,
    total_invested: float,
    total_value: float,
    unrealized_value: float,
    gross_irr: Optional[float] = None,
    management_fee: Optional[float] = None,
) -> FundMetrics:
    """
    Standard fund ratios.

    Parameters
    ----------
    total_paid : float
        Paid-in capital (denominator of DPI / RVPI / TVPI).
    total_invested, total_value : float
        Portfolio equity invested and current total value (gross MOIC).
    gross_irr : float, optional
        Fund IRR before fees; net IRR subtracts twice the management fee.
    """
    gross_moic = total_value / total_invested if total_invested > 0 else 0.0
    dpi = total_distributed / total_paid if total_paid > 0 else 0.0
    rvpi = unrealized_value / total_paid if total_paid > 0 else 0.0

    net_irr = None
    if gross_irr is not None:
        net_irr = gross_irr * (1 - float(management_fee or 0) * 2)

    return FundMetrics(
        gross_moic=gross_moic,
        net_moic=gross_moic * NET_MOIC_FACTOR,
        dpi=dpi,
        rvpi=rvpi,
        tvpi=dpi + rvpi,
        gross_irr=gross_irr,
        net_irr=net_irr,
    )


def summarize_capital(commitments: Iterable[Mapping[str, Any]]) -> Dict[str, float]:
    """Committed / called / paid / distributed totals and the unfunded remainder."""
    rows = list(commitments)
    committed = sum(float(c.get("committed_amount") or 0) for c in rows)
    called = sum(float(c.get("called_amount") or 0) for c in rows)
    paid = sum(float(c.get("paid_amount") or 0) for c in rows)
    distributed = sum(float(c.get("distributed_amount") or 0) for c in rows)
    return {
        "total_commitments": committed,
        "total_called": called,
        "total_paid": paid,
        "total_distributed": distributed,
        "unfunded_commitments": committed - called,
        "call_percentage": called / committed if committed > 0 else 0.0,
    }


def company_frame(companies: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """One row per portfolio company with invested, value and MOIC columns."""
    columns = ["id", "name", "industry", "status", "acquisition_date", "equity_invested", "total_value", "moic", "irr"]
    df = pd.DataFrame([{col: c.get(col) for col in columns} for c in companies], columns=columns)
    if df.empty:
        return df
    df["equity_invested"] = pd.to_numeric(df["equity_invested"], errors="coerce").fillna(0.0)
    df["total_value"] = pd.to_numeric(df["total_value"], errors="coerce").fillna(0.0)
    return df


def deal_pipeline_stats(deals: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Status-based deal counts for the fund performance report."""
    rows = list(deals)
    total = len(rows)
    won = sum(1 for d in rows if d.get("status") == "WON")
    return {
        "total_deals": total,
        "active_deals": sum(1 for d in rows if d.get("status") == "ACTIVE"),
        "won_deals": won,
        "passed_deals": sum(1 for d in rows if d.get("status") in ("PASSED", "LOST")),
        "conversion_rate": won / total if total else 0.0,
    }


def pipeline_analytics(deals: Iterable[Mapping[str, Any]], currency: str = "USD") -> Optional[Dict[str, Any]]:
    """
    Stage-level pipeline analytics.

    Deals are grouped by display stage (several raw stages share a label).
    Won deals are CLOSED_WON or CLOSED, lost deals CLOSED_LOST or PASSED.
    Returns None when there are no deals.
    """
    rows = list(deals)
    if not rows:
        return None

    df = pd.DataFrame(
        {
            "stage": [d.get("stage") for d in rows],
            "asking_price": [float(d.get("asking_price") or 0) for d in rows],
            "composite_score": [d.get("composite_score") for d in rows],
        }
    )
    df["display_stage"] = df["stage"].map(get_stage_display)

    grouped = (
        df.groupby("display_stage", sort=False)
        .agg(deal_count=("stage", "size"), stage_value=("asking_price", "sum"))
        .reset_index()
        .sort_values("deal_count", ascending=False, kind="stable")
    )
    stages: List[Dict[str, Any]] = [
        {"stage": row.display_stage, "count": int(row.deal_count), "total_value": float(row.stage_value)}
        for row in grouped.itertuples(index=False)
    ]

    total = len(df)
    won = int(df["stage"].isin(WON_STAGES).sum())
    lost = int(df["stage"].isin(LOST_STAGES).sum())
    decided = won + lost
    scores = pd.to_numeric(df["composite_score"], errors="coerce").dropna()

    return {
        "stages": stages,
        "total_deals": total,
        "total_active_deals": int((~df["stage"].isin(TERMINAL_STAGES)).sum()),
        "closed_won": won,
        "closed_lost": lost,
        "win_rate": format_percent(won / decided if decided else 0),
        "conversion_rate": format_percent(won / total if total else 0),
        "total_pipeline_value": format_money(float(df["asking_price"].sum()), currency),
        "average_score": round(float(scores.mean()), 1) if not scores.empty else None,
    }
