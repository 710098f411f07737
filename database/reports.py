"""
database/reports.py
-------------------

Read-only reporting: fund performance, LP capital account statements, the
dashboard overview and CSV exports of report tables.

All figures are computed from the stored commitments, capital activity and
portfolio marks at request time; nothing here writes to the database.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy import select

from analytics.irr import CashFlow, calculate_fund_irr, calculate_lp_irr
from analytics.performance import (
    ACTIVE_COMPANY_STATUSES,
    company_frame,
    compute_fund_metrics,
    deal_pipeline_stats,
    summarize_capital,
)
from analytics.waterfall import WaterfallInput, calculate_investor_waterfall, calculate_waterfall
from core.csv_export import dataframe_to_csv, generate_csv
from core.errors import NotFoundError
from core.formatters import format_money, format_multiple, format_percent
from core.fund_access import require_module_permission
from core.permissions import INVESTORS, REPORTS
from core.soft_delete import not_deleted
from core.stages import get_stage_display
from database.db_setup import SessionLocal
from database.models import (
    AuditLog,
    CapitalCall,
    CapitalCallItem,
    Commitment,
    Deal,
    Distribution,
    DistributionItem,
    Fund,
    Investor,
    PortfolioCompany,
    User,
)

logger = logging.getLogger(__name__)

DEFAULT_CARRY = 0.20
LP_ESTIMATED_GAIN = 1.1

COMPANY_CSV_HEADERS = {
    "name": "Company",
    "industry": "Industry",
    "status": "Status",
    "acquisition_date": "Acquisition Date",
    "equity_invested": "Equity Invested",
    "total_value": "Total Value",
    "moic": "MOIC",
    "irr": "IRR",
}


def _num(value: Any) -> Optional[float]:
    return None if value is None or pd.isna(value) else float(value)


def _waterfall_params(fund: Fund, distributable: float, contributed: float) -> WaterfallInput:
    vintage = fund.vintage or datetime.now().year
    return WaterfallInput(
        total_distributable=distributable,
        total_contributed=contributed,
        hurdle_rate=fund.hurdle_rate,
        carried_interest=fund.carried_interest or DEFAULT_CARRY,
        catch_up_rate=fund.catch_up_rate,
        holding_period_years=max(1, datetime.now().year - vintage),
        management_fee=fund.management_fee,
    )


def _format_waterfall(result, currency: str) -> Dict[str, Any]:
    return {
        "tiers": result.as_dict()["tiers"],
        "lp_total": format_money(result.lp_total, currency),
        "gp_total": format_money(result.gp_total, currency),
        "effective_carry_pct": (
            format_percent(result.effective_carry_pct) if result.effective_carry_pct is not None else None
        ),
        "lp_multiple": format_multiple(result.lp_multiple),
    }


def _fund_rows(session, fund: Fund) -> Dict[str, List[Dict[str, Any]]]:
    commitments = session.scalars(
        select(Commitment).where(Commitment.fund_id == fund.id, not_deleted(Commitment))
    ).all()
    companies = session.scalars(
        select(PortfolioCompany).where(PortfolioCompany.fund_id == fund.id, not_deleted(PortfolioCompany))
    ).all()
    deals = session.scalars(select(Deal).where(Deal.fund_id == fund.id, not_deleted(Deal))).all()
    return {
        "commitments": [c.as_dict() for c in commitments],
        "companies": [c.as_dict() for c in companies],
        "deals": [d.as_dict() for d in deals],
    }


# --------------------------------------------------------------------------- #
# Fund performance
# --------------------------------------------------------------------------- #

def get_fund_performance_report(user_id: str, fund_id: str) -> Dict[str, Any]:
    """
    Fund performance report.

    Gross IRR uses FULLY_FUNDED capital calls as outflows, COMPLETED
    distributions as inflows and the portfolio's unrealized value as NAV.
    The waterfall runs on distributed plus unrealized value against paid-in
    capital, and is None while there is nothing to distribute.
    """
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, REPORTS)
        rows = _fund_rows(session, fund)
        calls = session.scalars(
            select(CapitalCall).where(
                CapitalCall.fund_id == fund.id,
                CapitalCall.status == "FULLY_FUNDED",
                not_deleted(CapitalCall),
            )
        ).all()
        distributions = session.scalars(
            select(Distribution).where(
                Distribution.fund_id == fund.id,
                Distribution.status == "COMPLETED",
                not_deleted(Distribution),
            )
        ).all()
        call_flows = [CashFlow(c.call_date, c.total_amount) for c in calls]
        dist_flows = [CashFlow(d.distribution_date, d.total_amount) for d in distributions]

    currency = fund.currency
    capital = summarize_capital(rows["commitments"])
    companies = rows["companies"]
    total_invested = sum(float(c["equity_invested"] or 0) for c in companies)
    total_value = sum(float(c["total_value"] or 0) for c in companies)
    realized = sum(float(c["realized_value"] or 0) for c in companies)
    unrealized = sum(float(c["unrealized_value"] or 0) for c in companies)

    gross_irr = calculate_fund_irr(call_flows, dist_flows, unrealized, datetime.now())
    metrics = compute_fund_metrics(
        total_paid=capital["total_paid"],
        total_distributed=capital["total_distributed"],
        total_invested=total_invested,
        total_value=total_value,
        unrealized_value=unrealized,
        gross_irr=gross_irr,
        management_fee=fund.management_fee,
    )

    waterfall = None
    distributable = capital["total_distributed"] + unrealized
    if distributable > 0:
        result = calculate_waterfall(_waterfall_params(fund, distributable, capital["total_paid"]))
        waterfall = _format_waterfall(result, currency)

    pipeline = deal_pipeline_stats(rows["deals"])
    pipeline["conversion_rate"] = format_percent(pipeline["conversion_rate"])

    frame = company_frame(companies)
    company_table = []
    if not frame.empty:
        frame = frame.sort_values("total_value", ascending=False)
        company_table = [
            {
                "id": row.id,
                "name": row.name,
                "status": row.status,
                "equity_invested": format_money(row.equity_invested, currency),
                "total_value": format_money(row.total_value, currency),
                "moic": format_multiple(_num(row.moic)),
                "irr": format_percent(row.irr) if _num(row.irr) is not None else None,
            }
            for row in frame.itertuples(index=False)
        ]

    return {
        "fund": {
            "id": fund.id,
            "name": fund.name,
            "vintage": fund.vintage,
            "target_size": format_money(fund.target_size, currency),
            "status": fund.status,
        },
        "capital": {
            key: (format_percent(value) if key == "call_percentage" else format_money(value, currency))
            for key, value in capital.items()
        },
        "portfolio": {
            "total_companies": len(companies),
            "active_companies": sum(1 for c in companies if c["status"] in ACTIVE_COMPANY_STATUSES),
            "exited_companies": sum(1 for c in companies if c["status"] == "EXITED"),
            "total_invested": format_money(total_invested, currency),
            "total_value": format_money(total_value, currency),
            "realized_value": format_money(realized, currency),
            "unrealized_value": format_money(unrealized, currency),
        },
        "performance": {
            "gross_moic": format_multiple(metrics.gross_moic),
            "net_moic": format_multiple(metrics.net_moic),
            "dpi": format_multiple(metrics.dpi),
            "rvpi": format_multiple(metrics.rvpi),
            "tvpi": format_multiple(metrics.tvpi),
            "gross_irr": format_percent(metrics.gross_irr) if metrics.gross_irr is not None else None,
            "net_irr": format_percent(metrics.net_irr) if metrics.net_irr is not None else None,
        },
        "waterfall": waterfall,
        "deal_pipeline": pipeline,
        "companies": company_table,
        "raw": {**capital, **metrics.as_dict()},
    }


# --------------------------------------------------------------------------- #
# LP capital account
# --------------------------------------------------------------------------- #

def get_lp_capital_statement(user_id: str, fund_id: str, investor_id: str) -> Dict[str, Any]:
    """
    Capital account of one LP in the active fund.

    Residual value is estimated as paid-in capital plus 10%. The LP IRR uses
    PAID call items and PAID distribution items only.
    """
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investor = session.scalar(
            select(Investor).where(
                Investor.id == investor_id,
                Investor.organization_id == fund.organization_id,
                not_deleted(Investor),
            )
        )
        if investor is None:
            raise NotFoundError("Investor not found")
        commitment = session.scalar(
            select(Commitment).where(
                Commitment.investor_id == investor.id,
                Commitment.fund_id == fund.id,
                not_deleted(Commitment),
            )
        )
        if commitment is None:
            raise NotFoundError("This investor has no commitment to this fund")

        all_committed = sum(
            c for c in session.scalars(
                select(Commitment.committed_amount).where(Commitment.fund_id == fund.id, not_deleted(Commitment))
            ).all()
        )
        call_items = session.execute(
            select(CapitalCallItem, CapitalCall)
            .join(CapitalCall, CapitalCall.id == CapitalCallItem.capital_call_id)
            .where(
                CapitalCallItem.investor_id == investor.id,
                CapitalCall.fund_id == fund.id,
                not_deleted(CapitalCall),
            )
            .order_by(CapitalCall.call_date.desc())
        ).all()
        dist_items = session.execute(
            select(DistributionItem, Distribution)
            .join(Distribution, Distribution.id == DistributionItem.distribution_id)
            .where(
                DistributionItem.investor_id == investor.id,
                Distribution.fund_id == fund.id,
                not_deleted(Distribution),
            )
            .order_by(Distribution.distribution_date.desc())
        ).all()

    currency = fund.currency
    committed = commitment.committed_amount or 0
    called = commitment.called_amount or 0
    paid = commitment.paid_amount or 0
    distributed = commitment.distributed_amount or 0
    ownership = committed / all_committed if all_committed > 0 else 0.0
    estimated_value = paid * LP_ESTIMATED_GAIN
    moic = (distributed + estimated_value) / paid if paid > 0 else 1.0

    lp_irr = calculate_lp_irr(
        [CashFlow(call.call_date, item.paid_amount) for item, call in call_items if item.status == "PAID"],
        [CashFlow(dist.distribution_date, item.net_amount) for item, dist in dist_items if item.status == "PAID"],
        estimated_value,
        datetime.now(),
    )

    waterfall = None
    if distributed + estimated_value > 0 and paid > 0:
        params = _waterfall_params(fund, distributed + estimated_value, paid)
        waterfall = _format_waterfall(calculate_investor_waterfall(params, 1.0), currency)

    return {
        "investor": {"id": investor.id, "name": investor.name, "type": investor.type},
        "commitment": {
            "committed_amount": format_money(committed, currency),
            "called_amount": format_money(called, currency),
            "paid_amount": format_money(paid, currency),
            "distributed_amount": format_money(distributed, currency),
            "unfunded_amount": format_money(committed - called, currency),
            "ownership_pct": format_percent(ownership),
        },
        "performance": {
            "net_contributions": format_money(paid - distributed, currency),
            "total_value": format_money(estimated_value + distributed, currency),
            "moic": format_multiple(moic),
            "irr": format_percent(lp_irr) if lp_irr is not None else None,
        },
        "capital_calls": [
            {
                "id": item.id,
                "call_number": call.call_number,
                "call_date": call.call_date.isoformat(),
                "amount": format_money(item.call_amount, currency),
                "paid_amount": format_money(item.paid_amount, currency),
                "status": item.status,
            }
            for item, call in call_items
        ],
        "distributions": [
            {
                "id": item.id,
                "distribution_number": dist.distribution_number,
                "date": dist.distribution_date.isoformat(),
                "gross_amount": format_money(item.gross_amount, currency),
                "net_amount": format_money(item.net_amount, currency),
                "type": dist.type,
                "status": item.status,
            }
            for item, dist in dist_items
        ],
        "waterfall": waterfall,
    }


# --------------------------------------------------------------------------- #
# Dashboard
# --------------------------------------------------------------------------- #

def get_dashboard_data(user_id: str, fund_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, REPORTS)
        rows = _fund_rows(session, fund)
        investor_count = len(
            session.scalars(
                select(Commitment.investor_id).where(Commitment.fund_id == fund.id, not_deleted(Commitment)).distinct()
            ).all()
        )
        recent = session.execute(
            select(AuditLog, User.name)
            .outerjoin(User, User.id == AuditLog.user_id)
            .where(AuditLog.user_id.in_(select(User.id).where(User.organization_id == fund.organization_id)))
            .order_by(AuditLog.created_at.desc())
            .limit(10)
        ).all()

    currency = fund.currency
    capital = summarize_capital(rows["commitments"])
    companies = rows["companies"]
    total_invested = sum(float(c["equity_invested"] or 0) for c in companies)
    total_value = sum(float(c["total_value"] or 0) for c in companies)
    unrealized = sum(float(c["unrealized_value"] or 0) for c in companies)
    metrics = compute_fund_metrics(
        total_paid=capital["total_paid"],
        total_distributed=capital["total_distributed"],
        total_invested=total_invested,
        total_value=total_value,
        unrealized_value=unrealized,
    )
    deals = sorted(rows["deals"], key=lambda d: d["updated_at"], reverse=True)

    return {
        "fund_name": fund.name,
        "total_aum": format_money(total_value, currency),
        "total_commitments": format_money(capital["total_commitments"], currency),
        "capital_called": format_money(capital["total_called"], currency),
        "capital_call_pct": format_percent(capital["call_percentage"]),
        "active_deals": sum(1 for d in deals if d["status"] == "ACTIVE"),
        "total_deals": len(deals),
        "investor_count": investor_count,
        "gross_moic": format_multiple(metrics.gross_moic),
        "net_moic": format_multiple(metrics.net_moic),
        "tvpi": format_multiple(metrics.tvpi),
        "portfolio_companies": len(companies),
        "recent_deals": [
            {
                "id": d["id"],
                "name": d["name"],
                "stage": get_stage_display(d["stage"]),
                "asking_price": format_money(d["asking_price"], currency) if d["asking_price"] else None,
            }
            for d in deals[:5]
        ],
        "recent_activity": [
            {
                "id": log.id,
                "action": log.action,
                "entity_type": log.entity_type,
                "entity_id": log.entity_id,
                "user_name": name,
                "created_at": log.created_at.isoformat(),
            }
            for log, name in recent
        ],
    }


# --------------------------------------------------------------------------- #
# CSV exports
# --------------------------------------------------------------------------- #

def export_portfolio_csv(user_id: str, fund_id: str) -> str:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, REPORTS)
        companies = _fund_rows(session, fund)["companies"]

    frame = company_frame(companies)
    return dataframe_to_csv(frame[list(COMPANY_CSV_HEADERS)], COMPANY_CSV_HEADERS)


def export_capital_statement_csv(user_id: str, fund_id: str, investor_id: str) -> str:
    """Call and distribution history of one LP as a single ledger."""
    statement = get_lp_capital_statement(user_id, fund_id, investor_id)
    ledger: List[Dict[str, Optional[str]]] = []
    for call in statement["capital_calls"]:
        ledger.append(
            {
                "date": call["call_date"],
                "kind": f"Capital Call #{call['call_number']}",
                "amount": call["amount"],
                "paid": call["paid_amount"],
                "status": call["status"],
            }
        )
    for dist in statement["distributions"]:
        ledger.append(
            {
                "date": dist["date"],
                "kind": f"Distribution #{dist['distribution_number']}",
                "amount": dist["gross_amount"],
                "paid": dist["net_amount"],
                "status": dist["status"],
            }
        )
    ledger.sort(key=lambda row: row["date"], reverse=True)
    columns = [
        ("Date", "date"),
        ("Transaction", "kind"),
        ("Amount", "amount"),
        ("Paid / Net", "paid"),
        ("Status", "status"),
    ]
    return generate_csv(columns, ledger)
