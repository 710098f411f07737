"""
copilot/tools.py
----------------

Five read-only tools the copilot may call.

Every query is filtered by the active fund id and excludes soft-deleted rows;
money is formatted in the fund's currency. ``TOOL_SCHEMAS`` is passed to the
Anthropic Messages API as ``tools=``; ``execute_tool`` dispatches a
``tool_use`` block to its handler.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping

from sqlalchemy import func, or_, select

from core.formatters import format_money, format_multiple, format_percent
from core.soft_delete import not_deleted
from database.db_setup import SessionLocal
from database.models import Commitment, Deal, Fund, Investor, PortfolioCompany, PortfolioMetric

logger = logging.getLogger(__name__)

TOOL_SCHEMAS: List[Dict[str, Any]] = [
    {
        "name": "getPipelineSummary",
        "description": "Get the current deal pipeline with counts by stage, total pipeline value, and active deal count.",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "getDealDetails",
        "description": (
            "Get detailed information about a specific deal by name or ID. "
            "Use this when the user asks about a particular deal."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "nameOrId": {"type": "string", "description": "The deal name (partial match supported) or deal ID"}
            },
            "required": ["nameOrId"],
        },
    },
    {
        "name": "getFundFinancials",
        "description": (
            "Get the fund financial summary including total committed capital, called capital, "
            "distributed capital, and performance metrics."
        ),
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "getInvestorDetails",
        "description": (
            "Get details about a specific investor/LP including their commitment, paid-in amount, "
            "and contact information."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "nameOrId": {
                    "type": "string",
                    "description": "The investor name (partial match supported) or investor ID",
                }
            },
            "required": ["nameOrId"],
        },
    },
    {
        "name": "getPortfolioMetrics",
        "description": "Get portfolio company metrics including revenue, EBITDA, margins, and performance data.",
        "input_schema": {
            "type": "object",
            "properties": {
                "companyName": {
                    "type": "string",
                    "description": "Optional company name to filter. If omitted, returns all portfolio companies.",
                }
            },
        },
    },
]


def _iso(value) -> Any:
    return value.isoformat() if value else None


def get_pipeline_summary(session, fund_id: str, currency: str, params: Mapping[str, Any]) -> Dict[str, Any]:
    deals = session.scalars(select(Deal).where(Deal.fund_id == fund_id, not_deleted(Deal))).all()
    active = [d for d in deals if d.status == "ACTIVE"]
    by_stage: Dict[str, int] = {}
    for deal in deals:
        by_stage[deal.stage] = by_stage.get(deal.stage, 0) + 1
    return {
        "totalDeals": len(deals),
        "activeDeals": len(active),
        "byStage": by_stage,
        "totalPipelineValue": format_money(sum(d.asking_price or 0 for d in active), currency),
    }


def get_deal_details(session, fund_id: str, currency: str, params: Mapping[str, Any]) -> Dict[str, Any]:
    needle = str(params.get("nameOrId") or "").strip()
    if not needle:
        return {"error": "Deal not found"}
    base = select(Deal).where(Deal.fund_id == fund_id, not_deleted(Deal))
    deal = session.scalar(base.where(Deal.id == needle)) or session.scalar(
        base.where(Deal.name.ilike(f"%{needle}%")).order_by(Deal.created_at.desc()).limit(1)
    )
    if deal is None:
        return {"error": "Deal not found"}
    return {
        "id": deal.id,
        "name": deal.name,
        "companyName": deal.company_name,
        "stage": deal.stage,
        "status": deal.status,
        "industry": deal.industry,
        "askingPrice": format_money(deal.asking_price, currency),
        "revenue": format_money(deal.revenue, currency),
        "ebitda": format_money(deal.ebitda, currency),
        "revenueMultiple": format_multiple(deal.revenue_multiple) if deal.revenue_multiple else None,
        "ebitdaMultiple": format_multiple(deal.ebitda_multiple) if deal.ebitda_multiple else None,
        "grossMargin": format_percent(deal.gross_margin) if deal.gross_margin else None,
        "ebitdaMargin": format_percent(deal.ebitda_margin) if deal.ebitda_margin else None,
        "employeeCount": deal.employee_count,
        "yearFounded": deal.year_founded,
        "location": ", ".join(p for p in (deal.city, deal.state, deal.country) if p),
        "investmentThesis": deal.investment_thesis,
        "keyRisks": deal.key_risks,
        "nextSteps": deal.next_steps,
        "expectedCloseDate": _iso(deal.expected_close_date),
    }


def get_fund_financials(session, fund_id: str, currency: str, params: Mapping[str, Any]) -> Dict[str, Any]:
    fund = session.get(Fund, fund_id)
    if fund is None:
        return {"error": "Fund not found"}
    committed, called, paid, distributed = session.execute(
        select(
            func.coalesce(func.sum(Commitment.committed_amount), 0),
            func.coalesce(func.sum(Commitment.called_amount), 0),
            func.coalesce(func.sum(Commitment.paid_amount), 0),
            func.coalesce(func.sum(Commitment.distributed_amount), 0),
        ).where(Commitment.fund_id == fund_id, not_deleted(Commitment))
    ).one()
    companies = session.scalars(
        select(PortfolioCompany).where(PortfolioCompany.fund_id == fund_id, not_deleted(PortfolioCompany))
    ).all()

    invested = sum(c.equity_invested or 0 for c in companies)
    weighted = sum((c.moic or 0) * (c.equity_invested or 0) for c in companies)
    return {
        "fundName": fund.name,
        "fundStatus": fund.status,
        "targetSize": format_money(fund.target_size, currency),
        "totalCommitted": format_money(committed, currency),
        "totalCalled": format_money(called, currency),
        "totalPaid": format_money(paid, currency),
        "totalDistributed": format_money(distributed, currency),
        "paidInPct": format_percent(paid / committed if committed else 0),
        "portfolioCount": len(companies),
        "totalMOIC": format_multiple(weighted / invested if invested else 0),
    }


def get_investor_details(session, fund_id: str, currency: str, params: Mapping[str, Any]) -> Dict[str, Any]:
    needle = str(params.get("nameOrId") or "").strip()
    if not needle:
        return {"error": "Investor not found in this fund"}
    row = session.execute(
        select(Commitment, Investor)
        .join(Investor, Investor.id == Commitment.investor_id)
        .where(
            Commitment.fund_id == fund_id,
            not_deleted(Commitment),
            not_deleted(Investor),
            or_(Investor.id == needle, Investor.name.ilike(f"%{needle}%")),
        )
        .limit(1)
    ).first()
    if row is None:
        return {"error": "Investor not found in this fund"}

    commitment, investor = row
    return {
        "id": investor.id,
        "name": investor.name,
        "type": investor.type,
        "status": investor.status,
        "email": investor.email,
        "contactName": investor.contact_name,
        "contactEmail": investor.contact_email,
        "committed": format_money(commitment.committed_amount, currency),
        "called": format_money(commitment.called_amount, currency),
        "paidIn": format_money(commitment.paid_amount, currency),
        "distributed": format_money(commitment.distributed_amount, currency),
        "unfunded": format_money((commitment.committed_amount or 0) - (commitment.called_amount or 0), currency),
        "commitmentStatus": commitment.status,
        "commitmentDate": _iso(commitment.commitment_date),
    }


def get_portfolio_metrics(session, fund_id: str, currency: str, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
    stmt = select(PortfolioCompany).where(PortfolioCompany.fund_id == fund_id, not_deleted(PortfolioCompany))
    if params.get("companyName"):
        stmt = stmt.where(PortfolioCompany.name.ilike(f"%{params['companyName']}%"))
    companies = session.scalars(stmt.order_by(PortfolioCompany.name.asc())).all()

    results = []
    for co in companies:
        latest = session.scalar(
            select(PortfolioMetric)
            .where(PortfolioMetric.company_id == co.id)
            .order_by(PortfolioMetric.period_date.desc())
            .limit(1)
        )
        latest_metrics = None
        if latest is not None:
            latest_metrics = {
                "period": _iso(latest.period_date),
                "periodType": latest.period_type,
                "revenue": format_money(latest.revenue, currency) if latest.revenue else None,
                "ebitda": format_money(latest.ebitda, currency) if latest.ebitda else None,
                "ebitdaMargin": format_percent(latest.ebitda_margin) if latest.ebitda_margin else None,
                "grossMargin": format_percent(latest.gross_margin) if latest.gross_margin else None,
                "revenueGrowth": format_percent(latest.revenue_growth) if latest.revenue_growth else None,
                "netIncome": format_money(latest.net_income, currency) if latest.net_income else None,
                "employeeCount": latest.employee_count,
            }
        results.append(
            {
                "id": co.id,
                "name": co.name,
                "status": co.status,
                "industry": co.industry,
                "equityInvested": format_money(co.equity_invested, currency),
                "totalInvestment": format_money(co.total_investment, currency),
                "moic": format_multiple(co.moic),
                "irr": format_percent(co.irr) if co.irr else None,
                "totalValue": format_money(co.total_value, currency) if co.total_value else None,
                "acquisitionDate": _iso(co.acquisition_date),
                "latestMetrics": latest_metrics,
            }
        )
    return results


TOOL_HANDLERS: Dict[str, Callable[..., Any]] = {
    "getPipelineSummary": get_pipeline_summary,
    "getDealDetails": get_deal_details,
    "getFundFinancials": get_fund_financials,
    "getInvestorDetails": get_investor_details,
    "getPortfolioMetrics": get_portfolio_metrics,
}


def execute_tool(fund_id: str, currency: str, name: str, tool_input: Mapping[str, Any]) -> Any:
    """Run one tool against the fund. Unknown tools return an error payload."""
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return {"error": f"Unknown tool: {name}"}
    with SessionLocal() as session:
        result = handler(session, fund_id, currency, tool_input or {})
    logger.info(f"[Copilot] Tool {name} executed for fund {fund_id}")
    return result
