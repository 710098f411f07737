"""
copilot/context.py
------------------
Snapshots of fund and user state injected into the copilot system prompt.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import func, select

from core.soft_delete import not_deleted
from database.db_setup import SessionLocal
from database.models import CapitalCall, Commitment, Deal, Fund, PortfolioCompany, User


def assemble_fund_context(fund_id: str) -> Dict[str, Any]:
    """
    Fund header, deal counts by stage, LP totals, the three latest capital
    calls and the portfolio. ``fund`` is None for an unknown id.
    """
    with SessionLocal() as session:
        fund = session.get(Fund, fund_id)
        deal_counts = session.execute(
            select(Deal.stage, func.count())
            .where(Deal.fund_id == fund_id, not_deleted(Deal))
            .group_by(Deal.stage)
        ).all()
        committed, paid, investor_count = session.execute(
            select(
                func.coalesce(func.sum(Commitment.committed_amount), 0),
                func.coalesce(func.sum(Commitment.paid_amount), 0),
                func.count(Commitment.id),
            ).where(Commitment.fund_id == fund_id, not_deleted(Commitment))
        ).one()
        calls = session.scalars(
            select(CapitalCall)
            .where(CapitalCall.fund_id == fund_id, not_deleted(CapitalCall))
            .order_by(CapitalCall.created_at.desc())
            .limit(3)
        ).all()
        companies = session.scalars(
            select(PortfolioCompany).where(PortfolioCompany.fund_id == fund_id, not_deleted(PortfolioCompany))
        ).all()

        return {
            "fund": (
                {
                    "id": fund.id,
                    "name": fund.name,
                    "currency": fund.currency,
                    "status": fund.status,
                    "target_size": float(fund.target_size or 0),
                    "type": fund.type,
                }
                if fund
                else None
            ),
            "deal_counts": [{"stage": stage, "count": int(count)} for stage, count in deal_counts],
            "investor_summary": {
                "total_committed": float(committed or 0),
                "total_paid": float(paid or 0),
                "investor_count": int(investor_count or 0),
            },
            "recent_capital_calls": [
                {"id": c.id, "call_date": c.call_date, "total_amount": float(c.total_amount), "status": c.status}
                for c in calls
            ],
            "portfolio_summary": [
                {
                    "name": c.name,
                    "status": c.status,
                    "equity_invested": float(c.equity_invested or 0),
                    "moic": float(c.moic) if c.moic else None,
                }
                for c in companies
            ],
        }


def assemble_user_context(user: Optional[User]) -> Dict[str, str]:
    if user is None:
        return {"id": "", "name": "there", "role": "FUND_ADMIN"}
    return {"id": user.id, "name": user.name or "there", "role": user.role or "FUND_ADMIN"}
