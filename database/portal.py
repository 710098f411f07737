"""
database/portal.py
------------------

Read-only views for LP portal accounts.

A portal account is a user linked to an ``Investor``; every view is
restricted to that investor's own commitments, capital activity, documents
shared with LPs and published reports. Draft calls and distributions are
not shown.
"""

from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import select

from core.errors import AccessDeniedError
from core.fund_access import get_active_user
from core.soft_delete import not_deleted
from database.db_setup import SessionLocal
from database.models import (
    CapitalCall,
    CapitalCallItem,
    Commitment,
    Distribution,
    DistributionItem,
    Document,
    Fund,
    Investor,
    Report,
)
from database.quarterly import serialize_report

RECENT_TRANSACTIONS = 10
NO_INVESTOR = "Access denied: this account is not linked to an investor"


def _require_investor(session, user_id: str) -> Investor:
    user = get_active_user(session, user_id)
    investor = session.get(Investor, user.investor_id) if user.investor_id else None
    if investor is None or investor.deleted_at is not None:
        raise AccessDeniedError(NO_INVESTOR)
    return investor


def _commitments(session, investor: Investor):
    return session.execute(
        select(Commitment, Fund)
        .join(Fund, Fund.id == Commitment.fund_id)
        .where(Commitment.investor_id == investor.id, not_deleted(Commitment))
        .order_by(Fund.name)
    ).all()


def get_portal_dashboard(user_id: str) -> Dict[str, Any]:
    """
    Capital account overview across every fund the investor committed to.

    Returns
    -------
    dict
        investor, summary (committed/called/paid/distributed, unfunded,
        called_pct, net_value), funds (per-fund breakdown) and the most
        recent capital call and distribution transactions.
    """
    with SessionLocal() as session:
        investor = _require_investor(session, user_id)
        rows = _commitments(session, investor)

        funds = []
        for commitment, fund in rows:
            funds.append(
                {
                    "fund_id": fund.id,
                    "fund_name": fund.name,
                    "currency": fund.currency,
                    "committed": commitment.committed_amount,
                    "called": commitment.called_amount,
                    "paid": commitment.paid_amount,
                    "distributed": commitment.distributed_amount,
                    "unfunded": commitment.committed_amount - commitment.called_amount,
                    "status": commitment.status,
                }
            )

        committed = sum(f["committed"] for f in funds)
        called = sum(f["called"] for f in funds)
        paid = sum(f["paid"] for f in funds)
        distributed = sum(f["distributed"] for f in funds)

        transactions: List[Dict[str, Any]] = []
        for item, call, fund_name in session.execute(
            select(CapitalCallItem, CapitalCall, Fund.name)
            .join(CapitalCall, CapitalCall.id == CapitalCallItem.capital_call_id)
            .join(Fund, Fund.id == CapitalCall.fund_id)
            .where(CapitalCallItem.investor_id == investor.id, not_deleted(CapitalCall), CapitalCall.status != "DRAFT")
        ).all():
            transactions.append(
                {
                    "type": "CAPITAL_CALL",
                    "date": call.call_date,
                    "fund_name": fund_name,
                    "description": call.purpose or f"Capital Call #{call.call_number}",
                    "amount": item.call_amount,
                    "status": item.status,
                }
            )
        for item, dist, fund_name in session.execute(
            select(DistributionItem, Distribution, Fund.name)
            .join(Distribution, Distribution.id == DistributionItem.distribution_id)
            .join(Fund, Fund.id == Distribution.fund_id)
            .where(
                DistributionItem.investor_id == investor.id,
                not_deleted(Distribution),
                Distribution.status != "DRAFT",
            )
        ).all():
            transactions.append(
                {
                    "type": "DISTRIBUTION",
                    "date": dist.distribution_date,
                    "fund_name": fund_name,
                    "description": dist.source or f"Distribution #{dist.distribution_number}",
                    "amount": item.net_amount,
                    "status": item.status,
                }
            )
        transactions.sort(key=lambda t: t["date"], reverse=True)
        for tx in transactions:
            tx["date"] = tx["date"].isoformat()

        return {
            "investor": {"id": investor.id, "name": investor.name, "type": investor.type},
            "summary": {
                "total_committed": committed,
                "total_called": called,
                "total_paid": paid,
                "total_distributed": distributed,
                "unfunded": committed - called,
                "called_pct": round(called / committed * 100, 1) if committed > 0 else 0,
                "net_value": paid - distributed,
            },
            "funds": funds,
            "recent_transactions": transactions[:RECENT_TRANSACTIONS],
        }


def get_portal_documents(user_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        investor = _require_investor(session, user_id)
        docs = session.scalars(
            select(Document)
            .where(
                Document.investor_id == investor.id,
                Document.visible_to_lps.is_(True),
                Document.is_latest.is_(True),
                not_deleted(Document),
            )
            .order_by(Document.created_at.desc())
        ).all()
        return [
            {
                "id": d.id,
                "name": d.name,
                "file_name": d.file_name,
                "file_url": d.file_url,
                "file_type": d.file_type,
                "file_size": d.file_size,
                "category": d.category,
                "version": d.version,
                "created_at": d.created_at.isoformat() if d.created_at else None,
            }
            for d in docs
        ]


def get_portal_reports(user_id: str) -> List[Dict[str, Any]]:
    """Published reports of the funds the investor committed to."""
    with SessionLocal() as session:
        investor = _require_investor(session, user_id)
        fund_names = {fund.id: fund.name for _, fund in _commitments(session, investor)}
        if not fund_names:
            return []
        reports = session.scalars(
            select(Report)
            .where(Report.fund_id.in_(list(fund_names)), Report.status == "PUBLISHED")
            .order_by(Report.published_at.desc())
        ).all()
        return [{**serialize_report(r), "fund_name": fund_names[r.fund_id]} for r in reports]
