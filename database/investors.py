"""
database/investors.py
---------------------

Investor (LP) records and their fund commitments.

Investors belong to an organization and can commit to several of its funds;
list and detail views are scoped to the active fund.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import func, or_, select

from core.audit import CREATE, DELETE, UPDATE, compute_changes, log_audit
from core.csv_export import generate_csv
from core.errors import ConflictError, NotFoundError, ServiceError
from core.formatters import format_money, parse_money
from core.fund_access import require_module_permission
from core.pagination import paginated_result, parse_pagination_params
from core.permissions import INVESTORS
from core.soft_delete import not_deleted, soft_delete
from database.capital_calls import parse_date
from database.db_setup import SessionLocal
from database.models import Commitment, Fund, Investor

logger = logging.getLogger(__name__)

INVESTOR_TYPE_DISPLAY = {
    "INDIVIDUAL": "Individual",
    "JOINT": "Joint Account",
    "TRUST": "Trust",
    "IRA": "IRA",
    "FAMILY_OFFICE": "Family Office",
    "FOUNDATION": "Foundation",
    "ENDOWMENT": "Endowment",
    "PENSION": "Pension Fund",
    "FUND_OF_FUNDS": "Fund of Funds",
    "CORPORATE": "Corporate",
    "SOVEREIGN_WEALTH": "Sovereign Wealth",
    "INSURANCE": "Insurance Company",
    "BANK": "Bank",
    "OTHER": "Other",
}

INVESTOR_STATUS_DISPLAY = {
    "PROSPECT": "Prospect",
    "CONTACTED": "Contacted",
    "INTERESTED": "Interested",
    "DUE_DILIGENCE": "Due Diligence",
    "COMMITTED": "Committed",
    "ACTIVE": "Active",
    "INACTIVE": "Inactive",
    "DECLINED": "Declined",
}

COMMITMENT_STATUSES = ("PENDING", "SIGNED", "FUNDED", "ACTIVE", "DEFAULTED", "TRANSFERRED", "REDEEMED")

_DISPLAY_TO_TYPE = {v: k for k, v in INVESTOR_TYPE_DISPLAY.items()}
_DISPLAY_TO_STATUS = {v: k for k, v in INVESTOR_STATUS_DISPLAY.items()}

_TEXT_FIELDS = ("email", "phone", "contact_name", "contact_email", "city", "country", "notes")

EXPORT_COLUMNS = [
    ("Name", "name"),
    ("Type", lambda r: INVESTOR_TYPE_DISPLAY.get(r["type"], r["type"])),
    ("Status", lambda r: INVESTOR_STATUS_DISPLAY.get(r["status"], r["status"])),
    ("Email", "email"),
    ("Contact", "contact_name"),
    ("Committed", "total_committed"),
    ("Called", "total_called"),
    ("Paid", "total_paid"),
    ("Distributed", "total_distributed"),
]


def _resolve_type(value: Optional[str]) -> str:
    value = value or "INDIVIDUAL"
    resolved = _DISPLAY_TO_TYPE.get(value, value)
    if resolved not in INVESTOR_TYPE_DISPLAY:
        raise ServiceError(f"Unknown investor type: {value}")
    return resolved


def _resolve_status(value: Optional[str]) -> str:
    value = value or "PROSPECT"
    resolved = _DISPLAY_TO_STATUS.get(value, value)
    if resolved not in INVESTOR_STATUS_DISPLAY:
        raise ServiceError(f"Unknown investor status: {value}")
    return resolved


def _text_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: (str(data[key]).strip() or None) if data[key] is not None else None for key in _TEXT_FIELDS if key in data}


def _fund_commitments(session, fund_id: str, investor_id: str):
    return session.scalars(
        select(Commitment).where(
            Commitment.fund_id == fund_id,
            Commitment.investor_id == investor_id,
            not_deleted(Commitment),
        )
    ).all()


def _investor_scope(fund: Fund):
    """Investors of the fund's organization or with a commitment to the fund."""
    committed = select(Commitment.investor_id).where(Commitment.fund_id == fund.id, not_deleted(Commitment))
    clauses = [Investor.id.in_(committed)]
    if fund.organization_id:
        clauses.append(Investor.organization_id == fund.organization_id)
    return or_(*clauses)


def load_investor(session, fund: Fund, investor_id: str) -> Investor:
    investor = session.scalar(
        select(Investor).where(Investor.id == investor_id, not_deleted(Investor), _investor_scope(fund))
    )
    if investor is None:
        raise NotFoundError("Investor not found")
    return investor


def _serialize(investor: Investor, commitments, currency: str) -> Dict[str, Any]:
    totals = {
        "total_committed": sum(c.committed_amount or 0 for c in commitments),
        "total_called": sum(c.called_amount or 0 for c in commitments),
        "total_paid": sum(c.paid_amount or 0 for c in commitments),
        "total_distributed": sum(c.distributed_amount or 0 for c in commitments),
    }
    data = investor.as_dict()
    data.update(totals)
    data["type_display"] = INVESTOR_TYPE_DISPLAY.get(investor.type, investor.type)
    data["status_display"] = INVESTOR_STATUS_DISPLAY.get(investor.status, investor.status)
    data["total_committed_display"] = format_money(totals["total_committed"], currency)
    return data


# --------------------------------------------------------------------------- #
# Investors
# --------------------------------------------------------------------------- #

def list_investors(
    user_id: str,
    fund_id: str,
    *,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    investor_type: Optional[str] = None,
) -> Dict[str, Any]:
    params = parse_pagination_params(page, page_size, search)
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        filters = [not_deleted(Investor), _investor_scope(fund)]
        if params.search:
            pattern = f"%{params.search}%"
            filters.append(or_(Investor.name.ilike(pattern), Investor.email.ilike(pattern)))
        if status:
            filters.append(Investor.status == _resolve_status(status))
        if investor_type:
            filters.append(Investor.type == _resolve_type(investor_type))

        total = session.scalar(select(func.count()).select_from(Investor).where(*filters)) or 0
        rows = session.scalars(
            select(Investor)
            .where(*filters)
            .order_by(Investor.created_at.desc())
            .offset(params.skip)
            .limit(params.page_size)
        ).all()
        data = [_serialize(inv, _fund_commitments(session, fund.id, inv.id), fund.currency) for inv in rows]
        return paginated_result(data, int(total), params.page, params.page_size)


def get_investor(user_id: str, fund_id: str, investor_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investor = load_investor(session, fund, investor_id)
        commitments = _fund_commitments(session, fund.id, investor.id)
        data = _serialize(investor, commitments, fund.currency)
        data["commitments"] = [
            {**c.as_dict(), "fund_name": fund.name, "unfunded_amount": (c.committed_amount or 0) - (c.called_amount or 0)}
            for c in commitments
        ]
        return data


def create_investor(user_id: str, fund_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    name = str(data.get("name") or "").strip()
    if len(name) < 2:
        raise ServiceError("Name must be at least 2 characters")
    investor_type = _resolve_type(data.get("type"))
    status = _resolve_status(data.get("status"))

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investor = Investor(
            organization_id=fund.organization_id,
            name=name,
            type=investor_type,
            status=status,
            **_text_fields(data),
        )
        session.add(investor)
        session.commit()
        logger.info(f"[Investors] ✅ Created investor '{investor.name}'")

        log_audit(session, user_id=user_id, action=CREATE, entity_type="Investor", entity_id=investor.id)
        return _serialize(investor, [], fund.currency)


def update_investor(user_id: str, fund_id: str, investor_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    updates = _text_fields(data)
    if data.get("name"):
        name = str(data["name"]).strip()
        if len(name) < 2:
            raise ServiceError("Name must be at least 2 characters")
        updates["name"] = name
    if data.get("type"):
        updates["type"] = _resolve_type(data["type"])
    if data.get("status"):
        updates["status"] = _resolve_status(data["status"])

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investor = load_investor(session, fund, investor_id)
        old = {key: getattr(investor, key) for key in updates}
        for key, value in updates.items():
            setattr(investor, key, value)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Investor",
            entity_id=investor.id,
            changes=compute_changes(old, updates),
        )
        return _serialize(investor, _fund_commitments(session, fund.id, investor.id), fund.currency)


def delete_investor(user_id: str, fund_id: str, investor_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investor = load_investor(session, fund, investor_id)
        soft_delete(session, "investor", investor.id)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="Investor", entity_id=investor.id)
        return {"success": True}


def export_investors_csv(user_id: str, fund_id: str) -> str:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investors = session.scalars(
            select(Investor).where(not_deleted(Investor), _investor_scope(fund)).order_by(Investor.name.asc())
        ).all()
        rows = [_serialize(inv, _fund_commitments(session, fund.id, inv.id), fund.currency) for inv in investors]
        return generate_csv(EXPORT_COLUMNS, rows)


# --------------------------------------------------------------------------- #
# Commitments
# --------------------------------------------------------------------------- #

def _load_commitment(session, fund: Fund, commitment_id: str) -> Commitment:
    commitment = session.scalar(
        select(Commitment).where(
            Commitment.id == commitment_id,
            Commitment.fund_id == fund.id,
            not_deleted(Commitment),
        )
    )
    if commitment is None:
        raise NotFoundError("Commitment not found.")
    return commitment


def create_commitment(user_id: str, fund_id: str, investor_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """One commitment per investor and fund; amount must be positive."""
    if data.get("committed_amount") in (None, ""):
        raise ServiceError("Fund and committed amount are required.")
    amount = parse_money(data["committed_amount"])
    if amount <= 0:
        raise ServiceError("Invalid committed amount.")
    status = data.get("status") or "PENDING"
    if status not in COMMITMENT_STATUSES:
        raise ServiceError(f"Unknown commitment status: {status}")

    commitment_date = data.get("commitment_date")
    if commitment_date:
        commitment_date = parse_date(commitment_date, "Commitment date")

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investor = load_investor(session, fund, investor_id)
        if _fund_commitments(session, fund.id, investor.id):
            raise ConflictError("This investor already has a commitment to this fund.")

        commitment = Commitment(
            investor_id=investor.id,
            fund_id=fund.id,
            committed_amount=amount,
            status=status,
            commitment_date=commitment_date or date.today(),
            notes=data.get("notes") or None,
        )
        session.add(commitment)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="Commitment",
            entity_id=commitment.id,
            changes={
                "committed_amount": {"old": None, "new": amount},
                "status": {"old": None, "new": status},
            },
        )
        return commitment.as_dict()


def update_commitment(user_id: str, fund_id: str, commitment_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    if data.get("committed_amount") not in (None, ""):
        amount = parse_money(data["committed_amount"])
        if amount > 0:
            updates["committed_amount"] = amount
    for key in ("called_amount", "paid_amount"):
        if data.get(key) not in (None, ""):
            updates[key] = parse_money(data[key])
    if data.get("status"):
        if data["status"] not in COMMITMENT_STATUSES:
            raise ServiceError(f"Unknown commitment status: {data['status']}")
        updates["status"] = data["status"]
    if "notes" in data:
        updates["notes"] = data["notes"] or None
    if not updates:
        raise ServiceError("No changes provided.")

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        commitment = _load_commitment(session, fund, commitment_id)
        old = {key: getattr(commitment, key) for key in updates}
        for key, value in updates.items():
            setattr(commitment, key, value)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Commitment",
            entity_id=commitment.id,
            changes=compute_changes(old, updates),
        )
        return commitment.as_dict()


def delete_commitment(user_id: str, fund_id: str, commitment_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        commitment = _load_commitment(session, fund, commitment_id)
        soft_delete(session, "commitment", commitment.id)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="Commitment", entity_id=commitment.id)
        return {"success": True}
