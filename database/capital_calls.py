"""
database/capital_calls.py
-------------------------

Capital calls: creation with pro-rata investor items, workflow status
changes and payment recording.

Status changes follow ``core.workflows`` (DRAFT → APPROVED → SENT →
PARTIALLY_FUNDED → FULLY_FUNDED, with CANCELLED from DRAFT/APPROVED).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import func, select

from core.audit import CREATE, DELETE, UPDATE, log_audit
from core.errors import NotFoundError, ServiceError
from core.formatters import format_money, parse_money
from core.fund_access import require_module_permission
from core.pagination import paginated_result, parse_pagination_params
from core.permissions import CAPITAL
from core.soft_delete import not_deleted, soft_delete
from core.workflows import CAPITAL_CALL, can_transition_status, get_allowed_next_statuses, validate_transition
from database.db_setup import SessionLocal
from database.models import CapitalCall, CapitalCallItem, Commitment, Fund, Investor

logger = logging.getLogger(__name__)

CALL_STATUS_DISPLAY = {
    "DRAFT": "Draft",
    "APPROVED": "Approved",
    "SENT": "Sent",
    "PARTIALLY_FUNDED": "Partially Funded",
    "FULLY_FUNDED": "Fully Funded",
    "CANCELLED": "Cancelled",
}
_DISPLAY_TO_STATUS = {v: k for k, v in CALL_STATUS_DISPLAY.items()}

ITEM_STATUS_DISPLAY = {
    "PENDING": "Pending",
    "NOTIFIED": "Notified",
    "PARTIAL": "Partial",
    "PAID": "Paid",
    "OVERDUE": "Overdue",
    "DEFAULTED": "Defaulted",
}

CALLABLE_COMMITMENT_STATUSES = ("ACTIVE", "FUNDED", "SIGNED")
PAYABLE_CALL_STATUSES = ("SENT", "PARTIALLY_FUNDED")


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #

def allocate_pro_rata(total: float, weights: Sequence[float]) -> List[float]:
    """
    Split ``total`` across ``weights`` rounded to cents.

    The last share absorbs the rounding remainder so the parts sum to the
    total exactly.
    """
    weight_sum = float(sum(weights))
    if not weights or weight_sum <= 0:
        return []
    shares = [round(total * w / weight_sum, 2) for w in weights[:-1]]
    shares.append(round(total - sum(shares), 2))
    return shares


def parse_date(value: Any, label: str) -> date:
    if isinstance(value, date):
        return value
    if not value:
        raise ServiceError(f"{label} is required")
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ServiceError(f"Invalid {label.lower()}: {value}") from None


def _optional_money(value: Any) -> Optional[float]:
    return parse_money(value) if value not in (None, "") else None


def _serialize(call: CapitalCall, currency: str, investor_names: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    data = call.as_dict()
    paid = sum(item.paid_amount or 0 for item in call.items)
    data["status_display"] = CALL_STATUS_DISPLAY.get(call.status, call.status)
    data["paid_amount"] = paid
    data["total_amount_display"] = format_money(call.total_amount, currency)
    data["paid_amount_display"] = format_money(paid, currency)
    data["item_count"] = len(call.items)
    data["allowed_transitions"] = get_allowed_next_statuses(CAPITAL_CALL, call.status)
    if investor_names is not None:
        data["items"] = [
            {
                **item.as_dict(),
                "investor_name": investor_names.get(item.investor_id),
                "status_display": ITEM_STATUS_DISPLAY.get(item.status, item.status),
            }
            for item in call.items
        ]
    return data


def _investor_names(session, call: CapitalCall) -> Dict[str, str]:
    ids = [item.investor_id for item in call.items]
    if not ids:
        return {}
    return dict(session.execute(select(Investor.id, Investor.name).where(Investor.id.in_(ids))).all())


def _load_call(session, user_id: str, fund_id: str, call_id: str) -> CapitalCall:
    fund = require_module_permission(session, user_id, fund_id, CAPITAL)
    call = session.scalar(
        select(CapitalCall).where(CapitalCall.id == call_id, CapitalCall.fund_id == fund.id, not_deleted(CapitalCall))
    )
    if call is None:
        raise NotFoundError("Capital call not found")
    return call


def _commitment_for(session, investor_id: str, fund_id: str) -> Optional[Commitment]:
    return session.scalar(
        select(Commitment).where(
            Commitment.investor_id == investor_id,
            Commitment.fund_id == fund_id,
            not_deleted(Commitment),
        )
    )


def _resolve_status(status: str) -> str:
    return _DISPLAY_TO_STATUS.get(status, status)


# --------------------------------------------------------------------------- #
# Queries
# --------------------------------------------------------------------------- #

def list_capital_calls(
    user_id: str,
    fund_id: str,
    *,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    params = parse_pagination_params(page, page_size)
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, CAPITAL)
        filters = [CapitalCall.fund_id == fund.id, not_deleted(CapitalCall)]
        if status:
            filters.append(CapitalCall.status == _resolve_status(status))

        total = session.scalar(select(func.count()).select_from(CapitalCall).where(*filters)) or 0
        calls = session.scalars(
            select(CapitalCall)
            .where(*filters)
            .order_by(CapitalCall.call_number.desc())
            .offset(params.skip)
            .limit(params.page_size)
        ).all()
        data = [_serialize(c, fund.currency) for c in calls]
        return paginated_result(data, int(total), params.page, params.page_size)


def get_capital_call(user_id: str, fund_id: str, call_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        call = _load_call(session, user_id, fund_id, call_id)
        fund = session.get(Fund, call.fund_id)
        data = _serialize(call, fund.currency, _investor_names(session, call))
        data["fund_name"] = fund.name
        return data


# --------------------------------------------------------------------------- #
# Mutations
# --------------------------------------------------------------------------- #

def create_capital_call(user_id: str, fund_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Create a DRAFT call numbered sequentially within the fund, with one
    PENDING item per callable commitment (ACTIVE, FUNDED or SIGNED).
    """
    call_date = parse_date(data.get("call_date"), "Call date")
    due_date = parse_date(data.get("due_date"), "Due date")
    if data.get("total_amount") in (None, ""):
        raise ServiceError("Total amount is required")
    total_amount = parse_money(data["total_amount"])
    if total_amount <= 0:
        raise ServiceError("Total amount must be greater than zero")
    if due_date < call_date:
        raise ServiceError("Due date cannot be before the call date")

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, CAPITAL)
        last_number = session.scalar(
            select(func.max(CapitalCall.call_number)).where(CapitalCall.fund_id == fund.id)
        )
        call = CapitalCall(
            fund_id=fund.id,
            call_number=(last_number or 0) + 1,
            call_date=call_date,
            due_date=due_date,
            total_amount=total_amount,
            for_investment=_optional_money(data.get("for_investment")),
            for_fees=_optional_money(data.get("for_fees")),
            for_expenses=_optional_money(data.get("for_expenses")),
            purpose=data.get("purpose") or None,
            deal_reference=data.get("deal_reference") or None,
            status="DRAFT",
        )
        session.add(call)
        session.flush()

        commitments = session.scalars(
            select(Commitment)
            .where(
                Commitment.fund_id == fund.id,
                Commitment.status.in_(CALLABLE_COMMITMENT_STATUSES),
                not_deleted(Commitment),
            )
            .order_by(Commitment.created_at.asc())
        ).all()
        shares = allocate_pro_rata(total_amount, [c.committed_amount for c in commitments])
        for commitment, share in zip(commitments, shares):
            session.add(
                CapitalCallItem(
                    capital_call_id=call.id,
                    investor_id=commitment.investor_id,
                    commitment_id=commitment.id,
                    call_amount=share,
                    paid_amount=0.0,
                    status="PENDING",
                )
            )
        session.commit()
        session.refresh(call)
        logger.info(f"[Capital] ✅ Capital call #{call.call_number} created with {len(shares)} items")

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="CapitalCall",
            entity_id=call.id,
            changes={
                "call_number": {"old": None, "new": call.call_number},
                "total_amount": {"old": None, "new": total_amount},
            },
        )
        return _serialize(call, fund.currency, _investor_names(session, call))


def update_capital_call_status(user_id: str, fund_id: str, call_id: str, status: str) -> Dict[str, Any]:
    """
    Move a call along its workflow. SENT stamps the notice date and marks
    pending items NOTIFIED; FULLY_FUNDED stamps the completed date.
    """
    target = _resolve_status(status)
    with SessionLocal() as session:
        call = _load_call(session, user_id, fund_id, call_id)
        old_status = call.status
        validate_transition(CAPITAL_CALL, old_status, target)

        call.status = target
        if target == "SENT":
            call.notice_date = date.today()
            for item in call.items:
                if item.status == "PENDING":
                    item.status = "NOTIFIED"
        elif target == "FULLY_FUNDED":
            call.completed_date = date.today()
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="CapitalCall",
            entity_id=call.id,
            changes={"status": {"old": old_status, "new": target}},
        )
        return _serialize(call, session.get(Fund, call.fund_id).currency)


def record_call_item_payment(
    user_id: str,
    fund_id: str,
    item_id: str,
    amount: Any,
    mark_as_paid: bool = False,
) -> Dict[str, Any]:
    """
    Record an LP payment against a call item.

    The item becomes PAID once fully paid (or when ``mark_as_paid``), else
    PARTIAL. The commitment's paid amount grows by ``amount``; its called
    amount grows by the item's call amount when the item becomes PAID. The
    call moves to PARTIALLY_FUNDED or FULLY_FUNDED as items are paid.
    """
    amount = parse_money(amount)
    if amount < 0:
        raise ServiceError("Payment amount cannot be negative")
    if amount == 0 and not mark_as_paid:
        raise ServiceError("Payment amount must be greater than zero")

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, CAPITAL)
        item = session.get(CapitalCallItem, item_id)
        if item is None or item.capital_call.fund_id != fund.id or item.capital_call.deleted_at is not None:
            raise NotFoundError("Capital call item not found")
        call = item.capital_call
        if call.status not in PAYABLE_CALL_STATUSES:
            raise ServiceError(
                f"Payments can only be recorded once the capital call has been sent (current status: {call.status})"
            )
        if item.status == "PAID":
            raise ServiceError("This capital call item is already paid")

        old_item = {"paid_amount": item.paid_amount, "status": item.status}
        new_paid = (item.paid_amount or 0) + amount
        if mark_as_paid or new_paid >= item.call_amount:
            item.status = "PAID"
            item.paid_date = date.today()
        elif new_paid > 0:
            item.status = "PARTIAL"
        item.paid_amount = new_paid

        commitment = session.get(Commitment, item.commitment_id) if item.commitment_id else None
        if commitment is None:
            commitment = _commitment_for(session, item.investor_id, fund.id)
        if commitment is not None:
            commitment.paid_amount = (commitment.paid_amount or 0) + amount
            if item.status == "PAID":
                commitment.called_amount = (commitment.called_amount or 0) + item.call_amount

        statuses = [i.status for i in call.items]
        old_call_status = call.status
        if all(s == "PAID" for s in statuses):
            target = "FULLY_FUNDED"
        elif any(s in ("PAID", "PARTIAL") for s in statuses):
            target = "PARTIALLY_FUNDED"
        else:
            target = call.status
        if target != call.status and can_transition_status(CAPITAL_CALL, call.status, target):
            call.status = target
            if target == "FULLY_FUNDED":
                call.completed_date = date.today()
        session.commit()
        logger.info(f"[Capital] Payment of {amount:,.2f} recorded on call #{call.call_number} ({item.status})")

        changes = {
            "paid_amount": {"old": old_item["paid_amount"], "new": item.paid_amount},
            "status": {"old": old_item["status"], "new": item.status},
        }
        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="CapitalCallItem",
            entity_id=item.id,
            changes=changes,
        )
        if call.status != old_call_status:
            log_audit(
                session,
                user_id=user_id,
                action=UPDATE,
                entity_type="CapitalCall",
                entity_id=call.id,
                changes={"status": {"old": old_call_status, "new": call.status}},
            )
        return _serialize(call, fund.currency, _investor_names(session, call))


def delete_capital_call(user_id: str, fund_id: str, call_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        call = _load_call(session, user_id, fund_id, call_id)
        if call.status != "DRAFT":
            raise ServiceError("Can only delete draft capital calls")
        soft_delete(session, "capital_call", call.id)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="CapitalCall", entity_id=call.id)
        return {"success": True}
