"""
database/distributions.py
-------------------------

Distributions to LPs: pro-rata items, workflow status changes and per-item
payment processing.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import func, select

from core.audit import CREATE, DELETE, UPDATE, log_audit
from core.errors import NotFoundError, ServiceError
from core.formatters import format_money, parse_money
from core.fund_access import require_module_permission
from core.pagination import paginated_result, parse_pagination_params
from core.permissions import CAPITAL
from core.soft_delete import not_deleted, soft_delete
from core.workflows import DISTRIBUTION, can_transition_status, get_allowed_next_statuses, validate_transition
from database.capital_calls import allocate_pro_rata, parse_date
from database.db_setup import SessionLocal
from database.models import Commitment, Distribution, DistributionItem, Fund, Investor

logger = logging.getLogger(__name__)

DISTRIBUTION_STATUS_DISPLAY = {
    "DRAFT": "Draft",
    "APPROVED": "Approved",
    "PROCESSING": "Processing",
    "COMPLETED": "Completed",
    "CANCELLED": "Cancelled",
}
_DISPLAY_TO_STATUS = {v: k for k, v in DISTRIBUTION_STATUS_DISPLAY.items()}

DISTRIBUTION_TYPE_DISPLAY = {
    "RETURN_OF_CAPITAL": "Return of Capital",
    "PROFIT_DISTRIBUTION": "Profit Distribution",
    "RECALLABLE": "Recallable Distribution",
    "FINAL": "Final Distribution",
    "SPECIAL": "Special Distribution",
}
_DISPLAY_TO_TYPE = {v: k for k, v in DISTRIBUTION_TYPE_DISPLAY.items()}

ITEM_STATUS_DISPLAY = {
    "PENDING": "Pending",
    "PROCESSING": "Processing",
    "PAID": "Paid",
    "FAILED": "Failed",
}

ELIGIBLE_COMMITMENT_STATUSES = ("ACTIVE", "FUNDED")
PAYABLE_STATUSES = ("APPROVED", "PROCESSING")


def _serialize(dist: Distribution, currency: str, investor_names: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    data = dist.as_dict()
    paid = sum(item.net_amount or 0 for item in dist.items if item.status == "PAID")
    data["status_display"] = DISTRIBUTION_STATUS_DISPLAY.get(dist.status, dist.status)
    data["type_display"] = DISTRIBUTION_TYPE_DISPLAY.get(dist.type, dist.type)
    data["total_amount_display"] = format_money(dist.total_amount, currency)
    data["paid_amount"] = paid
    data["item_count"] = len(dist.items)
    data["allowed_transitions"] = get_allowed_next_statuses(DISTRIBUTION, dist.status)
    if investor_names is not None:
        data["items"] = [
            {
                **item.as_dict(),
                "investor_name": investor_names.get(item.investor_id),
                "status_display": ITEM_STATUS_DISPLAY.get(item.status, item.status),
            }
            for item in dist.items
        ]
    return data


def _investor_names(session, dist: Distribution) -> Dict[str, str]:
    ids = [item.investor_id for item in dist.items]
    if not ids:
        return {}
    return dict(session.execute(select(Investor.id, Investor.name).where(Investor.id.in_(ids))).all())


def _load(session, user_id: str, fund_id: str, distribution_id: str) -> Distribution:
    fund = require_module_permission(session, user_id, fund_id, CAPITAL)
    dist = session.scalar(
        select(Distribution).where(
            Distribution.id == distribution_id,
            Distribution.fund_id == fund.id,
            not_deleted(Distribution),
        )
    )
    if dist is None:
        raise NotFoundError("Distribution not found")
    return dist


def list_distributions(
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
        filters = [Distribution.fund_id == fund.id, not_deleted(Distribution)]
        if status:
            filters.append(Distribution.status == _DISPLAY_TO_STATUS.get(status, status))

        total = session.scalar(select(func.count()).select_from(Distribution).where(*filters)) or 0
        rows = session.scalars(
            select(Distribution)
            .where(*filters)
            .order_by(Distribution.distribution_number.desc())
            .offset(params.skip)
            .limit(params.page_size)
        ).all()
        return paginated_result(
            [_serialize(d, fund.currency) for d in rows], int(total), params.page, params.page_size
        )


def get_distribution(user_id: str, fund_id: str, distribution_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        dist = _load(session, user_id, fund_id, distribution_id)
        fund = session.get(Fund, dist.fund_id)
        data = _serialize(dist, fund.currency, _investor_names(session, dist))
        data["fund_name"] = fund.name
        return data


def create_distribution(user_id: str, fund_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Create a DRAFT distribution with one item per ACTIVE or FUNDED commitment.
    Withholding defaults to zero, so net equals gross.
    """
    distribution_date = parse_date(data.get("distribution_date"), "Distribution date")
    raw_type = data.get("type")
    if not raw_type:
        raise ServiceError("Distribution type is required")
    dist_type = _DISPLAY_TO_TYPE.get(raw_type, raw_type)
    if dist_type not in DISTRIBUTION_TYPE_DISPLAY:
        raise ServiceError(f"Unknown distribution type: {raw_type}")
    if data.get("total_amount") in (None, ""):
        raise ServiceError("Total amount is required")
    total_amount = parse_money(data["total_amount"])
    if total_amount <= 0:
        raise ServiceError("Total amount must be greater than zero")

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, CAPITAL)
        last_number = session.scalar(
            select(func.max(Distribution.distribution_number)).where(Distribution.fund_id == fund.id)
        )
        dist = Distribution(
            fund_id=fund.id,
            distribution_number=(last_number or 0) + 1,
            distribution_date=distribution_date,
            total_amount=total_amount,
            type=dist_type,
            source=data.get("source") or None,
            description=data.get("description") or None,
            status="DRAFT",
        )
        session.add(dist)
        session.flush()

        commitments = session.scalars(
            select(Commitment)
            .where(
                Commitment.fund_id == fund.id,
                Commitment.status.in_(ELIGIBLE_COMMITMENT_STATUSES),
                not_deleted(Commitment),
            )
            .order_by(Commitment.created_at.asc())
        ).all()
        shares = allocate_pro_rata(total_amount, [c.committed_amount for c in commitments])
        for commitment, gross in zip(commitments, shares):
            withholding = 0.0
            session.add(
                DistributionItem(
                    distribution_id=dist.id,
                    investor_id=commitment.investor_id,
                    commitment_id=commitment.id,
                    gross_amount=gross,
                    withholding_tax=withholding,
                    net_amount=gross - withholding,
                    status="PENDING",
                )
            )
        session.commit()
        session.refresh(dist)
        logger.info(f"[Capital] ✅ Distribution #{dist.distribution_number} created with {len(shares)} items")

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="Distribution",
            entity_id=dist.id,
            changes={
                "distribution_number": {"old": None, "new": dist.distribution_number},
                "total_amount": {"old": None, "new": total_amount},
                "type": {"old": None, "new": dist_type},
            },
        )
        return _serialize(dist, fund.currency, _investor_names(session, dist))


def update_distribution_status(user_id: str, fund_id: str, distribution_id: str, status: str) -> Dict[str, Any]:
    """APPROVED stamps the approval date and approver; COMPLETED stamps the paid date."""
    target = _DISPLAY_TO_STATUS.get(status, status)
    with SessionLocal() as session:
        dist = _load(session, user_id, fund_id, distribution_id)
        old_status = dist.status
        validate_transition(DISTRIBUTION, old_status, target)

        dist.status = target
        if target == "APPROVED":
            dist.approved_date = date.today()
            dist.approved_by_id = user_id
        elif target == "COMPLETED":
            dist.paid_date = date.today()
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Distribution",
            entity_id=dist.id,
            changes={"status": {"old": old_status, "new": target}},
        )
        return _serialize(dist, session.get(Fund, dist.fund_id).currency)


def process_distribution_item(user_id: str, fund_id: str, item_id: str) -> Dict[str, Any]:
    """
    Pay one distribution item: the item becomes PAID, the LP commitment's
    distributed amount grows by the net amount, and the distribution moves to
    PROCESSING, or COMPLETED once every item is paid.
    """
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, CAPITAL)
        item = session.get(DistributionItem, item_id)
        if item is None or item.distribution.fund_id != fund.id or item.distribution.deleted_at is not None:
            raise NotFoundError("Distribution item not found")
        dist = item.distribution
        if dist.status not in PAYABLE_STATUSES:
            raise ServiceError(
                f"Distribution must be approved before items are paid (current status: {dist.status})"
            )
        if item.status == "PAID":
            raise ServiceError("This distribution item is already paid")

        old_item_status = item.status
        item.status = "PAID"
        item.paid_date = date.today()

        commitment = session.get(Commitment, item.commitment_id) if item.commitment_id else None
        if commitment is not None:
            commitment.distributed_amount = (commitment.distributed_amount or 0) + item.net_amount

        old_status = dist.status
        if all(i.status == "PAID" for i in dist.items):
            # APPROVED may jump straight to COMPLETED through PROCESSING
            if dist.status == "APPROVED":
                dist.status = "PROCESSING"
            if can_transition_status(DISTRIBUTION, dist.status, "COMPLETED"):
                dist.status = "COMPLETED"
                dist.paid_date = date.today()
        elif can_transition_status(DISTRIBUTION, dist.status, "PROCESSING"):
            dist.status = "PROCESSING"
        session.commit()
        logger.info(f"[Capital] Distribution #{dist.distribution_number} item paid ({dist.status})")

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="DistributionItem",
            entity_id=item.id,
            changes={"status": {"old": old_item_status, "new": "PAID"}},
        )
        if dist.status != old_status:
            log_audit(
                session,
                user_id=user_id,
                action=UPDATE,
                entity_type="Distribution",
                entity_id=dist.id,
                changes={"status": {"old": old_status, "new": dist.status}},
            )
        return _serialize(dist, fund.currency, _investor_names(session, dist))


def delete_distribution(user_id: str, fund_id: str, distribution_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        dist = _load(session, user_id, fund_id, distribution_id)
        if dist.status != "DRAFT":
            raise ServiceError("Can only delete draft distributions")
        soft_delete(session, "distribution", dist.id)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="Distribution", entity_id=dist.id)
        return {"success": True}
