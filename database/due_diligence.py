"""
database/due_diligence.py
-------------------------

Due-diligence checklist for a deal.

Items carry a category (financial, legal, ...), a status, a priority from
1 (critical) to 5 (optional) and an optional red flag. An item counts as
done when COMPLETED or NA.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping

from sqlalchemy import select

from core.audit import CREATE, DELETE, UPDATE, log_audit
from core.errors import NotFoundError, ServiceError
from database.db_setup import SessionLocal, utcnow
from database.deals import load_deal
from database.models import DueDiligenceItem

logger = logging.getLogger(__name__)

DD_CATEGORY_DISPLAY = {
    "FINANCIAL": "Financial",
    "ACCOUNTING": "Accounting",
    "TAX": "Tax",
    "LEGAL": "Legal",
    "COMMERCIAL": "Commercial",
    "OPERATIONAL": "Operational",
    "HR": "Human Resources",
    "IT": "Information Technology",
    "ENVIRONMENTAL": "Environmental",
    "INSURANCE": "Insurance",
    "REAL_ESTATE": "Real Estate",
    "IP": "Intellectual Property",
    "REGULATORY": "Regulatory",
    "QUALITY": "Quality",
    "OTHER": "Other",
}

DD_STATUS_DISPLAY = {
    "NOT_STARTED": "Not Started",
    "IN_PROGRESS": "In Progress",
    "PENDING_INFO": "Pending Info",
    "UNDER_REVIEW": "Under Review",
    "COMPLETED": "Completed",
    "NA": "N/A",
}

PRIORITY_DISPLAY = {1: "Critical", 2: "High", 3: "Medium", 4: "Low", 5: "Optional"}

DONE_STATUSES = ("COMPLETED", "NA")


def _priority(value: Any) -> int:
    try:
        priority = int(value)
    except (TypeError, ValueError):
        raise ServiceError("Priority must be between 1 and 5") from None
    if priority not in PRIORITY_DISPLAY:
        raise ServiceError("Priority must be between 1 and 5")
    return priority


def _status(value: Any) -> str:
    status = str(value or "").strip().upper()
    if status not in DD_STATUS_DISPLAY:
        raise ServiceError("Invalid status")
    return status


def _optional_text(value: Any):
    return (str(value).strip() or None) if value is not None else None


def _serialize(item: DueDiligenceItem) -> Dict[str, Any]:
    data = item.as_dict()
    data["category_display"] = DD_CATEGORY_DISPLAY.get(item.category, item.category)
    data["status_display"] = DD_STATUS_DISPLAY.get(item.status, item.status)
    data["priority_display"] = PRIORITY_DISPLAY.get(item.priority)
    return data


def _load_item(session, deal_id: str, item_id: str) -> DueDiligenceItem:
    item = session.get(DueDiligenceItem, item_id)
    if item is None or item.deal_id != deal_id:
        raise NotFoundError("Item not found")
    return item


# --------------------------------------------------------------------------- #
# Queries
# --------------------------------------------------------------------------- #

def list_dd_items(user_id: str, fund_id: str, deal_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        items = session.scalars(
            select(DueDiligenceItem)
            .where(DueDiligenceItem.deal_id == deal.id)
            .order_by(DueDiligenceItem.category, DueDiligenceItem.priority, DueDiligenceItem.created_at)
        ).all()
        return [_serialize(item) for item in items]


def get_dd_stats(user_id: str, fund_id: str, deal_id: str) -> Dict[str, Any]:
    """Completion and red-flag counts, overall and per category."""
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        rows = session.execute(
            select(DueDiligenceItem.category, DueDiligenceItem.status, DueDiligenceItem.red_flag).where(
                DueDiligenceItem.deal_id == deal.id
            )
        ).all()

    by_category: Dict[str, Dict[str, int]] = defaultdict(lambda: {"total": 0, "completed": 0, "red_flags": 0})
    for category, status, red_flag in rows:
        stats = by_category[category]
        stats["total"] += 1
        stats["completed"] += status in DONE_STATUSES
        stats["red_flags"] += bool(red_flag)

    total = len(rows)
    completed = sum(s["completed"] for s in by_category.values())
    return {
        "total_items": total,
        "completed_items": completed,
        "red_flag_count": sum(s["red_flags"] for s in by_category.values()),
        "overall_progress": round(completed / total * 100) if total else 0,
        "by_category": [{"category": cat, **by_category[cat]} for cat in sorted(by_category)],
    }


# --------------------------------------------------------------------------- #
# Mutations
# --------------------------------------------------------------------------- #

def create_dd_item(user_id: str, fund_id: str, deal_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    category = str(data.get("category") or "").strip().upper()
    if category not in DD_CATEGORY_DISPLAY:
        raise ServiceError("Valid category is required")
    text = str(data.get("item") or "").strip()
    if len(text) < 2:
        raise ServiceError("Item description must be at least 2 characters")
    status = _status(data.get("status") or "NOT_STARTED")
    priority = _priority(data.get("priority") if data.get("priority") not in (None, "") else 3)

    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        item = DueDiligenceItem(
            deal_id=deal.id,
            category=category,
            item=text,
            status=status,
            priority=priority,
            assigned_to=_optional_text(data.get("assigned_to")),
            notes=_optional_text(data.get("notes")),
            completed_at=utcnow() if status in DONE_STATUSES else None,
        )
        session.add(item)
        session.commit()

        log_audit(session, user_id=user_id, action=CREATE, entity_type="DueDiligenceItem", entity_id=item.id)
        return _serialize(item)


def update_dd_item(
    user_id: str, fund_id: str, deal_id: str, item_id: str, data: Mapping[str, Any]
) -> Dict[str, Any]:
    """Partial update; only fields that actually change are written and audited."""
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        item = _load_item(session, deal.id, item_id)

        new: Dict[str, Any] = {}
        if data.get("status"):
            new["status"] = _status(data["status"])
        if data.get("item") is not None:
            text = str(data["item"]).strip()
            if len(text) < 2:
                raise ServiceError("Item description must be at least 2 characters")
            new["item"] = text
        if data.get("priority") not in (None, ""):
            new["priority"] = _priority(data["priority"])
        for key in ("assigned_to", "notes", "findings"):
            if key in data:
                new[key] = _optional_text(data[key])
        if data.get("red_flag") is not None:
            new["red_flag"] = bool(data["red_flag"])

        changes = {
            key: {"old": getattr(item, key), "new": value}
            for key, value in new.items()
            if getattr(item, key) != value
        }
        if not changes:
            return _serialize(item)

        for key in changes:
            setattr(item, key, new[key])
        if "status" in changes:
            item.completed_at = utcnow() if item.status in DONE_STATUSES else None
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="DueDiligenceItem",
            entity_id=item.id,
            changes=changes,
        )
        return _serialize(item)


def delete_dd_item(user_id: str, fund_id: str, deal_id: str, item_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        item = _load_item(session, deal.id, item_id)
        session.delete(item)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="DueDiligenceItem", entity_id=item_id)
        return {"success": True}
