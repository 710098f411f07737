"""
database/activities.py
----------------------

Logged deal activities (calls, meetings, site visits, ...) and the deal
timeline.

The timeline merges manual activities with the audit trail of the deal
and its documents, newest first, capped at 50 events. Audit entries for
activity creation are left out.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import and_, or_, select

from core.audit import CREATE, DELETE, UPDATE, log_audit
from core.errors import ServiceError
from database.db_setup import SessionLocal
from database.deals import load_deal
from database.models import Activity, AuditLog, Document, User

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = (
    "CALL",
    "MEETING",
    "EMAIL_SENT",
    "EMAIL_RECEIVED",
    "SITE_VISIT",
    "NOTE",
    "DOCUMENT_SENT",
    "DOCUMENT_RECEIVED",
    "TASK_COMPLETED",
    "COMMENT",
    "OTHER",
)

TIMELINE_LIMIT = 50
TIMELINE_ENTITIES = ("Deal", "Document", "Activity")


def format_audit_title(action: str, entity_type: str, changes: Optional[Mapping[str, Any]]) -> str:
    """
    Human title for an audit entry.

    >>> format_audit_title("UPDATE", "Deal", {"stage": {}, "asking_price": {}})
    'Updated deal stage, asking_price'
    """
    entity = entity_type.lower()
    if action == CREATE:
        return f"Added new {entity}"
    if action == UPDATE:
        if changes:
            fields = list(changes)
            if len(fields) <= 3:
                return f"Updated {entity} {', '.join(fields)}"
            return f"Updated {entity} ({len(fields)} fields)"
        return f"Updated {entity}"
    if action == DELETE:
        return f"Removed {entity}"
    return f"{action} {entity}"


def create_activity(user_id: str, fund_id: str, deal_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    activity_type = str(data.get("type") or "").strip().upper()
    title = str(data.get("title") or "").strip()
    if not activity_type or not title:
        raise ServiceError("Type and title are required")
    if activity_type not in ACTIVITY_TYPES:
        raise ServiceError("Invalid activity type")

    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        activity = Activity(
            deal_id=deal.id,
            user_id=user_id,
            type=activity_type,
            title=title,
            description=(str(data.get("description") or "").strip() or None),
        )
        session.add(activity)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="Activity",
            entity_id=activity.id,
            changes={"type": {"old": None, "new": activity_type}, "deal_id": {"old": None, "new": deal.id}},
        )
        return activity.as_dict()


def list_activities(user_id: str, fund_id: str, deal_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        rows = session.execute(
            select(Activity, User.name)
            .join(User, User.id == Activity.user_id)
            .where(Activity.deal_id == deal.id)
            .order_by(Activity.created_at.desc())
            .limit(TIMELINE_LIMIT)
        ).all()
        return [{**activity.as_dict(), "user_name": name} for activity, name in rows]


def get_deal_timeline(user_id: str, fund_id: str, deal_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)

        events: List[Dict[str, Any]] = []
        for activity, name in session.execute(
            select(Activity, User.name)
            .join(User, User.id == Activity.user_id)
            .where(Activity.deal_id == deal.id)
            .order_by(Activity.created_at.desc())
            .limit(TIMELINE_LIMIT)
        ).all():
            events.append(
                {
                    "id": f"activity-{activity.id}",
                    "kind": "activity",
                    "type": activity.type,
                    "title": activity.title,
                    "description": activity.description,
                    "user_name": name,
                    "created_at": activity.created_at,
                }
            )

        document_ids = select(Document.id).where(Document.deal_id == deal.id)
        logs = session.execute(
            select(AuditLog, User.name)
            .outerjoin(User, User.id == AuditLog.user_id)
            .where(
                or_(
                    and_(AuditLog.entity_type.in_(TIMELINE_ENTITIES), AuditLog.entity_id == deal.id),
                    AuditLog.entity_id.in_(document_ids),
                )
            )
            .order_by(AuditLog.created_at.desc())
            .limit(TIMELINE_LIMIT * 2)
        ).all()
        for log, name in logs:
            if log.entity_type == "Activity" and log.action == CREATE:
                continue
            events.append(
                {
                    "id": f"audit-{log.id}",
                    "kind": "system",
                    "type": f"{log.action}_{log.entity_type}",
                    "title": format_audit_title(log.action, log.entity_type, log.changes),
                    "description": None,
                    "user_name": name,
                    "created_at": log.created_at,
                }
            )

    events.sort(key=lambda e: e["created_at"], reverse=True)
    return [{**e, "created_at": e["created_at"].isoformat()} for e in events[:TIMELINE_LIMIT]]
