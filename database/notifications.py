"""
database/notifications.py
-------------------------

In-app notifications for platform users.

Notifications are written best-effort: a failed write is logged and never
fails the operation that triggered it. Reading and marking are always
scoped to the calling user.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from core.errors import NotFoundError
from database.db_setup import SessionLocal
from database.models import FundMember, Notification

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "DEAL_STAGE_CHANGE",
    "CAPITAL_CALL_DUE",
    "DISTRIBUTION_MADE",
    "DOCUMENT_SHARED",
    "COMMENT_ADDED",
    "REPORT_PUBLISHED",
    "TASK_ASSIGNED",
    "TASK_DUE",
    "TASK_OVERDUE",
    "SYSTEM",
)

NOTIFICATION_LIST_LIMIT = 20


# --------------------------------------------------------------------------- #
# Writing
# --------------------------------------------------------------------------- #

def notify_users(
    user_ids: Iterable[str],
    notification_type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
) -> int:
    """Create one notification per user; returns how many were written."""
    user_ids = [uid for uid in dict.fromkeys(user_ids) if uid]
    if not user_ids:
        return 0
    if notification_type not in NOTIFICATION_TYPES:
        notification_type = "SYSTEM"
    try:
        with SessionLocal() as session:
            for uid in user_ids:
                session.add(
                    Notification(user_id=uid, type=notification_type, title=title, message=message, link=link)
                )
            session.commit()
            return len(user_ids)
    except SQLAlchemyError as e:
        logger.warning(f"[Notifications] ⚠️ Failed to write {notification_type} notifications: {e}")
        return 0


def notify_fund_members(
    fund_id: str,
    notification_type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
    exclude_user_id: Optional[str] = None,
) -> int:
    """Notify every active member of the fund except the acting user."""
    try:
        with SessionLocal() as session:
            member_ids = session.scalars(
                select(FundMember.user_id).where(FundMember.fund_id == fund_id, FundMember.is_active.is_(True))
            ).all()
    except SQLAlchemyError as e:
        logger.warning(f"[Notifications] ⚠️ Failed to load members of fund {fund_id}: {e}")
        return 0
    return notify_users(
        (uid for uid in member_ids if uid != exclude_user_id), notification_type, title, message, link
    )


# --------------------------------------------------------------------------- #
# Reading
# --------------------------------------------------------------------------- #

def list_notifications(user_id: str, limit: int = NOTIFICATION_LIST_LIMIT) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        rows = session.scalars(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        ).all()
        return [row.as_dict() for row in rows]


def get_unread_count(user_id: str) -> int:
    with SessionLocal() as session:
        return session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ) or 0


def mark_as_read(user_id: str, notification_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        notification = session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification not found")
        notification.is_read = True
        session.commit()
        return {"success": True}


def mark_all_as_read(user_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        session.commit()
        return {"success": True, "updated": result.rowcount or 0}
