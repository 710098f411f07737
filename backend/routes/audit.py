"""
backend/routes/audit.py
-----------------------

Audit trail query, limited to actions taken by members of the caller's
organization.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select

from backend.dependencies import require_subscription
from core.audit import query_audit_logs
from core.errors import ServiceError
from core.fund_access import get_active_user
from database.db_setup import SessionLocal
from database.models import User

router = APIRouter(tags=["audit"])


def _parse_day(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    if not value:
        return None
    try:
        day = date.fromisoformat(value[:10])
    except ValueError:
        raise ServiceError(f"Invalid date: {value}") from None
    return datetime.combine(day, time.max if end_of_day else time.min)


@router.get("/query")
async def audit_query(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(require_subscription),
):
    """
    Filtered, paginated audit entries.

    Dates are ``YYYY-MM-DD``; ``end_date`` is inclusive.
    """
    with SessionLocal() as session:
        user = get_active_user(session, user_id)
        if user.organization_id:
            user_ids = session.scalars(select(User.id).where(User.organization_id == user.organization_id)).all()
        else:
            user_ids = [user.id]
        return query_audit_logs(
            session,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            user_ids=list(user_ids),
            start=_parse_day(start_date),
            end=_parse_day(end_date, end_of_day=True),
            limit=limit,
            offset=offset,
        )
