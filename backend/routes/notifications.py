"""
backend/routes/notifications.py
-------------------------------

The signed-in user's in-app notifications.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from backend.dependencies import require_subscription
from database.notifications import (
    NOTIFICATION_LIST_LIMIT,
    get_unread_count,
    list_notifications,
    mark_all_as_read,
    mark_as_read,
)

router = APIRouter(tags=["notifications"])


@router.get("")
async def notifications(
    limit: int = Query(default=NOTIFICATION_LIST_LIMIT, ge=1, le=100),
    user_id: str = Depends(require_subscription),
):
    return {"notifications": list_notifications(user_id, limit), "unread_count": get_unread_count(user_id)}


@router.post("/read-all")
async def read_all(user_id: str = Depends(require_subscription)):
    return mark_all_as_read(user_id)


@router.post("/{notification_id}/read")
async def read(notification_id: str, user_id: str = Depends(require_subscription)):
    return mark_as_read(user_id, notification_id)
