"""
backend/routes/deal_workspace.py
--------------------------------

Per-deal workspace: activities and timeline, notes, the due-diligence
tracker and deal tasks. Mounted under ``/deals``.
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import get_active_fund_id, require_subscription
from database.activities import create_activity, get_deal_timeline, list_activities
from database.due_diligence import create_dd_item, delete_dd_item, get_dd_stats, list_dd_items, update_dd_item
from database.notes import create_note, delete_note, list_notes
from database.tasks import create_task, list_deal_tasks

router = APIRouter(tags=["deal workspace"])


class ActivityRequest(BaseModel):
    type: str
    title: str
    description: Optional[str] = None


class NoteRequest(BaseModel):
    content: str


class DDItemRequest(BaseModel):
    category: Optional[str] = None
    item: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[Union[int, str]] = None
    assigned_to: Optional[str] = None
    notes: Optional[str] = None
    findings: Optional[str] = None
    red_flag: Optional[bool] = None


class TaskRequest(BaseModel):
    title: str
    assignee_id: str
    description: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = None


# --------------------------------------------------------------------------- #
# Activities & timeline
# --------------------------------------------------------------------------- #

@router.get("/{deal_id}/activities")
async def activities(deal_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_activities(user_id, fund_id, deal_id)


@router.post("/{deal_id}/activities", status_code=201)
async def new_activity(
    deal_id: str,
    request: ActivityRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_activity(user_id, fund_id, deal_id, request.model_dump())


@router.get("/{deal_id}/timeline")
async def timeline(deal_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_deal_timeline(user_id, fund_id, deal_id)


# --------------------------------------------------------------------------- #
# Notes
# --------------------------------------------------------------------------- #

@router.get("/{deal_id}/notes")
async def notes(deal_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_notes(user_id, fund_id, deal_id)


@router.post("/{deal_id}/notes", status_code=201)
async def new_note(
    deal_id: str,
    request: NoteRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_note(user_id, fund_id, deal_id, request.content)


@router.delete("/{deal_id}/notes/{note_id}")
async def remove_note(
    deal_id: str,
    note_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return delete_note(user_id, fund_id, deal_id, note_id)


# --------------------------------------------------------------------------- #
# Due diligence
# --------------------------------------------------------------------------- #

@router.get("/{deal_id}/due-diligence")
async def dd_items(deal_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_dd_items(user_id, fund_id, deal_id)


@router.get("/{deal_id}/due-diligence/stats")
async def dd_stats(deal_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_dd_stats(user_id, fund_id, deal_id)


@router.post("/{deal_id}/due-diligence", status_code=201)
async def new_dd_item(
    deal_id: str,
    request: DDItemRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_dd_item(user_id, fund_id, deal_id, request.model_dump(exclude_unset=True))


@router.patch("/{deal_id}/due-diligence/{item_id}")
async def edit_dd_item(
    deal_id: str,
    item_id: str,
    request: DDItemRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_dd_item(user_id, fund_id, deal_id, item_id, request.model_dump(exclude_unset=True))


@router.delete("/{deal_id}/due-diligence/{item_id}")
async def remove_dd_item(
    deal_id: str,
    item_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return delete_dd_item(user_id, fund_id, deal_id, item_id)


# --------------------------------------------------------------------------- #
# Deal tasks
# --------------------------------------------------------------------------- #

@router.get("/{deal_id}/tasks")
async def deal_tasks(deal_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_deal_tasks(user_id, fund_id, deal_id)


@router.post("/{deal_id}/tasks", status_code=201)
async def new_task(
    deal_id: str,
    request: TaskRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_task(user_id, fund_id, deal_id, request.model_dump(exclude_unset=True))
