"""
backend/routes/tasks.py
-----------------------

The caller's open tasks, assignable team members and task status changes.
Tasks are created from the deal workspace.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import get_active_fund_id, require_subscription
from database.tasks import delete_task, list_assignable_members, list_my_tasks, update_task_status

router = APIRouter(tags=["tasks"])


class TaskStatusRequest(BaseModel):
    status: str


@router.get("/mine")
async def my_tasks(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_my_tasks(user_id, fund_id)


@router.get("/assignees")
async def assignees(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_assignable_members(user_id, fund_id)


@router.patch("/{task_id}/status")
async def task_status(
    task_id: str,
    request: TaskStatusRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_task_status(user_id, fund_id, task_id, request.status)


@router.delete("/{task_id}")
async def remove_task(task_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return delete_task(user_id, fund_id, task_id)
