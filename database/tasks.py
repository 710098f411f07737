"""
database/tasks.py
-----------------

Deal tasks assigned to fund team members.

Assignees must be active members of the deal's fund; assigning a task
notifies the assignee. Completing a task stamps ``completed_at``; moving it
out of COMPLETED clears it. Deleting a task removes it.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from sqlalchemy import select

from core.audit import CREATE, DELETE, UPDATE, log_audit
from core.errors import NotFoundError, ServiceError
from core.fund_access import require_fund_access
from database.capital_calls import parse_date
from database.db_setup import SessionLocal, utcnow
from database.deals import load_deal
from database.models import FundMember, Task, User
from database.notifications import notify_users

logger = logging.getLogger(__name__)

TASK_STATUSES = ("TODO", "IN_PROGRESS", "COMPLETED", "BLOCKED", "CANCELLED")
TASK_PRIORITIES = ("URGENT", "HIGH", "MEDIUM", "LOW")


def _sort_key(task: Task):
    return (
        TASK_STATUSES.index(task.status) if task.status in TASK_STATUSES else len(TASK_STATUSES),
        TASK_PRIORITIES.index(task.priority) if task.priority in TASK_PRIORITIES else len(TASK_PRIORITIES),
        -task.created_at.timestamp(),
    )


def _active_member_ids(session, fund_id: str) -> List[str]:
    return list(
        session.scalars(
            select(FundMember.user_id).where(FundMember.fund_id == fund_id, FundMember.is_active.is_(True))
        ).all()
    )


def _serialize(task: Task, names: Mapping[str, str]) -> Dict[str, Any]:
    data = task.as_dict()
    data["assignee_name"] = names.get(task.assignee_id)
    return data


def _user_names(session, user_ids) -> Dict[str, str]:
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    return dict(session.execute(select(User.id, User.name).where(User.id.in_(ids))).all())


def _load_task(session, user_id: str, fund_id: str, task_id: str) -> Task:
    fund = require_fund_access(session, user_id, fund_id)
    task = session.get(Task, task_id)
    if task is None or task.fund_id != fund.id:
        raise NotFoundError("Task not found")
    return task


# --------------------------------------------------------------------------- #
# Queries
# --------------------------------------------------------------------------- #

def list_deal_tasks(user_id: str, fund_id: str, deal_id: str) -> List[Dict[str, Any]]:
    """Open work first: by status, then priority (urgent first), then newest."""
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        tasks = sorted(session.scalars(select(Task).where(Task.deal_id == deal.id)).all(), key=_sort_key)
        names = _user_names(session, (t.assignee_id for t in tasks))
        return [_serialize(t, names) for t in tasks]


def list_my_tasks(user_id: str, fund_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        fund = require_fund_access(session, user_id, fund_id)
        tasks = sorted(
            session.scalars(
                select(Task).where(
                    Task.fund_id == fund.id,
                    Task.assignee_id == user_id,
                    Task.status.not_in(("COMPLETED", "CANCELLED")),
                )
            ).all(),
            key=_sort_key,
        )
        names = _user_names(session, [user_id])
        return [_serialize(t, names) for t in tasks]


def list_assignable_members(user_id: str, fund_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        fund = require_fund_access(session, user_id, fund_id)
        rows = session.execute(
            select(User.id, User.name, User.email)
            .join(FundMember, FundMember.user_id == User.id)
            .where(FundMember.fund_id == fund.id, FundMember.is_active.is_(True), User.is_active.is_(True))
            .order_by(User.name)
        ).all()
        return [{"id": uid, "name": name, "email": email} for uid, name, email in rows]


# --------------------------------------------------------------------------- #
# Mutations
# --------------------------------------------------------------------------- #

def create_task(user_id: str, fund_id: str, deal_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    title = str(data.get("title") or "").strip()
    if len(title) < 2:
        raise ServiceError("Title must be at least 2 characters")
    priority = str(data.get("priority") or "MEDIUM").strip().upper()
    if priority not in TASK_PRIORITIES:
        raise ServiceError("Invalid priority")
    assignee_id = str(data.get("assignee_id") or "").strip()
    if not assignee_id:
        raise ServiceError("Assignee is required")
    due_date = parse_date(data["due_date"], "Due date") if data.get("due_date") else None

    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        if assignee_id not in _active_member_ids(session, deal.fund_id):
            raise ServiceError("Assignee must be an active member of this fund")

        task = Task(
            fund_id=deal.fund_id,
            deal_id=deal.id,
            title=title,
            description=(str(data.get("description") or "").strip() or None),
            priority=priority,
            due_date=due_date,
            assignee_id=assignee_id,
            created_by_id=user_id,
        )
        session.add(task)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="Task",
            entity_id=task.id,
            changes={"title": {"old": None, "new": title}, "assignee_id": {"old": None, "new": assignee_id}},
        )
        if assignee_id != user_id:
            notify_users(
                [assignee_id],
                "TASK_ASSIGNED",
                f"New task: {title}",
                f"You were assigned a task on {deal.name}.",
                link=f"/deals/{deal.id}",
            )
        return _serialize(task, _user_names(session, [assignee_id]))


def update_task_status(user_id: str, fund_id: str, task_id: str, status: str) -> Dict[str, Any]:
    status = str(status or "").strip().upper()
    if status not in TASK_STATUSES:
        raise ServiceError("Invalid status")

    with SessionLocal() as session:
        task = _load_task(session, user_id, fund_id, task_id)
        old_status = task.status
        task.status = status
        task.completed_at = utcnow() if status == "COMPLETED" else None
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Task",
            entity_id=task.id,
            changes={"status": {"old": old_status, "new": status}},
        )
        return _serialize(task, _user_names(session, [task.assignee_id]))


def delete_task(user_id: str, fund_id: str, task_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        task = _load_task(session, user_id, fund_id, task_id)
        session.delete(task)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="Task", entity_id=task_id)
        return {"success": True}
