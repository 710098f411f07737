"""
backend/routes/users.py
-----------------------

Organization user administration (SUPER_ADMIN / FUND_ADMIN only).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import require_subscription
from database.users import (
    create_user,
    delete_user,
    list_investors_for_linking,
    list_users,
    reset_user_password,
    toggle_user_status,
    update_user,
)

router = APIRouter(tags=["users"])


class NewUserRequest(BaseModel):
    name: str
    email: str
    password: str
    role: Optional[str] = None
    investor_id: Optional[str] = None


class UserUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    investor_id: Optional[str] = None


class PasswordResetRequest(BaseModel):
    new_password: str


@router.get("")
async def users(user_id: str = Depends(require_subscription)):
    return list_users(user_id)


@router.get("/linkable-investors")
async def linkable_investors(user_id: str = Depends(require_subscription)):
    return list_investors_for_linking(user_id)


@router.post("", status_code=201)
async def new_user(request: NewUserRequest, user_id: str = Depends(require_subscription)):
    return create_user(user_id, request.model_dump(exclude_unset=True))


@router.patch("/{target_id}")
async def edit_user(target_id: str, request: UserUpdateRequest, user_id: str = Depends(require_subscription)):
    return update_user(user_id, target_id, request.model_dump(exclude_unset=True))


@router.post("/{target_id}/toggle-status")
async def toggle_status(target_id: str, user_id: str = Depends(require_subscription)):
    return toggle_user_status(user_id, target_id)


@router.post("/{target_id}/reset-password")
async def reset_password(target_id: str, request: PasswordResetRequest, user_id: str = Depends(require_subscription)):
    return reset_user_password(user_id, target_id, request.new_password)


@router.delete("/{target_id}")
async def remove_user(target_id: str, user_id: str = Depends(require_subscription)):
    return delete_user(user_id, target_id)
