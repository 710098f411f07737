"""
backend/routes/auth.py
----------------------

Registration with onboarding, login and account endpoints.
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import get_current_user_id
from database.onboarding import change_password, get_me, login, register_with_onboarding

router = APIRouter(tags=["auth"])


# --------------------------------------------------------------------------- #
# Request models
# --------------------------------------------------------------------------- #

class RegisterRequest(BaseModel):
    vehicle_type: str
    firm_name: str
    user_name: str
    user_email: str
    password: str
    confirm_password: str
    org_slug: Optional[str] = None
    fund_name: Optional[str] = None
    fund_slug: Optional[str] = None
    fund_type: Optional[str] = None
    target_size: Optional[Union[float, str]] = None
    currency: Optional[str] = "USD"
    vintage: Optional[int] = None
    strategy: Optional[str] = None
    legal_name: Optional[str] = None
    entity_type: Optional[str] = None
    jurisdiction: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str


# --------------------------------------------------------------------------- #
# Routes
# --------------------------------------------------------------------------- #

@router.post("/register", status_code=201)
async def register(request: RegisterRequest):
    return register_with_onboarding(request.model_dump(exclude_none=True))


@router.post("/login")
async def sign_in(request: LoginRequest):
    return login(request.email, request.password)


@router.get("/me")
async def me(user_id: str = Depends(get_current_user_id)):
    return get_me(user_id)


@router.post("/password")
async def update_password(request: PasswordChangeRequest, user_id: str = Depends(get_current_user_id)):
    return change_password(user_id, request.current_password, request.new_password)
