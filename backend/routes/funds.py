"""
backend/routes/funds.py
-----------------------

Fund switching, fund configuration and team membership.
The active fund is the one named by the ``X-Fund-Id`` header.
"""

from __future__ import annotations

from typing import List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import get_active_fund_id, require_subscription
from database.funds import (
    add_fund_member,
    create_fund,
    get_fund,
    get_fund_config,
    get_user_funds,
    list_fund_members,
    update_fund_config,
    update_fund_status,
    update_member_permissions,
)

router = APIRouter(tags=["funds"])

Number = Union[float, str]


class FundCreateRequest(BaseModel):
    name: str
    slug: Optional[str] = None
    type: Optional[str] = None
    currency: Optional[str] = "USD"
    target_size: Optional[Number] = None
    vintage: Optional[int] = None
    strategy: Optional[str] = None


class FundConfigRequest(BaseModel):
    name: Optional[str] = None
    target_size: Optional[Number] = None
    management_fee: Optional[Number] = None
    carried_interest: Optional[Number] = None
    hurdle_rate: Optional[Number] = None
    strategy: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


class MemberCreateRequest(BaseModel):
    email: str
    role: str = "ANALYST"


class MemberUpdateRequest(BaseModel):
    role: Optional[str] = None
    permissions: Optional[List[str]] = None
    is_active: Optional[bool] = None


@router.get("")
async def my_funds(user_id: str = Depends(require_subscription)):
    return get_user_funds(user_id)


@router.post("", status_code=201)
async def new_fund(request: FundCreateRequest, user_id: str = Depends(require_subscription)):
    return create_fund(user_id, request.model_dump(exclude_none=True))


@router.get("/current")
async def current_fund(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_fund(user_id, fund_id)


@router.get("/config")
async def fund_config(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_fund_config(user_id, fund_id)


@router.patch("/config")
async def edit_fund_config(
    request: FundConfigRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_fund_config(user_id, fund_id, request.model_dump(exclude_unset=True))


@router.patch("/status")
async def change_fund_status(
    request: StatusRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_fund_status(user_id, fund_id, request.status)


# --------------------------------------------------------------------------- #
# Team
# --------------------------------------------------------------------------- #

@router.get("/members")
async def members(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_fund_members(user_id, fund_id)


@router.post("/members", status_code=201)
async def invite_member(
    request: MemberCreateRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return add_fund_member(user_id, fund_id, email=request.email, role=request.role)


@router.patch("/members/{member_id}")
async def edit_member(
    member_id: str,
    request: MemberUpdateRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_member_permissions(user_id, fund_id, member_id, **request.model_dump(exclude_unset=True))
