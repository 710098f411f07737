"""
backend/routes/capital.py
-------------------------

Capital activity: capital calls with LP payments, and distributions with
per-LP item processing.
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import get_active_fund_id, require_subscription
from database.capital_calls import (
    create_capital_call,
    delete_capital_call,
    get_capital_call,
    list_capital_calls,
    record_call_item_payment,
    update_capital_call_status,
)
from database.distributions import (
    create_distribution,
    delete_distribution,
    get_distribution,
    list_distributions,
    process_distribution_item,
    update_distribution_status,
)

router = APIRouter(tags=["capital"])

Number = Union[float, str]


class CapitalCallRequest(BaseModel):
    call_date: str
    due_date: str
    total_amount: Number
    for_investment: Optional[Number] = None
    for_fees: Optional[Number] = None
    for_expenses: Optional[Number] = None
    purpose: Optional[str] = None
    deal_reference: Optional[str] = None


class DistributionRequest(BaseModel):
    distribution_date: str
    type: str
    total_amount: Number
    source: Optional[str] = None
    description: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


class PaymentRequest(BaseModel):
    amount: Number
    mark_as_paid: bool = False


# --------------------------------------------------------------------------- #
# Capital calls
# --------------------------------------------------------------------------- #

@router.get("/capital-calls")
async def capital_calls(
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    status: Optional[str] = None,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return list_capital_calls(user_id, fund_id, page=page, page_size=page_size, status=status)


@router.post("/capital-calls", status_code=201)
async def new_capital_call(
    request: CapitalCallRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_capital_call(user_id, fund_id, request.model_dump(exclude_none=True))


@router.get("/capital-calls/{call_id}")
async def capital_call(call_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_capital_call(user_id, fund_id, call_id)


@router.patch("/capital-calls/{call_id}/status")
async def change_call_status(
    call_id: str,
    request: StatusRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_capital_call_status(user_id, fund_id, call_id, request.status)


@router.post("/capital-calls/items/{item_id}/payments")
async def record_payment(
    item_id: str,
    request: PaymentRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return record_call_item_payment(user_id, fund_id, item_id, request.amount, request.mark_as_paid)


@router.delete("/capital-calls/{call_id}")
async def remove_capital_call(
    call_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return delete_capital_call(user_id, fund_id, call_id)


# --------------------------------------------------------------------------- #
# Distributions
# --------------------------------------------------------------------------- #

@router.get("/distributions")
async def distributions(
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    status: Optional[str] = None,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return list_distributions(user_id, fund_id, page=page, page_size=page_size, status=status)


@router.post("/distributions", status_code=201)
async def new_distribution(
    request: DistributionRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_distribution(user_id, fund_id, request.model_dump(exclude_none=True))


@router.get("/distributions/{distribution_id}")
async def distribution(
    distribution_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return get_distribution(user_id, fund_id, distribution_id)


@router.patch("/distributions/{distribution_id}/status")
async def change_distribution_status(
    distribution_id: str,
    request: StatusRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_distribution_status(user_id, fund_id, distribution_id, request.status)


@router.post("/distributions/items/{item_id}/process")
async def process_item(
    item_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return process_distribution_item(user_id, fund_id, item_id)


@router.delete("/distributions/{distribution_id}")
async def remove_distribution(
    distribution_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return delete_distribution(user_id, fund_id, distribution_id)
