"""
backend/routes/investors.py
---------------------------

LP records and their commitments to the active fund.
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from backend.dependencies import get_active_fund_id, require_subscription
from core.csv_export import csv_response
from database.investors import (
    create_commitment,
    create_investor,
    delete_commitment,
    delete_investor,
    export_investors_csv,
    get_investor,
    list_investors,
    update_commitment,
    update_investor,
)

router = APIRouter(tags=["investors"])

Number = Union[float, str]


class InvestorPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None
    contact_name: Optional[str] = None
    notes: Optional[str] = None


class CommitmentPayload(BaseModel):
    committed_amount: Optional[Number] = None
    called_amount: Optional[Number] = None
    paid_amount: Optional[Number] = None
    status: Optional[str] = None
    commitment_date: Optional[str] = None
    notes: Optional[str] = None


# --------------------------------------------------------------------------- #
# Investors
# --------------------------------------------------------------------------- #

@router.get("/investors")
async def investors(
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    type: Optional[str] = None,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return list_investors(
        user_id, fund_id, page=page, page_size=page_size, search=search, status=status, investor_type=type
    )


@router.get("/investors/export")
async def export(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return csv_response(export_investors_csv(user_id, fund_id), "investors")


@router.post("/investors", status_code=201)
async def new_investor(
    request: InvestorPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_investor(user_id, fund_id, request.model_dump(exclude_unset=True))


@router.get("/investors/{investor_id}")
async def investor(investor_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_investor(user_id, fund_id, investor_id)


@router.patch("/investors/{investor_id}")
async def edit_investor(
    investor_id: str,
    request: InvestorPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_investor(user_id, fund_id, investor_id, request.model_dump(exclude_unset=True))


@router.delete("/investors/{investor_id}")
async def remove_investor(
    investor_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return delete_investor(user_id, fund_id, investor_id)


# --------------------------------------------------------------------------- #
# Commitments
# --------------------------------------------------------------------------- #

@router.post("/investors/{investor_id}/commitments", status_code=201)
async def new_commitment(
    investor_id: str,
    request: CommitmentPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_commitment(user_id, fund_id, investor_id, request.model_dump(exclude_none=True))


@router.patch("/commitments/{commitment_id}")
async def edit_commitment(
    commitment_id: str,
    request: CommitmentPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_commitment(user_id, fund_id, commitment_id, request.model_dump(exclude_unset=True))


@router.delete("/commitments/{commitment_id}")
async def remove_commitment(
    commitment_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return delete_commitment(user_id, fund_id, commitment_id)
