"""
backend/routes/deals.py
-----------------------

Deal pipeline endpoints: CRUD, stage moves, scoring, analytics and CSV export.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from backend.dependencies import get_active_fund_id, require_subscription
from core.csv_export import csv_response
from database.deals import (
    create_deal,
    delete_deal,
    export_deals_csv,
    get_deal,
    get_pipeline_analytics,
    list_deals,
    list_stage_options,
    update_deal,
    update_deal_scores,
    update_deal_stage,
)

router = APIRouter(tags=["deals"])

Number = Union[float, str]


class DealPayload(BaseModel):
    """Deal form fields; any other deal attribute may be sent as well."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    company_name: Optional[str] = None
    industry: Optional[str] = None
    stage: Optional[str] = None
    asking_price: Optional[Number] = None
    revenue: Optional[Number] = None
    ebitda: Optional[Number] = None
    expected_close_date: Optional[str] = None


class StageRequest(BaseModel):
    stage: str


class ScoresRequest(BaseModel):
    attractiveness: Any
    fit: Any
    risk: Any


@router.get("")
async def deals(
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
    stage: Optional[str] = None,
    status: Optional[str] = None,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return list_deals(user_id, fund_id, page=page, page_size=page_size, search=search, stage=stage, status=status)


@router.get("/stages")
async def stages():
    return list_stage_options()


@router.get("/analytics")
async def analytics(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_pipeline_analytics(user_id, fund_id) or {"total_deals": 0}


@router.get("/export")
async def export(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return csv_response(export_deals_csv(user_id, fund_id), "deals")


@router.post("", status_code=201)
async def new_deal(
    request: DealPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_deal(user_id, fund_id, request.model_dump(exclude_unset=True))


@router.get("/{deal_id}")
async def deal(deal_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_deal(user_id, fund_id, deal_id)


@router.patch("/{deal_id}")
async def edit_deal(
    deal_id: str,
    request: DealPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_deal(user_id, fund_id, deal_id, request.model_dump(exclude_unset=True))


@router.patch("/{deal_id}/stage")
async def move_deal(
    deal_id: str,
    request: StageRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_deal_stage(user_id, fund_id, deal_id, request.stage)


@router.put("/{deal_id}/scores")
async def score_deal(
    deal_id: str,
    request: ScoresRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_deal_scores(
        user_id, fund_id, deal_id, attractiveness=request.attractiveness, fit=request.fit, risk=request.risk
    )


@router.delete("/{deal_id}")
async def remove_deal(deal_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return delete_deal(user_id, fund_id, deal_id)
