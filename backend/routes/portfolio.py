"""
backend/routes/portfolio.py
---------------------------

Portfolio companies, valuations, operating metrics and monitoring views.
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from backend.dependencies import get_active_fund_id, require_subscription
from database.portfolio import (
    create_company,
    delete_company,
    get_company,
    get_kpi_trend,
    get_portfolio_summary,
    get_valuation_history,
    list_companies,
    record_metrics,
    record_valuation,
    update_company,
    update_company_status,
    update_valuation,
)

router = APIRouter(tags=["portfolio"])

Number = Union[float, str]


class CompanyPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    industry: Optional[str] = None
    acquisition_date: Optional[str] = None
    entry_valuation: Optional[Number] = None
    equity_invested: Optional[Number] = None
    debt_financing: Optional[Number] = None
    ownership_pct: Optional[Number] = None
    deal_id: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


class ValuationUpdateRequest(BaseModel):
    current_valuation: Number
    notes: Optional[str] = None


class MetricsPayload(BaseModel):
    """Operating KPIs for one period; any metric column may be sent."""

    model_config = ConfigDict(extra="allow")

    period_date: Optional[str] = None
    period_type: Optional[str] = None
    revenue: Optional[Number] = None
    ebitda: Optional[Number] = None
    current_valuation: Optional[Number] = None


class ValuationRecordRequest(BaseModel):
    valuation_date: Optional[str] = None
    value: Optional[Number] = None
    methodology: Optional[str] = None
    is_official: bool = False
    notes: Optional[str] = None


# --------------------------------------------------------------------------- #
# Companies
# --------------------------------------------------------------------------- #

@router.get("/companies")
async def companies(
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return list_companies(user_id, fund_id, page=page, page_size=page_size, search=search, status=status)


@router.get("/summary")
async def summary(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_portfolio_summary(user_id, fund_id)


@router.post("/companies", status_code=201)
async def new_company(
    request: CompanyPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_company(user_id, fund_id, request.model_dump(exclude_unset=True))


@router.get("/companies/{company_id}")
async def company(company_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_company(user_id, fund_id, company_id)


@router.patch("/companies/{company_id}")
async def edit_company(
    company_id: str,
    request: CompanyPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_company(user_id, fund_id, company_id, request.model_dump(exclude_unset=True))


@router.patch("/companies/{company_id}/status")
async def change_company_status(
    company_id: str,
    request: StatusRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_company_status(user_id, fund_id, company_id, request.status)


@router.delete("/companies/{company_id}")
async def remove_company(
    company_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return delete_company(user_id, fund_id, company_id)


# --------------------------------------------------------------------------- #
# Valuations & metrics
# --------------------------------------------------------------------------- #

@router.put("/companies/{company_id}/valuation")
async def mark_company(
    company_id: str,
    request: ValuationUpdateRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_valuation(user_id, fund_id, company_id, request.current_valuation, request.notes)


@router.post("/companies/{company_id}/metrics", status_code=201)
async def new_metrics(
    company_id: str,
    request: MetricsPayload,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return record_metrics(user_id, fund_id, company_id, request.model_dump(exclude_unset=True))


@router.post("/companies/{company_id}/valuations", status_code=201)
async def new_valuation(
    company_id: str,
    request: ValuationRecordRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return record_valuation(user_id, fund_id, company_id, request.model_dump(exclude_none=True))


@router.get("/companies/{company_id}/valuations")
async def valuation_history(
    company_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return get_valuation_history(user_id, fund_id, company_id)


@router.get("/companies/{company_id}/kpi-trend")
async def kpi_trend(
    company_id: str,
    metric: str = "revenue",
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return get_kpi_trend(user_id, fund_id, company_id, metric)
