"""
backend/routes/reports.py
-------------------------

Fund performance, LP capital statements, the dashboard and CSV exports, plus
the quarterly LP update workflow (DRAFT → REVIEW → PUBLISHED) and LP
distribution tracking for published reports.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import get_active_fund_id, require_subscription
from core.csv_export import csv_response
from database.quarterly import (
    create_quarterly_update,
    distribute_report,
    get_distribution_preview,
    get_report,
    list_reports,
    publish_report,
    submit_for_review,
    update_section,
)
from database.reports import (
    export_capital_statement_csv,
    export_portfolio_csv,
    get_dashboard_data,
    get_fund_performance_report,
    get_lp_capital_statement,
)

router = APIRouter(tags=["reports"])


class QuarterlyRequest(BaseModel):
    year: int
    quarter: int


class SectionRequest(BaseModel):
    content: str


class DistributeRequest(BaseModel):
    recipient_ids: Optional[List[str]] = None


# --------------------------------------------------------------------------- #
# Analytical reports
# --------------------------------------------------------------------------- #

@router.get("/dashboard")
async def dashboard(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_dashboard_data(user_id, fund_id)


@router.get("/reports/performance")
async def fund_performance(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_fund_performance_report(user_id, fund_id)


@router.get("/reports/capital-statements/{investor_id}")
async def capital_statement(
    investor_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return get_lp_capital_statement(user_id, fund_id, investor_id)


@router.get("/reports/capital-statements/{investor_id}/export")
async def capital_statement_export(
    investor_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return csv_response(export_capital_statement_csv(user_id, fund_id, investor_id), f"capital-statement-{investor_id}")


@router.get("/reports/portfolio/export")
async def portfolio_export(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return csv_response(export_portfolio_csv(user_id, fund_id), "portfolio")


# --------------------------------------------------------------------------- #
# Quarterly updates
# --------------------------------------------------------------------------- #

@router.get("/reports")
async def reports(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_reports(user_id, fund_id)


@router.post("/reports/quarterly", status_code=201)
async def new_quarterly_update(
    request: QuarterlyRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return create_quarterly_update(user_id, fund_id, year=request.year, quarter=request.quarter)


@router.get("/reports/{report_id}")
async def report(report_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_report(user_id, fund_id, report_id)


@router.put("/reports/{report_id}/sections/{section_key}")
async def edit_section(
    report_id: str,
    section_key: str,
    request: SectionRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return update_section(user_id, fund_id, report_id, section_key, request.content)


@router.post("/reports/{report_id}/submit")
async def submit(report_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return submit_for_review(user_id, fund_id, report_id)


@router.post("/reports/{report_id}/publish")
async def publish(report_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return publish_report(user_id, fund_id, report_id)


@router.get("/reports/{report_id}/distribution")
async def distribution_preview(
    report_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return get_distribution_preview(user_id, fund_id, report_id)


@router.post("/reports/{report_id}/distribute")
async def distribute(
    report_id: str,
    request: DistributeRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return distribute_report(user_id, fund_id, report_id, request.recipient_ids)
