"""
database/portfolio.py
---------------------

Portfolio companies: lifecycle, valuation marks, periodic KPIs and the
monitoring views (summary, KPI trends, valuation history).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, or_, select

from analytics.irr import calculate_company_irr
from analytics.portfolio_monitoring import (
    aggregate_portfolio_metrics,
    build_kpi_trend,
    compute_valuation_changes,
    holding_period_months,
    resolve_metric_name,
)
from core.audit import CREATE, DELETE, UPDATE, compute_changes, log_audit
from core.errors import NotFoundError, ServiceError
from core.formatters import format_money, format_multiple, format_percentage, parse_money, parse_number, parse_percent
from core.fund_access import require_module_permission
from core.pagination import paginated_result, parse_pagination_params
from core.permissions import PORTFOLIO
from core.soft_delete import not_deleted, soft_delete
from database.capital_calls import parse_date
from database.db_setup import SessionLocal
from database.models import Deal, Fund, PortfolioCompany, PortfolioMetric, Valuation

logger = logging.getLogger(__name__)

COMPANY_STATUS_DISPLAY = {
    "HOLDING": "Holding",
    "PREPARING_EXIT": "Preparing Exit",
    "UNDER_LOI": "Under LOI",
    "PARTIAL_EXIT": "Partial Exit",
    "EXITED": "Exited",
    "WRITTEN_OFF": "Written Off",
}
_DISPLAY_TO_STATUS = {v: k for k, v in COMPANY_STATUS_DISPLAY.items()}

EXIT_TYPE_DISPLAY = {
    "STRATEGIC_SALE": "Strategic Sale",
    "FINANCIAL_SALE": "Financial Sale",
    "IPO": "IPO",
    "RECAPITALIZATION": "Recapitalization",
    "MANAGEMENT_BUYOUT": "Management Buyout",
    "MERGER": "Merger",
    "LIQUIDATION": "Liquidation",
    "WRITE_OFF": "Write Off",
}

PERIOD_TYPES = ("MONTHLY", "QUARTERLY", "ANNUAL")

VALUATION_METHODOLOGIES = (
    "COST",
    "MARKET_MULTIPLES",
    "DCF",
    "PRECEDENT_TRANSACTIONS",
    "THIRD_PARTY",
    "OTHER",
)

METRIC_MONEY_FIELDS = (
    "revenue",
    "gross_profit",
    "ebitda",
    "net_income",
    "operating_cash_flow",
    "free_cash_flow",
    "cash_balance",
    "total_debt",
    "current_valuation",
)
METRIC_INT_FIELDS = ("employee_count", "customer_count")

COMPANY_TEXT_FIELDS = ("name", "legal_name", "industry", "description", "website", "ceo_name")


def _optional_money(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return parse_money(value)


def _company_summary(company: PortfolioCompany, currency: str) -> Dict[str, Any]:
    data = company.as_dict()
    data["status_display"] = COMPANY_STATUS_DISPLAY.get(company.status, company.status)
    data["equity_invested_display"] = format_money(company.equity_invested, currency)
    data["total_value_display"] = format_money(company.total_value, currency)
    data["moic_display"] = format_multiple(company.moic)
    data["irr_display"] = format_percentage(company.irr)
    data["ownership_display"] = format_percentage(company.ownership_pct)
    data["holding_period_months"] = holding_period_months(company.acquisition_date, company.exit_date)
    return data


def _load_company(session, user_id: str, fund_id: str, company_id: str) -> PortfolioCompany:
    fund = require_module_permission(session, user_id, fund_id, PORTFOLIO)
    company = session.scalar(
        select(PortfolioCompany).where(
            PortfolioCompany.id == company_id,
            PortfolioCompany.fund_id == fund.id,
            not_deleted(PortfolioCompany),
        )
    )
    if company is None:
        raise NotFoundError("Company not found")
    return company


def _apply_valuation(company: PortfolioCompany, current_valuation: float, as_of: Optional[date] = None) -> None:
    """Mark the fund's stake to ``current_valuation`` (enterprise value)."""
    equity_value = current_valuation * (company.ownership_pct or 0)
    company.current_valuation = current_valuation
    company.unrealized_value = equity_value
    company.total_value = equity_value + (company.realized_value or 0)
    company.moic = company.total_value / company.equity_invested if company.equity_invested else None
    company.irr = calculate_company_irr(
        company.acquisition_date, company.equity_invested, company.total_value, as_of or date.today()
    )


# --------------------------------------------------------------------------- #
# Companies
# --------------------------------------------------------------------------- #

def list_companies(
    user_id: str,
    fund_id: str,
    *,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    params = parse_pagination_params(page, page_size, search)
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, PORTFOLIO)
        filters = [PortfolioCompany.fund_id == fund.id, not_deleted(PortfolioCompany)]
        if params.search:
            pattern = f"%{params.search}%"
            filters.append(or_(PortfolioCompany.name.ilike(pattern), PortfolioCompany.industry.ilike(pattern)))
        if status:
            filters.append(PortfolioCompany.status == _DISPLAY_TO_STATUS.get(status, status))

        total = session.scalar(select(func.count()).select_from(PortfolioCompany).where(*filters)) or 0
        rows = session.scalars(
            select(PortfolioCompany)
            .where(*filters)
            .order_by(PortfolioCompany.acquisition_date.desc())
            .offset(params.skip)
            .limit(params.page_size)
        ).all()
        return paginated_result(
            [_company_summary(c, fund.currency) for c in rows], int(total), params.page, params.page_size
        )


def get_company(user_id: str, fund_id: str, company_id: str) -> Dict[str, Any]:
    """Company detail with its KPI history, valuations and latest metric."""
    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        currency = session.get(Fund, company.fund_id).currency
        data = _company_summary(company, currency)
        metrics = [m.as_dict() for m in company.metrics]
        data["metrics"] = metrics
        data["latest_metric"] = metrics[-1] if metrics else None
        data["valuations"] = [v.as_dict() for v in company.valuations]
        return data


def create_company(user_id: str, fund_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Add a company to the portfolio.

    The initial mark is the entry valuation times ownership, so MOIC starts
    at 1.0x.
    """
    name = str(data.get("name") or "").strip()
    if not name:
        raise ServiceError("Company name is required")
    if not data.get("acquisition_date"):
        raise ServiceError("Acquisition date is required")
    acquisition_date = parse_date(data["acquisition_date"], "Acquisition date")
    if data.get("entry_valuation") in (None, ""):
        raise ServiceError("Entry valuation is required")
    if data.get("equity_invested") in (None, ""):
        raise ServiceError("Equity invested is required")
    if data.get("ownership_pct") in (None, ""):
        raise ServiceError("Ownership percentage is required")

    entry_valuation = parse_money(data["entry_valuation"])
    equity_invested = parse_money(data["equity_invested"])
    debt_financing = _optional_money(data.get("debt_financing"))
    ownership_pct = parse_percent(data["ownership_pct"])
    if equity_invested <= 0:
        raise ServiceError("Equity invested must be greater than zero")
    if not 0 < ownership_pct <= 1:
        raise ServiceError("Ownership percentage must be between 0% and 100%")

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, PORTFOLIO)
        deal_id = data.get("deal_id") or None
        if deal_id and session.scalar(
            select(Deal.id).where(Deal.id == deal_id, Deal.fund_id == fund.id, not_deleted(Deal))
        ) is None:
            raise NotFoundError("Deal not found")

        initial_value = entry_valuation * ownership_pct
        company = PortfolioCompany(
            fund_id=fund.id,
            deal_id=deal_id,
            name=name,
            legal_name=data.get("legal_name") or None,
            industry=data.get("industry") or None,
            description=data.get("description") or None,
            website=data.get("website") or None,
            ceo_name=data.get("ceo_name") or None,
            status="HOLDING",
            acquisition_date=acquisition_date,
            entry_valuation=entry_valuation,
            equity_invested=equity_invested,
            debt_financing=debt_financing,
            total_investment=equity_invested + (debt_financing or 0),
            ownership_pct=ownership_pct,
            current_valuation=entry_valuation,
            unrealized_value=initial_value,
            realized_value=0.0,
            total_value=initial_value,
            moic=1.0,
        )
        session.add(company)
        session.commit()
        logger.info(f"[Portfolio] ✅ Added {company.name} to fund {fund.id}")

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="PortfolioCompany",
            entity_id=company.id,
            changes={
                "name": {"old": None, "new": name},
                "equity_invested": {"old": None, "new": equity_invested},
                "ownership_pct": {"old": None, "new": ownership_pct},
            },
        )
        return _company_summary(company, fund.currency)


def update_company(user_id: str, fund_id: str, company_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Edit descriptive fields and deal terms. Valuation goes through ``update_valuation``."""
    updates: Dict[str, Any] = {}
    for key in COMPANY_TEXT_FIELDS:
        if key in data:
            value = (str(data[key]).strip() or None) if data[key] is not None else None
            if key == "name" and not value:
                raise ServiceError("Company name is required")
            updates[key] = value
    if data.get("acquisition_date"):
        updates["acquisition_date"] = parse_date(data["acquisition_date"], "Acquisition date")
    if data.get("exit_date"):
        updates["exit_date"] = parse_date(data["exit_date"], "Exit date")
    if data.get("realized_value") not in (None, ""):
        updates["realized_value"] = parse_money(data["realized_value"])

    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        old = {key: getattr(company, key) for key in updates}
        for key, value in updates.items():
            setattr(company, key, value)
        if "realized_value" in updates:
            company.total_value = (company.unrealized_value or 0) + company.realized_value
            company.moic = company.total_value / company.equity_invested if company.equity_invested else None
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="PortfolioCompany",
            entity_id=company.id,
            changes=compute_changes(old, updates),
        )
        return _company_summary(company, session.get(Fund, company.fund_id).currency)


def update_company_status(user_id: str, fund_id: str, company_id: str, status: str) -> Dict[str, Any]:
    """Accepts a status code or its display label. EXITED stamps the exit date."""
    db_status = _DISPLAY_TO_STATUS.get(status, status)
    if db_status not in COMPANY_STATUS_DISPLAY:
        raise ServiceError(f"Unknown company status: {status}")

    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        old_status = company.status
        company.status = db_status
        if db_status == "EXITED" and company.exit_date is None:
            company.exit_date = date.today()
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="PortfolioCompany",
            entity_id=company.id,
            changes={"status": {"old": old_status, "new": db_status}},
        )
        return _company_summary(company, session.get(Fund, company.fund_id).currency)


def delete_company(user_id: str, fund_id: str, company_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        soft_delete(session, "portfolio_company", company.id)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="PortfolioCompany", entity_id=company.id)
        return {"success": True}


# --------------------------------------------------------------------------- #
# Valuations & metrics
# --------------------------------------------------------------------------- #

def update_valuation(
    user_id: str,
    fund_id: str,
    company_id: str,
    current_valuation: Any,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Re-mark a company at a new enterprise valuation.

    Recomputes unrealized/total value, MOIC and IRR, and stores the mark as a
    quarterly metric snapshot for today.
    """
    valuation = parse_money(current_valuation)
    if valuation <= 0:
        raise ServiceError("Valuation must be greater than zero")

    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        old = {
            "current_valuation": company.current_valuation,
            "unrealized_value": company.unrealized_value,
            "moic": company.moic,
        }
        _apply_valuation(company, valuation)
        session.add(
            PortfolioMetric(
                company_id=company.id,
                period_date=date.today(),
                period_type="QUARTERLY",
                current_valuation=valuation,
                notes=notes or None,
            )
        )
        session.commit()
        logger.info(f"[Portfolio] {company.name} marked at {valuation:,.0f} (MOIC {company.moic})")

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="PortfolioCompany",
            entity_id=company.id,
            changes=compute_changes(
                old,
                {
                    "current_valuation": company.current_valuation,
                    "unrealized_value": company.unrealized_value,
                    "moic": company.moic,
                },
            ),
        )
        return _company_summary(company, session.get(Fund, company.fund_id).currency)


def record_metrics(user_id: str, fund_id: str, company_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Store one period of operating KPIs.

    Margins are derived from revenue when not supplied, revenue growth from
    the previous period with revenue, and net debt from debt minus cash.
    A ``current_valuation`` also re-marks the company.
    """
    if not data.get("period_date"):
        raise ServiceError("Period date is required")
    period_date = parse_date(data["period_date"], "Period date")
    period_type = data.get("period_type") or "QUARTERLY"
    if period_type not in PERIOD_TYPES:
        raise ServiceError(f"Unknown period type: {period_type}")

    values: Dict[str, Any] = {}
    for key in METRIC_MONEY_FIELDS:
        values[key] = _optional_money(data.get(key))
    for key in METRIC_INT_FIELDS:
        values[key] = parse_number(data.get(key), key.replace("_", " "), integer=True)
    if data.get("ev_ebitda") not in (None, ""):
        values["ev_ebitda"] = parse_number(data["ev_ebitda"], "EV/EBITDA")

    revenue = values["revenue"]
    if revenue:
        if values["gross_profit"] is not None:
            values["gross_margin"] = values["gross_profit"] / revenue
        if values["ebitda"] is not None:
            values["ebitda_margin"] = values["ebitda"] / revenue
    if values["total_debt"] is not None:
        values["net_debt"] = values["total_debt"] - (values["cash_balance"] or 0)

    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        if revenue is not None:
            prior_revenue = session.scalar(
                select(PortfolioMetric.revenue)
                .where(
                    PortfolioMetric.company_id == company.id,
                    PortfolioMetric.period_date < period_date,
                    PortfolioMetric.revenue.is_not(None),
                )
                .order_by(PortfolioMetric.period_date.desc())
                .limit(1)
            )
            if prior_revenue:
                values["revenue_growth"] = (revenue - prior_revenue) / abs(prior_revenue)

        metric = PortfolioMetric(
            company_id=company.id,
            period_date=period_date,
            period_type=period_type,
            notes=data.get("notes") or None,
            **values,
        )
        session.add(metric)
        if values["current_valuation"]:
            _apply_valuation(company, values["current_valuation"], period_date)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="PortfolioMetric",
            entity_id=metric.id,
            changes={"period_date": {"old": None, "new": period_date}, "company_id": {"old": None, "new": company.id}},
        )
        return metric.as_dict()


def record_valuation(user_id: str, fund_id: str, company_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Formal valuation record. An official valuation also re-marks the company."""
    if not data.get("valuation_date"):
        raise ServiceError("Valuation date is required")
    valuation_date = parse_date(data["valuation_date"], "Valuation date")
    value = _optional_money(data.get("value"))
    if value is None or value <= 0:
        raise ServiceError("Valuation must be a positive number")
    methodology = str(data.get("methodology") or "").strip()
    if not methodology:
        raise ServiceError("Methodology is required")
    is_official = bool(data.get("is_official", False))

    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        valuation = Valuation(
            company_id=company.id,
            valuation_date=valuation_date,
            value=value,
            methodology=methodology,
            notes=data.get("notes") or None,
            is_official=is_official,
            created_by_id=user_id,
        )
        session.add(valuation)
        if is_official:
            _apply_valuation(company, value, valuation_date)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="Valuation",
            entity_id=valuation.id,
            changes={"value": {"old": None, "new": value}, "methodology": {"old": None, "new": methodology}},
        )
        return valuation.as_dict()


# --------------------------------------------------------------------------- #
# Monitoring
# --------------------------------------------------------------------------- #

def get_portfolio_summary(user_id: str, fund_id: str) -> Dict[str, Any]:
    """Fund-level totals over non-deleted companies, formatted in fund currency."""
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, PORTFOLIO)
        companies = session.scalars(
            select(PortfolioCompany).where(PortfolioCompany.fund_id == fund.id, not_deleted(PortfolioCompany))
        ).all()
        rows = [c.as_dict() for c in companies]

    aggregated = aggregate_portfolio_metrics(rows)
    currency = fund.currency
    return {
        "total_companies": aggregated["total_companies"],
        "active_companies": aggregated["active_companies"],
        "exited_companies": sum(1 for r in rows if r["status"] == "EXITED"),
        "total_invested": format_money(aggregated["total_invested"], currency),
        "total_current_value": format_money(aggregated["total_current_value"], currency),
        "total_realized_value": format_money(aggregated["total_realized_value"], currency),
        "total_unrealized_value": format_money(aggregated["total_unrealized_value"], currency),
        "portfolio_moic": format_multiple(aggregated["portfolio_moic"]),
        "raw": aggregated,
    }


def get_kpi_trend(user_id: str, fund_id: str, company_id: str, metric_name: str) -> List[Dict[str, Any]]:
    column = resolve_metric_name(metric_name)
    if column is None:
        raise ServiceError(f"Invalid metric name: {metric_name}")

    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        metrics = session.scalars(
            select(PortfolioMetric)
            .where(PortfolioMetric.company_id == company.id)
            .order_by(PortfolioMetric.period_date.asc())
        ).all()
        return build_kpi_trend([m.as_dict() for m in metrics], column)


def get_valuation_history(user_id: str, fund_id: str, company_id: str) -> List[Dict[str, Any]]:
    """Valuations newest first, each with its change vs. the prior valuation."""
    with SessionLocal() as session:
        company = _load_company(session, user_id, fund_id, company_id)
        currency = session.get(Fund, company.fund_id).currency
        valuations = session.scalars(
            select(Valuation)
            .where(Valuation.company_id == company.id)
            .order_by(Valuation.valuation_date.asc(), Valuation.created_at.asc())
        ).all()
        history = compute_valuation_changes([v.as_dict() for v in valuations])

    for entry in history:
        entry["value_display"] = format_money(entry["value"], currency)
    history.reverse()
    return history
