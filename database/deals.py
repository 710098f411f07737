"""
database/deals.py
-----------------

Deal pipeline CRUD, stage transitions, scoring, analytics and CSV export.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, or_, select

from analytics.performance import pipeline_analytics
from analytics.scoring import compute_composite_score, get_score_band, validate_deal_scores
from core.audit import CREATE, DELETE, UPDATE, compute_changes, log_audit
from core.csv_export import generate_csv
from core.errors import NotFoundError, ServiceError
from core.formatters import format_currency, parse_money, parse_number
from core.fund_access import require_module_permission
from core.pagination import paginated_result, parse_pagination_params
from core.permissions import DEALS
from core.soft_delete import not_deleted, soft_delete
from core.stages import DEAL_STAGES, get_allowed_transitions, get_stage_display, validate_stage_transition
from database.db_setup import SessionLocal
from database.models import Deal, Fund
from database.notifications import notify_fund_members

logger = logging.getLogger(__name__)

DEAL_STATUSES = ("ACTIVE", "ON_HOLD", "PASSED", "WON", "LOST")

_STAGE_STATUS = {
    "CLOSED": "WON",
    "CLOSED_WON": "WON",
    "CLOSED_LOST": "LOST",
    "PASSED": "PASSED",
    "ON_HOLD": "ON_HOLD",
}

MONEY_FIELDS = ("asking_price", "revenue", "ebitda")
RATIO_FIELDS = ("revenue_multiple", "ebitda_multiple", "gross_margin", "ebitda_margin")
INT_FIELDS = ("employee_count", "year_founded")
TEXT_FIELDS = (
    "company_name",
    "source",
    "description",
    "city",
    "state",
    "country",
    "investment_thesis",
    "key_risks",
    "next_steps",
)

EXPORT_COLUMNS = [
    ("Name", "name"),
    ("Company", "company_name"),
    ("Industry", "industry"),
    ("Stage", lambda d: get_stage_display(d["stage"])),
    ("Status", "status"),
    ("Asking Price", "asking_price"),
    ("Revenue", "revenue"),
    ("EBITDA", "ebitda"),
    ("Composite Score", "composite_score"),
    ("Expected Close", "expected_close_date"),
    ("Created", "created_at"),
]


def status_for_stage(stage: str) -> str:
    return _STAGE_STATUS.get(stage, "ACTIVE")


def _money_or_none(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return parse_money(value)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ServiceError(f"Invalid date: {value}") from None


def _clean_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key in MONEY_FIELDS:
        if key in data:
            fields[key] = _money_or_none(data[key])
    for key in RATIO_FIELDS:
        if key in data:
            fields[key] = parse_number(data[key], key.replace("_", " "))
    for key in INT_FIELDS:
        if key in data:
            fields[key] = parse_number(data[key], key.replace("_", " "), integer=True)
    for key in TEXT_FIELDS:
        if key in data:
            fields[key] = (str(data[key]).strip() or None) if data[key] is not None else None
    if "expected_close_date" in data:
        fields["expected_close_date"] = _parse_date(data["expected_close_date"])
    return fields


def _serialize(deal: Deal, currency: str = "USD") -> Dict[str, Any]:
    data = deal.as_dict()
    data["stage_display"] = get_stage_display(deal.stage)
    data["asking_price_display"] = format_currency(deal.asking_price, currency)
    data["allowed_transitions"] = get_allowed_transitions(deal.stage)
    data["score_band"] = get_score_band(deal.composite_score) if deal.composite_score is not None else None
    return data


def load_deal(session, user_id: str, fund_id: str, deal_id: str) -> Deal:
    fund = require_module_permission(session, user_id, fund_id, DEALS)
    deal = session.scalar(select(Deal).where(Deal.id == deal_id, Deal.fund_id == fund.id, not_deleted(Deal)))
    if deal is None:
        raise NotFoundError("Deal not found")
    return deal


def _apply_stage(deal: Deal, target: str) -> None:
    validate_stage_transition(deal.stage, target)
    deal.stage = target
    deal.status = status_for_stage(target)
    if deal.status == "WON" and deal.actual_close_date is None:
        deal.actual_close_date = date.today()


# --------------------------------------------------------------------------- #
# Queries
# --------------------------------------------------------------------------- #

def list_deals(
    user_id: str,
    fund_id: str,
    *,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
    stage: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    params = parse_pagination_params(page, page_size, search)
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, DEALS)
        filters = [Deal.fund_id == fund.id, not_deleted(Deal)]
        if params.search:
            pattern = f"%{params.search}%"
            filters.append(or_(Deal.name.ilike(pattern), Deal.company_name.ilike(pattern)))
        if stage:
            filters.append(Deal.stage == stage)
        if status:
            filters.append(Deal.status == status)

        total = session.scalar(select(func.count()).select_from(Deal).where(*filters)) or 0
        rows = session.scalars(
            select(Deal)
            .where(*filters)
            .order_by(Deal.created_at.desc())
            .offset(params.skip)
            .limit(params.page_size)
        ).all()
        return paginated_result([_serialize(d, fund.currency) for d in rows], int(total), params.page, params.page_size)


def get_deal(user_id: str, fund_id: str, deal_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        currency = session.get(Fund, deal.fund_id).currency
        return _serialize(deal, currency)


def get_pipeline_analytics(user_id: str, fund_id: str) -> Optional[Dict[str, Any]]:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, DEALS)
        deals = session.scalars(select(Deal).where(Deal.fund_id == fund.id, not_deleted(Deal))).all()
        return pipeline_analytics([d.as_dict() for d in deals], fund.currency)


def export_deals_csv(user_id: str, fund_id: str) -> str:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, DEALS)
        deals = session.scalars(
            select(Deal).where(Deal.fund_id == fund.id, not_deleted(Deal)).order_by(Deal.created_at.desc())
        ).all()
        return generate_csv(EXPORT_COLUMNS, [d.as_dict() for d in deals])


# --------------------------------------------------------------------------- #
# Mutations
# --------------------------------------------------------------------------- #

def create_deal(user_id: str, fund_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    name = str(data.get("name") or "").strip()
    if len(name) < 2:
        raise ServiceError("Company name must be at least 2 characters")
    industry = str(data.get("industry") or "").strip()
    if len(industry) < 2:
        raise ServiceError("Sector must be at least 2 characters")
    stage = data.get("stage") or "IDENTIFIED"
    if stage not in DEAL_STAGES:
        raise ServiceError("Invalid stage")

    fields = _clean_fields(data)
    fields.setdefault("company_name", None)
    fields["company_name"] = fields["company_name"] or name

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, DEALS)
        deal = Deal(
            fund_id=fund.id,
            name=name,
            industry=industry,
            stage=stage,
            status=status_for_stage(stage),
            created_by_id=user_id,
            **fields,
        )
        session.add(deal)
        session.commit()
        logger.info(f"[Deals] ✅ Created deal '{deal.name}' in fund {fund.id}")

        log_audit(session, user_id=user_id, action=CREATE, entity_type="Deal", entity_id=deal.id)
        return _serialize(deal, fund.currency)


def update_deal(user_id: str, fund_id: str, deal_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Partial update. A stage change is validated only when the stage actually
    differs from the current one.
    """
    updates = _clean_fields(data)
    if data.get("name"):
        name = str(data["name"]).strip()
        if len(name) < 2:
            raise ServiceError("Company name must be at least 2 characters")
        updates["name"] = name
    if data.get("industry"):
        updates["industry"] = str(data["industry"]).strip()

    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        old = {key: getattr(deal, key) for key in updates}
        old_stage = deal.stage

        for key, value in updates.items():
            setattr(deal, key, value)
        target = data.get("stage")
        if target and target != deal.stage:
            _apply_stage(deal, target)
        session.commit()

        changes = compute_changes(old, updates) or {}
        if deal.stage != old_stage:
            changes["stage"] = {"old": old_stage, "new": deal.stage}
        log_audit(session, user_id=user_id, action=UPDATE, entity_type="Deal", entity_id=deal.id, changes=changes)
        return _serialize(deal, session.get(Fund, deal.fund_id).currency)


def update_deal_stage(user_id: str, fund_id: str, deal_id: str, stage: str) -> Dict[str, Any]:
    if stage not in DEAL_STAGES:
        raise ServiceError("Invalid stage")

    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        old_stage = deal.stage
        _apply_stage(deal, stage)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Deal",
            entity_id=deal.id,
            changes={"stage": {"old": old_stage, "new": stage}},
        )
        notify_fund_members(
            deal.fund_id,
            "DEAL_STAGE_CHANGE",
            f"{deal.name} moved to {get_stage_display(stage)}",
            f"Stage changed from {get_stage_display(old_stage)} to {get_stage_display(stage)}.",
            link=f"/deals/{deal.id}",
            exclude_user_id=user_id,
        )
        return _serialize(deal, session.get(Fund, deal.fund_id).currency)


def update_deal_scores(
    user_id: str,
    fund_id: str,
    deal_id: str,
    *,
    attractiveness: Any,
    fit: Any,
    risk: Any,
) -> Dict[str, Any]:
    error = validate_deal_scores(attractiveness, fit, risk)
    if error:
        raise ServiceError(error)

    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        old = {
            "attractiveness_score": deal.attractiveness_score,
            "fit_score": deal.fit_score,
            "risk_score": deal.risk_score,
            "composite_score": deal.composite_score,
        }
        new = {
            "attractiveness_score": int(attractiveness),
            "fit_score": int(fit),
            "risk_score": int(risk),
            "composite_score": compute_composite_score(attractiveness, fit, risk),
        }
        for key, value in new.items():
            setattr(deal, key, value)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Deal",
            entity_id=deal.id,
            changes=compute_changes(old, new),
        )
        return _serialize(deal, session.get(Fund, deal.fund_id).currency)


def delete_deal(user_id: str, fund_id: str, deal_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        soft_delete(session, "deal", deal.id)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="Deal", entity_id=deal.id)
        return {"success": True}


def list_stage_options() -> List[Dict[str, str]]:
    return [{"value": s, "label": get_stage_display(s)} for s in DEAL_STAGES]
