"""
database/quarterly.py
---------------------

Quarterly LP updates stored as ``Report`` rows.

A report's ``content`` JSON holds ``{"year", "quarter", "sections"}``; each
section is ``{"key", "title", "content", "editable"}``. Generated sections
(fund summary, capital activity) are locked; narrative sections stay
editable while the report is in DRAFT or REVIEW.

Publishing notifies the fund team. A published report can then be marked
as distributed to the LPs with an email address on file.
"""

from __future__ import annotations

import copy
import logging
from calendar import monthrange
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_, select

from analytics.performance import summarize_capital
from core.audit import CREATE, UPDATE, log_audit
from core.errors import ConflictError, NotFoundError, ServiceError
from core.formatters import format_money, format_multiple, format_percent
from core.fund_access import require_module_permission
from core.permissions import REPORTS
from core.soft_delete import not_deleted
from database.db_setup import SessionLocal, utcnow
from database.models import Commitment, Deal, Fund, Investor, PortfolioCompany, Report
from database.notifications import notify_fund_members

logger = logging.getLogger(__name__)

QUARTERLY_UPDATE = "QUARTERLY_UPDATE"
EDITABLE_STATUSES = ("DRAFT", "REVIEW")
MIN_YEAR, MAX_YEAR = 2020, 2030


def quarter_period(year: int, quarter: int) -> tuple:
    """First and last day of a calendar quarter."""
    start_month = (quarter - 1) * 3 + 1
    end_month = start_month + 2
    return date(year, start_month, 1), date(year, end_month, monthrange(year, end_month)[1])


def build_sections(fund, commitments, companies, active_deal_count: int) -> List[Dict[str, Any]]:
    currency = fund.currency
    capital = summarize_capital(commitments)
    invested = sum(float(c.get("equity_invested") or 0) for c in companies)
    value = sum(float(c.get("total_value") or 0) for c in companies)
    gross_moic = value / invested if invested > 0 else 0

    committed = capital["total_commitments"]
    called = capital["total_called"]
    distributed = capital["total_distributed"]

    if companies:
        portfolio_text = "\n".join(
            f"{c['name']}: Invested {format_money(c.get('equity_invested'), currency)}, "
            f"Current Value {format_money(c.get('total_value') or 0, currency)}"
            for c in companies
        )
    else:
        portfolio_text = "No portfolio companies to report on."

    return [
        {"key": "letter", "title": "Letter from the Manager", "content": "", "editable": True},
        {
            "key": "fund_summary",
            "title": "Fund Summary",
            "content": "\n".join(
                [
                    f"Fund: {fund.name}",
                    f"Total Commitments: {format_money(committed, currency)}",
                    f"Capital Called: {format_money(called, currency)} ({format_percent(capital['call_percentage'])})",
                    f"Capital Distributed: {format_money(distributed, currency)}",
                    f"Gross MOIC: {format_multiple(gross_moic)}",
                    f"Active Deals: {active_deal_count}",
                    f"Portfolio Companies: {len(companies)}",
                ]
            ),
            "editable": False,
        },
        {"key": "portfolio_update", "title": "Portfolio Company Updates", "content": portfolio_text, "editable": True},
        {
            "key": "capital_summary",
            "title": "Capital Activity",
            "content": "\n".join(
                [
                    f"Total Commitments: {format_money(committed, currency)}",
                    f"Called to Date: {format_money(called, currency)}",
                    f"Remaining Uncalled: {format_money(committed - called, currency)}",
                    f"Distributed to Date: {format_money(distributed, currency)}",
                ]
            ),
            "editable": False,
        },
        {"key": "looking_ahead", "title": "Looking Ahead", "content": "", "editable": True},
    ]


def serialize_report(report: Report) -> Dict[str, Any]:
    data = report.as_dict()
    content = report.content or {}
    data["year"] = content.get("year")
    data["quarter"] = content.get("quarter")
    data["sections"] = content.get("sections", [])
    return data


def _load(session, user_id: str, fund_id: str, report_id: str) -> Report:
    fund = require_module_permission(session, user_id, fund_id, REPORTS)
    report = session.scalar(select(Report).where(Report.id == report_id, Report.fund_id == fund.id))
    if report is None:
        raise NotFoundError("Report not found")
    return report


def create_quarterly_update(user_id: str, fund_id: str, *, year: int, quarter: int) -> Dict[str, Any]:
    """Generate a DRAFT quarterly update pre-filled from current fund data."""
    try:
        year, quarter = int(year), int(quarter)
    except (TypeError, ValueError):
        raise ServiceError("Year and quarter must be integers") from None
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ServiceError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    if not 1 <= quarter <= 4:
        raise ServiceError("Quarter must be between 1 and 4")

    period_start, period_end = quarter_period(year, quarter)
    title = f"Q{quarter} {year} Quarterly Update"

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, REPORTS)
        duplicate = session.scalar(
            select(Report.id).where(
                Report.fund_id == fund.id,
                Report.type == QUARTERLY_UPDATE,
                Report.period_start == period_start,
            )
        )
        if duplicate:
            raise ConflictError(f"A quarterly update for Q{quarter} {year} already exists")

        commitments = session.scalars(
            select(Commitment).where(Commitment.fund_id == fund.id, not_deleted(Commitment))
        ).all()
        companies = session.scalars(
            select(PortfolioCompany).where(PortfolioCompany.fund_id == fund.id, not_deleted(PortfolioCompany))
        ).all()
        active_deals = session.scalars(
            select(Deal.id).where(Deal.fund_id == fund.id, Deal.status == "ACTIVE", not_deleted(Deal))
        ).all()

        sections = build_sections(
            fund,
            [c.as_dict() for c in commitments],
            [c.as_dict() for c in companies],
            len(active_deals),
        )
        report = Report(
            fund_id=fund.id,
            type=QUARTERLY_UPDATE,
            title=title,
            period_start=period_start,
            period_end=period_end,
            content={"year": year, "quarter": quarter, "sections": sections},
            status="DRAFT",
            created_by_id=user_id,
        )
        session.add(report)
        session.commit()
        logger.info(f"[Reports] ✅ Generated {title} for fund {fund.id}")

        log_audit(session, user_id=user_id, action=CREATE, entity_type="Report", entity_id=report.id)
        return serialize_report(report)


def list_reports(user_id: str, fund_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, REPORTS)
        reports = session.scalars(
            select(Report).where(Report.fund_id == fund.id).order_by(Report.created_at.desc())
        ).all()
        return [
            {
                "id": r.id,
                "type": r.type,
                "title": r.title,
                "status": r.status,
                "period_start": r.period_start.isoformat() if r.period_start else None,
                "period_end": r.period_end.isoformat() if r.period_end else None,
                "published_at": r.published_at.isoformat() if r.published_at else None,
                "created_at": r.created_at.isoformat(),
            }
            for r in reports
        ]


def get_report(user_id: str, fund_id: str, report_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        return serialize_report(_load(session, user_id, fund_id, report_id))


def update_section(user_id: str, fund_id: str, report_id: str, section_key: str, content: str) -> Dict[str, Any]:
    if content is None:
        raise ServiceError("Content is required")

    with SessionLocal() as session:
        report = _load(session, user_id, fund_id, report_id)
        if report.status not in EDITABLE_STATUSES:
            raise ServiceError("Cannot edit a published report")

        body = copy.deepcopy(report.content or {})
        sections = body.get("sections") or []
        if not sections:
            raise ServiceError("Report has no sections")
        section = next((s for s in sections if s["key"] == section_key), None)
        if section is None:
            raise NotFoundError("Section not found")
        if not section.get("editable"):
            raise ServiceError(f"Section '{section['title']}' is generated and cannot be edited")

        section["content"] = str(content)
        # JSON columns only persist on reassignment
        report.content = body
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Report",
            entity_id=report.id,
            changes={f"section.{section_key}": {"old": "[previous]", "new": "[updated]"}},
        )
        return serialize_report(report)


def submit_for_review(user_id: str, fund_id: str, report_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        report = _load(session, user_id, fund_id, report_id)
        if report.status != "DRAFT":
            raise ServiceError("Only draft reports can be submitted for review")
        report.status = "REVIEW"
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Report",
            entity_id=report.id,
            changes={"status": {"old": "DRAFT", "new": "REVIEW"}},
        )
        return serialize_report(report)


def publish_report(user_id: str, fund_id: str, report_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        report = _load(session, user_id, fund_id, report_id)
        if report.status == "PUBLISHED":
            raise ServiceError("Report is already published")
        old_status = report.status
        report.status = "PUBLISHED"
        report.published_at = utcnow()
        report.published_by_id = user_id
        session.commit()
        logger.info(f"[Reports] ✅ Published {report.title}")

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Report",
            entity_id=report.id,
            changes={"status": {"old": old_status, "new": "PUBLISHED"}},
        )
        notify_fund_members(
            report.fund_id,
            "REPORT_PUBLISHED",
            f"Report published: {report.title}",
            "A report was published for your fund.",
            link=f"/reports/{report.id}",
            exclude_user_id=user_id,
        )
        return serialize_report(report)


# --------------------------------------------------------------------------- #
# LP distribution
# --------------------------------------------------------------------------- #

def _recipients(session, fund_id: str, recipient_ids: Optional[Sequence[str]] = None) -> List[Investor]:
    """Investors with an email address and a live commitment to the fund."""
    filters = [
        Commitment.fund_id == fund_id,
        not_deleted(Commitment),
        not_deleted(Investor),
        or_(Investor.email.is_not(None), Investor.contact_email.is_not(None)),
    ]
    if recipient_ids:
        filters.append(Investor.id.in_(list(recipient_ids)))
    return list(
        session.scalars(
            select(Investor).join(Commitment, Commitment.investor_id == Investor.id).where(*filters).distinct()
        ).all()
    )


def get_distribution_preview(user_id: str, fund_id: str, report_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        report = _load(session, user_id, fund_id, report_id)
        fund = session.get(Fund, report.fund_id)
        recipients = _recipients(session, report.fund_id)
        return {
            "report_title": report.title,
            "recipient_count": len(recipients),
            "recipient_names": sorted(r.name for r in recipients),
            "default_subject": f"{report.title} - {fund.name}",
        }


def distribute_report(
    user_id: str, fund_id: str, report_id: str, recipient_ids: Optional[Sequence[str]] = None
) -> Dict[str, Any]:
    """
    Mark a published report as sent to the fund's LPs.

    Only the delivery is recorded (``sent_to_lps``/``sent_at`` plus an audit
    entry); the message itself goes out through the firm's own mail system.
    """
    with SessionLocal() as session:
        report = _load(session, user_id, fund_id, report_id)
        if report.status != "PUBLISHED":
            raise ServiceError("Report must be published before distribution")
        recipients = _recipients(session, report.fund_id, recipient_ids)
        if not recipients:
            raise ServiceError("No eligible recipients found")

        old_sent = report.sent_to_lps
        report.sent_to_lps = True
        report.sent_at = utcnow()
        session.commit()
        logger.info(f"[Reports] ✅ Distributed {report.title} to {len(recipients)} LPs")

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Report",
            entity_id=report.id,
            changes={
                "sent_to_lps": {"old": old_sent, "new": True},
                "recipient_count": {"old": None, "new": len(recipients)},
            },
        )
        return {
            "success": True,
            "recipient_count": len(recipients),
            "recipients": [{"id": r.id, "name": r.name, "email": r.email or r.contact_email} for r in recipients],
            "sent_at": report.sent_at.isoformat(),
        }
