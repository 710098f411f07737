"""
database/communications.py
--------------------------

Log of interactions with an LP: emails, calls, meetings, ...

Entries are records of communication that already happened; nothing is
sent from here. The history is scoped to the active fund's investors.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from sqlalchemy import select

from core.audit import CREATE, UPDATE, log_audit
from core.errors import NotFoundError, ServiceError
from core.fund_access import get_active_user, require_module_permission
from core.permissions import INVESTORS
from database.capital_calls import parse_date
from database.db_setup import SessionLocal
from database.investors import load_investor
from database.models import Communication

logger = logging.getLogger(__name__)

COMMUNICATION_TYPES = ("EMAIL", "CALL", "MEETING", "VIDEO_CALL", "TEXT", "OTHER")
DIRECTIONS = ("INBOUND", "OUTBOUND")


def _optional_text(data: Mapping[str, Any], key: str):
    value = data.get(key)
    return (str(value).strip() or None) if value is not None else None


def log_communication(user_id: str, fund_id: str, investor_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    comm_type = str(data.get("type") or "").strip().upper()
    if comm_type not in COMMUNICATION_TYPES:
        raise ServiceError(f"Type must be one of {', '.join(COMMUNICATION_TYPES)}")
    direction = str(data.get("direction") or "").strip().upper()
    if direction not in DIRECTIONS:
        raise ServiceError("Direction must be INBOUND or OUTBOUND")
    follow_up = parse_date(data["follow_up_date"], "Follow-up date") if data.get("follow_up_date") else None

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investor = load_investor(session, fund, investor_id)
        entry = Communication(
            investor_id=investor.id,
            fund_id=fund.id,
            type=comm_type,
            direction=direction,
            subject=_optional_text(data, "subject"),
            content=_optional_text(data, "content"),
            contact_name=_optional_text(data, "contact_name"),
            notes=_optional_text(data, "notes"),
            follow_up_date=follow_up,
            sent_by=get_active_user(session, user_id).name,
        )
        session.add(entry)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="Communication",
            entity_id=entry.id,
            changes={
                "type": {"old": None, "new": comm_type},
                "direction": {"old": None, "new": direction},
                "investor_id": {"old": None, "new": investor.id},
            },
        )
        return entry.as_dict()


def get_communication_history(user_id: str, fund_id: str, investor_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        investor = load_investor(session, fund, investor_id)
        rows = session.scalars(
            select(Communication)
            .where(Communication.investor_id == investor.id, Communication.fund_id == fund.id)
            .order_by(Communication.date.desc())
        ).all()
        return [row.as_dict() for row in rows]


def complete_follow_up(user_id: str, fund_id: str, communication_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, INVESTORS)
        entry = session.get(Communication, communication_id)
        if entry is None or entry.fund_id != fund.id:
            raise NotFoundError("Communication not found")
        load_investor(session, fund, entry.investor_id)
        if not entry.follow_up_date:
            raise ServiceError("This communication has no follow-up")
        entry.follow_up_done = True
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Communication",
            entity_id=entry.id,
            changes={"follow_up_done": {"old": False, "new": True}},
        )
        return entry.as_dict()
