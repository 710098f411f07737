"""
database/notes.py
-----------------

Free-text notes on a deal, newest first. Deleting a note removes it.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy import select

from core.audit import CREATE, DELETE, log_audit
from core.errors import NotFoundError, ServiceError
from database.db_setup import SessionLocal
from database.deals import load_deal
from database.models import DealNote, User
from database.notifications import notify_fund_members

logger = logging.getLogger(__name__)


def list_notes(user_id: str, fund_id: str, deal_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        rows = session.execute(
            select(DealNote, User.name)
            .join(User, User.id == DealNote.user_id)
            .where(DealNote.deal_id == deal.id)
            .order_by(DealNote.created_at.desc())
        ).all()
        return [{**note.as_dict(), "user_name": name} for note, name in rows]


def create_note(user_id: str, fund_id: str, deal_id: str, content: str) -> Dict[str, Any]:
    content = (content or "").strip()
    if not content:
        raise ServiceError("Note content is required")

    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        note = DealNote(deal_id=deal.id, user_id=user_id, content=content)
        session.add(note)
        session.commit()

        log_audit(session, user_id=user_id, action=CREATE, entity_type="DealNote", entity_id=note.id)
        notify_fund_members(
            deal.fund_id,
            "COMMENT_ADDED",
            f"New note on {deal.name}",
            content[:140],
            link=f"/deals/{deal.id}",
            exclude_user_id=user_id,
        )
        return {**note.as_dict(), "user_name": session.get(User, user_id).name}


def delete_note(user_id: str, fund_id: str, deal_id: str, note_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        deal = load_deal(session, user_id, fund_id, deal_id)
        note = session.get(DealNote, note_id)
        if note is None or note.deal_id != deal.id:
            raise NotFoundError("Note not found")
        session.delete(note)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="DealNote", entity_id=note_id)
        return {"success": True}
