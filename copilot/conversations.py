"""
copilot/conversations.py
------------------------
Per-user copilot conversations inside a fund.

Conversations are private to their owner; archiving stamps ``archived_at``
instead of deleting. Message persistence is best-effort and never fails a
chat response.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from core.audit import CREATE, DELETE, UPDATE, log_audit
from core.errors import NotFoundError, ServiceError
from core.fund_access import require_fund_access
from database.db_setup import SessionLocal, utcnow
from database.models import AIConversation, AIMessage, new_id

logger = logging.getLogger(__name__)

CONVERSATION_LIST_LIMIT = 20
MAX_TITLE_LENGTH = 60


def _load_owned(session, user_id: str, conversation_id: str) -> AIConversation:
    conversation = session.get(AIConversation, conversation_id)
    if conversation is None or conversation.user_id != user_id:
        raise NotFoundError("Conversation not found")
    require_fund_access(session, user_id, conversation.fund_id)
    return conversation


def require_conversation(user_id: str, fund_id: str, conversation_id: str) -> Dict[str, Any]:
    """The caller's conversation in ``fund_id``; 404 for anyone else's or another fund's."""
    with SessionLocal() as session:
        conversation = _load_owned(session, user_id, conversation_id)
        if conversation.fund_id != fund_id:
            raise NotFoundError("Conversation not found")
        return {"id": conversation.id, "title": conversation.title}


def count_active_conversations(user_id: str, fund_id: str) -> int:
    with SessionLocal() as session:
        return session.scalar(
            select(func.count())
            .select_from(AIConversation)
            .where(
                AIConversation.user_id == user_id,
                AIConversation.fund_id == fund_id,
                AIConversation.archived_at.is_(None),
            )
        ) or 0


def list_conversations(user_id: str, fund_id: str) -> List[Dict[str, Any]]:
    """The user's 20 most recently active, non-archived conversations."""
    with SessionLocal() as session:
        require_fund_access(session, user_id, fund_id)
        rows = session.scalars(
            select(AIConversation)
            .where(
                AIConversation.fund_id == fund_id,
                AIConversation.user_id == user_id,
                AIConversation.archived_at.is_(None),
            )
            .order_by(AIConversation.updated_at.desc())
            .limit(CONVERSATION_LIST_LIMIT)
        ).all()
        return [
            {"id": c.id, "title": c.title, "created_at": c.created_at.isoformat(), "updated_at": c.updated_at.isoformat()}
            for c in rows
        ]


def get_conversation_messages(user_id: str, conversation_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        conversation = _load_owned(session, user_id, conversation_id)
        return [m.as_dict() for m in conversation.messages]


def create_conversation(user_id: str, fund_id: str, title: Optional[str] = None) -> Dict[str, Any]:
    with SessionLocal() as session:
        require_fund_access(session, user_id, fund_id)
        conversation = AIConversation(
            user_id=user_id,
            fund_id=fund_id,
            title=(title or "").strip()[:MAX_TITLE_LENGTH] or None,
        )
        session.add(conversation)
        session.commit()

        log_audit(session, user_id=user_id, action=CREATE, entity_type="Conversation", entity_id=conversation.id)
        return {"id": conversation.id, "title": conversation.title}


def archive_conversation(user_id: str, conversation_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        conversation = _load_owned(session, user_id, conversation_id)
        conversation.archived_at = utcnow()
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="Conversation", entity_id=conversation.id)
        return {"success": True}


def rename_conversation(user_id: str, conversation_id: str, title: str) -> Dict[str, Any]:
    title = (title or "").strip()
    if not title:
        raise ServiceError("Title is required")

    with SessionLocal() as session:
        conversation = _load_owned(session, user_id, conversation_id)
        old_title = conversation.title
        conversation.title = title[:MAX_TITLE_LENGTH]
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Conversation",
            entity_id=conversation.id,
            changes={"title": {"old": old_title, "new": conversation.title}},
        )
        return {"id": conversation.id, "title": conversation.title}


def persist_messages(conversation_id: str, messages: Sequence[Mapping[str, Any]]) -> int:
    """
    Store messages not yet saved for the conversation; returns how many were added.

    Messages without an id get a fresh one. Token counts use the
    four-characters-per-token estimate.
    """
    try:
        with SessionLocal() as session:
            existing = set(
                session.scalars(select(AIMessage.id).where(AIMessage.conversation_id == conversation_id)).all()
            )
            added = 0
            for message in messages:
                message_id = message.get("id") or new_id()
                if message_id in existing:
                    continue
                content = message.get("content") or ""
                session.add(
                    AIMessage(
                        id=message_id,
                        conversation_id=conversation_id,
                        role=message.get("role") or "user",
                        content=content,
                        token_count=math.ceil(len(content) / 4),
                        tool_calls=message.get("tool_calls") or None,
                    )
                )
                existing.add(message_id)
                added += 1
            if added:
                conversation = session.get(AIConversation, conversation_id)
                if conversation is not None:
                    conversation.updated_at = utcnow()
            session.commit()
            return added
    except SQLAlchemyError as e:
        logger.warning(f"[Copilot] ⚠️ Failed to persist messages for {conversation_id}: {e}")
        return 0
