"""
database/documents.py
---------------------

Document records attached to a deal or an investor.

Only metadata is stored here (name, file name, type, size, category and an
optional storage URL); the file bytes live in external storage. Uploading a
new version of a document chains it to the root of its version history,
numbers it max + 1 and makes it the only latest version. Documents are
hidden from LPs until made visible, and deletes are soft.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, or_, select, update

from core.audit import CREATE, DELETE, UPDATE, log_audit
from core.errors import NotFoundError, RateLimitError, ServiceError
from core.fund_access import require_fund_access, require_module_permission
from core.permissions import DEALS, INVESTORS
from core.rate_limit import rate_limit
from core.soft_delete import not_deleted, soft_delete
from database.db_setup import SessionLocal
from database.deals import load_deal
from database.investors import load_investor
from database.models import Document, User
from database.notifications import notify_users

logger = logging.getLogger(__name__)

DOCUMENT_CATEGORY_DISPLAY = {
    "FUND_FORMATION": "Fund Formation",
    "INVESTOR_COMMS": "Investor Communications",
    "TAX": "Tax",
    "COMPLIANCE": "Compliance",
    "CIM": "CIM",
    "NDA": "NDA",
    "FINANCIAL_STATEMENTS": "Financial Statements",
    "LOI": "LOI",
    "TERM_SHEET": "Term Sheet",
    "DUE_DILIGENCE": "Due Diligence",
    "PURCHASE_AGREEMENT": "Purchase Agreement",
    "CLOSING_DOCS": "Closing Documents",
    "BOARD_MATERIALS": "Board Materials",
    "OPERATING_REPORTS": "Operating Reports",
    "BUDGET": "Budget",
    "STRATEGIC_PLAN": "Strategic Plan",
    "LEGAL": "Legal",
    "OTHER": "Other",
}

MAX_FILE_SIZE = 50 * 1024 * 1024
ALLOWED_EXTENSIONS = (
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".csv", ".txt", ".jpg", ".jpeg", ".png", ".gif", ".zip",
)
UPLOADS_PER_MINUTE = 20


def _serialize(doc: Document, names: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    data = doc.as_dict()
    data["category_display"] = DOCUMENT_CATEGORY_DISPLAY.get(doc.category, doc.category)
    data["uploader_name"] = (names or {}).get(doc.uploaded_by_id)
    return data


def _uploader_names(session, docs) -> Dict[str, str]:
    ids = {d.uploaded_by_id for d in docs if d.uploaded_by_id}
    if not ids:
        return {}
    return dict(session.execute(select(User.id, User.name).where(User.id.in_(ids))).all())


def _chain_filter(root_id: str):
    return or_(Document.id == root_id, Document.parent_id == root_id)


def _load_document(session, user_id: str, fund_id: str, document_id: str) -> Document:
    """The document if it belongs to the fund and the caller holds the owning module."""
    fund = require_fund_access(session, user_id, fund_id)
    doc = session.scalar(
        select(Document).where(Document.id == document_id, Document.fund_id == fund.id, not_deleted(Document))
    )
    if doc is None:
        raise NotFoundError("Document not found")
    require_module_permission(session, user_id, fund.id, DEALS if doc.deal_id else INVESTORS)
    return doc


def validate_file(file_name: str, file_size: Any) -> int:
    """Check extension and size of an uploaded file; returns the size in bytes."""
    try:
        size = int(file_size)
    except (TypeError, ValueError):
        raise ServiceError("File size is required") from None
    if size < 0:
        raise ServiceError("File size is required")
    if size > MAX_FILE_SIZE:
        raise ServiceError("File too large. Maximum size is 50MB.")
    ext = os.path.splitext(file_name or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ServiceError(f"File type {ext or '(none)'} not allowed.")
    return size


# --------------------------------------------------------------------------- #
# Queries
# --------------------------------------------------------------------------- #

def list_documents(
    user_id: str,
    fund_id: str,
    *,
    deal_id: Optional[str] = None,
    investor_id: Optional[str] = None,
    include_old_versions: bool = False,
) -> List[Dict[str, Any]]:
    if bool(deal_id) == bool(investor_id):
        raise ServiceError("Specify exactly one of deal_id or investor_id")

    with SessionLocal() as session:
        if deal_id:
            owner = load_deal(session, user_id, fund_id, deal_id)
            filters = [Document.deal_id == owner.id, Document.fund_id == owner.fund_id]
        else:
            fund = require_module_permission(session, user_id, fund_id, INVESTORS)
            owner = load_investor(session, fund, investor_id)
            filters = [Document.investor_id == owner.id, Document.fund_id == fund.id]
        filters.append(not_deleted(Document))
        if not include_old_versions:
            filters.append(Document.is_latest.is_(True))

        docs = session.scalars(select(Document).where(*filters).order_by(Document.created_at.desc())).all()
        names = _uploader_names(session, docs)
        return [_serialize(d, names) for d in docs]


def get_document_versions(user_id: str, fund_id: str, document_id: str) -> List[Dict[str, Any]]:
    """Every version in the document's chain, newest version first."""
    with SessionLocal() as session:
        doc = _load_document(session, user_id, fund_id, document_id)
        versions = session.scalars(
            select(Document)
            .where(_chain_filter(doc.parent_id or doc.id), not_deleted(Document))
            .order_by(Document.version.desc())
        ).all()
        names = _uploader_names(session, versions)
        return [_serialize(v, names) for v in versions]


# --------------------------------------------------------------------------- #
# Mutations
# --------------------------------------------------------------------------- #

def register_document(user_id: str, fund_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Record an uploaded document.

    ``data`` carries file_name, file_size, category and exactly one of
    deal_id / investor_id; optional name, file_type, file_url and
    parent_document_id (to upload a new version).
    """
    rl = rate_limit(f"upload:{user_id}", UPLOADS_PER_MINUTE, 60)
    if not rl.success:
        raise RateLimitError("Too many uploads. Please try again later.", retry_after=rl.retry_after())

    file_name = str(data.get("file_name") or "").strip()
    category = str(data.get("category") or "").strip().upper()
    deal_id = data.get("deal_id") or None
    investor_id = data.get("investor_id") or None
    if not file_name or not category or not (deal_id or investor_id):
        raise ServiceError("Missing required fields: file, category, and deal_id or investor_id")
    size = validate_file(file_name, data.get("file_size"))
    if category not in DOCUMENT_CATEGORY_DISPLAY:
        raise ServiceError("Invalid category")

    with SessionLocal() as session:
        if deal_id:
            deal = load_deal(session, user_id, fund_id, deal_id)
            owner_fields = {"deal_id": deal.id, "fund_id": deal.fund_id}
        else:
            fund = require_module_permission(session, user_id, fund_id, INVESTORS)
            investor = load_investor(session, fund, investor_id)
            owner_fields = {"investor_id": investor.id, "fund_id": fund.id}

        version, parent_id = 1, None
        if data.get("parent_document_id"):
            parent = session.scalar(
                select(Document).where(
                    Document.id == data["parent_document_id"],
                    Document.fund_id == owner_fields["fund_id"],
                    not_deleted(Document),
                )
            )
            if parent is None:
                raise NotFoundError("Document not found")
            parent_id = parent.parent_id or parent.id
            chain = (_chain_filter(parent_id), not_deleted(Document))
            version = (session.scalar(select(func.max(Document.version)).where(*chain)) or 0) + 1
            session.execute(update(Document).where(*chain).values(is_latest=False))

        doc = Document(
            name=str(data.get("name") or "").strip() or file_name,
            file_name=file_name,
            file_url=data.get("file_url") or None,
            file_type=data.get("file_type") or os.path.splitext(file_name)[1].lower(),
            file_size=size,
            category=category,
            version=version,
            is_latest=True,
            parent_id=parent_id,
            uploaded_by_id=user_id,
            **owner_fields,
        )
        session.add(doc)
        session.commit()
        logger.info(f"[Documents] ✅ Registered {doc.file_name} v{doc.version}")

        log_audit(session, user_id=user_id, action=CREATE, entity_type="Document", entity_id=doc.id)
        return _serialize(doc)


def set_latest_version(user_id: str, fund_id: str, document_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        doc = _load_document(session, user_id, fund_id, document_id)
        session.execute(
            update(Document)
            .where(_chain_filter(doc.parent_id or doc.id), not_deleted(Document))
            .values(is_latest=False)
        )
        doc.is_latest = True
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Document",
            entity_id=doc.id,
            changes={"is_latest": {"old": False, "new": True}},
        )
        return _serialize(doc)


def toggle_document_visibility(user_id: str, fund_id: str, document_id: str) -> Dict[str, Any]:
    """Flip LP visibility; linked LP accounts are notified when a document is shared."""
    with SessionLocal() as session:
        doc = _load_document(session, user_id, fund_id, document_id)
        old = doc.visible_to_lps
        doc.visible_to_lps = not old
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Document",
            entity_id=doc.id,
            changes={"visible_to_lps": {"old": old, "new": doc.visible_to_lps}},
        )
        if doc.visible_to_lps and doc.investor_id:
            lp_users = session.scalars(select(User.id).where(User.investor_id == doc.investor_id)).all()
            notify_users(lp_users, "DOCUMENT_SHARED", f"New document: {doc.name}", "A document was shared with you.")
        return {"success": True, "visible_to_lps": doc.visible_to_lps}


def delete_document(user_id: str, fund_id: str, document_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        doc = _load_document(session, user_id, fund_id, document_id)
        soft_delete(session, "document", doc.id)
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="Document", entity_id=doc.id)
        return {"success": True}
