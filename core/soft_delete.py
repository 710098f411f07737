"""
Soft delete helpers.

Critical fund records are never removed; ``deleted_at`` is stamped instead and
every list/get query filters with ``not_deleted``.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from core.errors import NotFoundError
from database.db_setup import utcnow
from database.models import CapitalCall, Commitment, Deal, Distribution, Document, Investor, PortfolioCompany

SOFT_DELETABLE = {
    "deal": Deal,
    "investor": Investor,
    "portfolio_company": PortfolioCompany,
    "capital_call": CapitalCall,
    "distribution": Distribution,
    "commitment": Commitment,
    "document": Document,
}


def not_deleted(model: Any):
    """SQL clause selecting rows that have not been soft-deleted."""
    return model.deleted_at.is_(None)


def soft_delete(session: Session, model_name: str, record_id: str) -> Any:
    """Stamp ``deleted_at`` on a record. Caller commits."""
    model = SOFT_DELETABLE[model_name]
    record = session.get(model, record_id)
    if record is None or record.deleted_at is not None:
        raise NotFoundError(f"{model.__name__} not found")
    record.deleted_at = utcnow()
    return record
