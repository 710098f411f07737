"""
core/audit.py
-------------
Audit trail for every CREATE / UPDATE / DELETE.

- ``log_audit`` runs after the primary operation has committed and never
  raises; a failed audit write is logged and rolled back on its own.
- Entries are mirrored to Supabase (``audit_logs``) when configured.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import AuditLog
from supabase_client.helpers import mirror_record

logger = logging.getLogger(__name__)

CREATE = "CREATE"
UPDATE = "UPDATE"
DELETE = "DELETE"
AUDIT_ACTIONS = (CREATE, UPDATE, DELETE)


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def compute_changes(
    old_data: Mapping[str, Any],
    new_data: Mapping[str, Any],
) -> Optional[Dict[str, Dict[str, Any]]]:
    """
    Diff of the keys in ``new_data`` whose value differs from ``old_data``.

    Returns ``{field: {"old": ..., "new": ...}}`` or None when nothing changed.
    """
    changes: Dict[str, Dict[str, Any]] = {}
    for key, new_value in new_data.items():
        old_value = old_data.get(key)
        if old_value != new_value:
            changes[key] = {"old": _json_safe(old_value), "new": _json_safe(new_value)}
    return changes or None


def log_audit(
    session: Session,
    *,
    user_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: str,
    changes: Optional[Mapping[str, Any]] = None,
) -> None:
    """Best-effort audit write. Never blocks or fails the primary operation."""
    payload = {
        "user_id": user_id,
        "action": action,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "changes": _json_safe(dict(changes)) if changes else None,
    }
    try:
        session.add(AuditLog(**payload))
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"[Audit] ⚠️ Failed to write audit entry for {entity_type}:{entity_id}: {e}")
        return

    mirror_record("audit_logs", payload)


def query_audit_logs(
    session: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    user_ids: Optional[list] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 20,
    offset: int = 0,
) -> Dict[str, Any]:
    """
    Filtered, paginated audit query.

    Returns
    -------
    dict
        count, total, last_updated, results
    """
    filters = []
    if entity_type:
        filters.append(AuditLog.entity_type == entity_type)
    if entity_id:
        filters.append(AuditLog.entity_id == entity_id)
    if action:
        filters.append(AuditLog.action == action.upper())
    if user_ids is not None:
        filters.append(AuditLog.user_id.in_(user_ids))
    if start:
        filters.append(AuditLog.created_at >= start)
    if end:
        filters.append(AuditLog.created_at <= end)

    total = session.scalar(select(func.count()).select_from(AuditLog).where(*filters)) or 0
    rows = session.scalars(
        select(AuditLog)
        .where(*filters)
        .order_by(AuditLog.created_at.desc())
        .offset(offset)
        .limit(limit)
    ).all()
    results = [row.as_dict() for row in rows]

    return {
        "count": len(results),
        "total": int(total),
        "last_updated": results[0]["created_at"] if results else None,
        "results": results,
    }
