# supabase_client/helpers.py
"""
Utility layer for mirroring platform events to Supabase.

Features
--------
- Safe, reusable wrappers for inserting records.
- Graceful handling of transient errors (connection or schema issues).
- Automatic timestamp fallback (for tables without default `created_at`).
- Structured return values for easier backend integration.

Supabase is optional: the relational database remains the system of record,
and every function here degrades to an empty result when it is unavailable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from supabase_client.config import get_supabase_client, is_supabase_configured

logger = logging.getLogger(__name__)


def insert_record(
    table: str,
    data: Dict[str, Any],
    debug: bool = True
) -> Dict[str, Any]:
    """
    Insert a record into a Supabase table safely.

    Parameters
    ----------
    table : str
        Target table name in Supabase.
    data : dict
        Dictionary of column names and values.
    debug : bool
        If True, logs payload keys and the result.

    Returns
    -------
    dict
        Inserted record data or empty dict on failure.
    """
    try:
        supabase = get_supabase_client()

        payload = dict(data)
        if "created_at" not in payload:
            payload["created_at"] = datetime.now(timezone.utc).isoformat()

        if debug:
            logger.debug(f"[Supabase] → Inserting into '{table}' (keys: {list(payload.keys())})")

        res = supabase.table(table).insert(payload).execute()
        rows = res.data or []

        if debug:
            logger.debug(f"[Supabase] ✅ Insert success → {len(rows)} row(s)")

        return rows[0] if rows else {}

    except Exception as e:  # noqa: BLE001
        logger.warning(f"[Supabase] ⚠️ Insert into '{table}' failed: {type(e).__name__}: {e}")
        return {}


def mirror_record(table: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Insert only when Supabase is configured; otherwise a silent no-op."""
    if not is_supabase_configured():
        return {}
    return insert_record(table, data, debug=False)


def test_connection(debug: bool = True) -> Optional[str]:
    """
    Verify Supabase client connectivity.

    Returns
    -------
    Optional[str]
        Supabase project URL if success, None if failure.
    """
    try:
        sb = get_supabase_client()
        if debug:
            logger.info(f"[Supabase] ✅ Connection OK → {sb.supabase_url}")
        return sb.supabase_url
    except Exception as e:  # noqa: BLE001
        if debug:
            logger.warning(f"[Supabase] ❌ Connection failed: {e}")
        return None
