"""
core/health.py
--------------
System health diagnostics for the BlackGem backend.

Purpose
-------
- Used by the FastAPI `/health` endpoint.
- Validates database connectivity (`SELECT 1`) and optional Supabase access.
- Reports backend uptime, version, CPU/memory usage and platform.
- Returns a JSON-safe dict ready for serialization.
"""

from __future__ import annotations

import os
import platform
import time
from typing import Any, Dict

import psutil
from sqlalchemy import text

from core.metadata import __version__
from database.db_setup import SessionLocal
from supabase_client.config import get_supabase_client, is_supabase_configured

# Cache the process start time for uptime calculation
START_TIME = time.time()


def _check_database() -> bool:
    try:
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
        return True
    except Exception:  # noqa: BLE001
        return False


def system_health() -> Dict[str, Any]:
    """
    Return structured backend health diagnostics.

    Returns
    -------
    dict
        status is "ok", "degraded" (Supabase configured but unreachable) or
        "error" (database unreachable).
    """
    status = "ok"
    message = "Backend operational."

    database_connected = _check_database()
    if not database_connected:
        status = "error"
        message = "Database check failed."

    # --- Supabase connectivity test (optional) ---
    supabase_connected = False
    supabase_url = None
    if is_supabase_configured():
        try:
            sb = get_supabase_client()
            supabase_url = sb.supabase_url
            sb.table("audit_logs").select("id").limit(1).execute()
            supabase_connected = True
        except Exception as e:  # noqa: BLE001
            if status == "ok":
                status = "degraded"
                message = f"Supabase check failed: {e.__class__.__name__}"

    # --- System metrics ---
    try:
        cpu_load = psutil.cpu_percent(interval=0.1)
        memory_usage = round(psutil.virtual_memory().used / (1024 * 1024), 2)
    except Exception:  # noqa: BLE001
        cpu_load = None
        memory_usage = None

    return {
        "status": status,
        "message": message,
        "version": os.getenv("BACKEND_VERSION", __version__),
        "database_connected": database_connected,
        "supabase_enabled": is_supabase_configured(),
        "supabase_connected": supabase_connected,
        "supabase_url": supabase_url,
        "cpu_load": cpu_load,
        "memory_usage": memory_usage,
        "uptime_sec": round(time.time() - START_TIME, 2),
        "system": platform.system(),
        "release": platform.release(),
    }
