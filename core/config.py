"""
core/config.py
--------------
Central configuration hub for the BlackGem backend.

- Reads database, auth, tenant, AI and Supabase settings from environment variables.
- Exposes module-level constants; importers should read them, never mutate them.
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

_DEFAULT_DB_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "database", "blackgem.db"
)
DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{_DEFAULT_DB_PATH}")

# ---------------------------------------------------------------------------
# Auth / sessions
# ---------------------------------------------------------------------------

SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
TOKEN_ALGORITHM: str = "HS256"
TOKEN_TTL_HOURS: int = int(os.getenv("TOKEN_TTL_HOURS", "12"))
TRIAL_DAYS: int = int(os.getenv("TRIAL_DAYS", "14"))

# ---------------------------------------------------------------------------
# Multi-tenancy
# ---------------------------------------------------------------------------

ROOT_DOMAIN: str = os.getenv("ROOT_DOMAIN", "blackgem.ai")
FUND_HEADER: str = "X-Fund-Id"

# ---------------------------------------------------------------------------
# Optional integrations
# ---------------------------------------------------------------------------

ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
AI_MODEL: str = os.getenv("AI_MODEL", "claude-sonnet-4-6-20250929")

SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY: str | None = os.getenv("SUPABASE_ANON_KEY")

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
