"""
copilot/config.py
-----------------
AI copilot limits and the shared Anthropic client.

The copilot is enabled only when ``ANTHROPIC_API_KEY`` is set.
"""

from __future__ import annotations

import os
from typing import Optional

import anthropic

from core.config import AI_MODEL, ANTHROPIC_API_KEY

MODEL: str = AI_MODEL
RATE_LIMIT_PER_HOUR: int = int(os.getenv("AI_RATE_LIMIT_PER_HOUR") or 30)
RATE_LIMIT_PER_DAY: int = int(os.getenv("AI_RATE_LIMIT_PER_DAY") or 200)
MONTHLY_BUDGET_USD: float = float(os.getenv("AI_MONTHLY_BUDGET_USD") or 50)
TOKEN_BUDGET: int = 50_000
MAX_OUTPUT_TOKENS: int = 4096
MAX_TOOL_STEPS: int = 5

_client: Optional[anthropic.Anthropic] = None


def is_ai_enabled() -> bool:
    return bool(os.getenv("ANTHROPIC_API_KEY") or ANTHROPIC_API_KEY)


def get_anthropic_client() -> anthropic.Anthropic:
    """Lazily build one client per process."""
    global _client
    if _client is None:
        _client = anthropic.Anthropic(api_key=os.getenv("ANTHROPIC_API_KEY") or ANTHROPIC_API_KEY)
    return _client
