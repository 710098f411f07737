"""
copilot/cost_tracker.py
-----------------------
Token cost accounting for copilot turns.

Each turn is recorded as an ``AIInteraction`` audit entry (entity id = fund)
and mirrored to the Supabase ``ai_usage_logs`` table when configured.
Tracking is best-effort and never fails the chat response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from copilot.config import MODEL
from core.audit import CREATE, log_audit
from database.db_setup import SessionLocal
from supabase_client.helpers import mirror_record

logger = logging.getLogger(__name__)

PRICING_PER_MILLION = {"input": 3.0, "output": 15.0}


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def calculate_cost(input_tokens: int, output_tokens: int) -> Dict[str, float]:
    """USD cost at Sonnet pricing ($3 / 1M input, $15 / 1M output)."""
    input_cost = input_tokens / 1_000_000 * PRICING_PER_MILLION["input"]
    output_cost = output_tokens / 1_000_000 * PRICING_PER_MILLION["output"]
    return {
        "input_cost_usd": input_cost,
        "output_cost_usd": output_cost,
        "total_cost_usd": round(input_cost + output_cost, 4),
    }


def track_ai_cost(user_id: str, fund_id: str, usage: TokenUsage, model: Optional[str] = None) -> float:
    """Record one interaction; returns the computed cost in USD."""
    cost = calculate_cost(usage.input_tokens, usage.output_tokens)["total_cost_usd"]
    model = model or MODEL
    changes = {
        "input_tokens": {"old": None, "new": usage.input_tokens},
        "output_tokens": {"old": None, "new": usage.output_tokens},
        "total_tokens": {"old": None, "new": usage.total_tokens},
        "cost_usd": {"old": None, "new": cost},
        "model": {"old": None, "new": model},
    }
    try:
        with SessionLocal() as session:
            log_audit(
                session,
                user_id=user_id,
                action=CREATE,
                entity_type="AIInteraction",
                entity_id=fund_id,
                changes=changes,
            )
    except SQLAlchemyError as e:
        logger.warning(f"[Copilot] ⚠️ Failed to track AI cost: {e}")

    mirror_record(
        "ai_usage_logs",
        {
            "user_id": user_id,
            "fund_id": fund_id,
            "model": model,
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "cost_usd": cost,
        },
    )
    return cost
