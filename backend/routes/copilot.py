"""
backend/routes/copilot.py
-------------------------

AI copilot chat, conversation management and usage insights.

Chat request flow
-----------------
1. Authenticate (401) and check the copilot is configured (503).
2. Resolve the active fund (400) and verify access (403).
3. Verify a given conversation belongs to the caller and fund (404).
4. Rate limit per user (429 with ``Retry-After``).
5. Create the conversation on first message, trim history to the token
   budget, build fund context and the system prompt.
6. Run the tool-using model turn, then track cost and persist messages.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel

from analytics.ai_usage import compute_ai_usage_insights
from backend.dependencies import NO_ACTIVE_FUND, get_active_fund_id, require_subscription
from copilot.agent import run_copilot_turn
from copilot.config import RATE_LIMIT_PER_HOUR, TOKEN_BUDGET, get_anthropic_client, is_ai_enabled
from copilot.context import assemble_fund_context, assemble_user_context
from copilot.conversations import (
    archive_conversation,
    count_active_conversations,
    create_conversation,
    get_conversation_messages,
    list_conversations,
    persist_messages,
    rename_conversation,
    require_conversation,
)
from copilot.cost_tracker import calculate_cost, track_ai_cost
from copilot.system_prompt import build_system_prompt
from copilot.trimmer import trim_conversation
from core.audit import query_audit_logs
from core.errors import RateLimitError, ServiceError, ServiceUnavailableError
from core.fund_access import get_active_user, require_fund_access
from core.rate_limit import rate_limit
from database.db_setup import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["copilot"])

RATE_WINDOW_SECONDS = 3600
USAGE_ROW_LIMIT = 500


class ChatMessage(BaseModel):
    role: str
    content: str
    id: Optional[str] = None


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = []
    conversation_id: Optional[str] = None


class RenameRequest(BaseModel):
    title: str


# --------------------------------------------------------------------------- #
# Chat
# --------------------------------------------------------------------------- #

@router.post("/chat")
async def chat(
    request: ChatRequest,
    user_id: str = Depends(require_subscription),
    x_fund_id: Optional[str] = Header(default=None),
):
    if not is_ai_enabled():
        raise ServiceUnavailableError("AI copilot is not configured")
    if not x_fund_id:
        raise ServiceError(NO_ACTIVE_FUND)

    with SessionLocal() as session:
        fund = require_fund_access(session, user_id, x_fund_id)
        user_ctx = assemble_user_context(get_active_user(session, user_id))
        currency = fund.currency

    if request.conversation_id:
        require_conversation(user_id, fund.id, request.conversation_id)

    rl = rate_limit(f"ai:{user_id}", RATE_LIMIT_PER_HOUR, RATE_WINDOW_SECONDS)
    if not rl.success:
        raise RateLimitError("Rate limit exceeded. Please try again later.", retry_after=rl.retry_after())

    messages = [m.model_dump(exclude_none=True) for m in request.messages]
    if not messages:
        raise ServiceError("Messages are required")

    conversation_id = request.conversation_id
    if not conversation_id:
        first_user = next((m["content"] for m in messages if m["role"] == "user"), "New conversation")
        conversation_id = create_conversation(user_id, fund.id, first_user[:60])["id"]

    conversation_count = count_active_conversations(user_id, fund.id)

    trimmed = trim_conversation(messages, TOKEN_BUDGET)
    system_prompt = build_system_prompt(
        assemble_fund_context(fund.id),
        user_ctx,
        currency,
        is_first_time=conversation_count <= 1,
    )

    reply = run_copilot_turn(
        system_prompt=system_prompt,
        messages=trimmed,
        fund_id=fund.id,
        currency=currency,
        client=get_anthropic_client(),
    )
    cost = track_ai_cost(user_id, fund.id, reply.usage)

    assistant_message = {"role": "assistant", "content": reply.text, "tool_calls": reply.tool_calls or None}
    persist_messages(conversation_id, messages + [assistant_message])

    return {
        "conversation_id": conversation_id,
        "message": {"role": "assistant", "content": reply.text},
        "tool_calls": [{"name": c["name"], "input": c["input"]} for c in reply.tool_calls],
        "usage": {
            "input_tokens": reply.usage.input_tokens,
            "output_tokens": reply.usage.output_tokens,
            "total_tokens": reply.usage.total_tokens,
            "cost_usd": cost,
        },
    }


# --------------------------------------------------------------------------- #
# Conversations
# --------------------------------------------------------------------------- #

@router.get("/conversations")
async def conversations(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return list_conversations(user_id, fund_id)


@router.get("/conversations/{conversation_id}")
async def conversation_messages(conversation_id: str, user_id: str = Depends(require_subscription)):
    return get_conversation_messages(user_id, conversation_id)


@router.patch("/conversations/{conversation_id}")
async def rename(conversation_id: str, request: RenameRequest, user_id: str = Depends(require_subscription)):
    return rename_conversation(user_id, conversation_id, request.title)


@router.delete("/conversations/{conversation_id}")
async def archive(conversation_id: str, user_id: str = Depends(require_subscription)):
    return archive_conversation(user_id, conversation_id)


# --------------------------------------------------------------------------- #
# Usage
# --------------------------------------------------------------------------- #

@router.get("/usage")
async def usage(user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    """Token and cost statistics over the fund's recorded AI interactions."""
    with SessionLocal() as session:
        require_fund_access(session, user_id, fund_id)
        rows = query_audit_logs(
            session, entity_type="AIInteraction", entity_id=fund_id, limit=USAGE_ROW_LIMIT
        )["results"]
    insights = compute_ai_usage_insights(rows)
    insights["pricing_per_million"] = {
        "input_usd": calculate_cost(1_000_000, 0)["input_cost_usd"],
        "output_usd": calculate_cost(0, 1_000_000)["output_cost_usd"],
    }
    return insights
