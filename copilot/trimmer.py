"""
copilot/trimmer.py
------------------

Keeps a chat history inside the model's token budget.

Token counts are estimated at four characters per token. The first message
is always kept; when older turns are dropped an assistant marker message
takes their place so the model knows context was omitted.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Sequence

CHARS_PER_TOKEN = 4
MAX_RECENT_MESSAGES = 30
CONTEXT_OMITTED_MARKER = "[Earlier conversation context omitted]"

Message = Mapping[str, Any]


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


def estimate_message_tokens(messages: Sequence[Message]) -> int:
    return sum(estimate_tokens(m.get("content") or "") for m in messages)


def _marker(template: Message) -> Dict[str, Any]:
    return {**template, "role": "assistant", "content": CONTEXT_OMITTED_MARKER}


def trim_conversation(messages: Sequence[Message], token_budget: int) -> List[Dict[str, Any]]:
    """
    Trim ``messages`` to the 30 most recent plus the first one.

    Short histories within budget are returned unchanged. If the recent window
    still exceeds the budget, messages are kept newest-first until the budget
    (minus the first message) is spent.
    """
    if not messages:
        return []

    messages = [dict(m) for m in messages]
    if len(messages) <= MAX_RECENT_MESSAGES + 1 and estimate_message_tokens(messages) <= token_budget:
        return messages

    first = messages[0]
    recent = messages[-MAX_RECENT_MESSAGES:]

    trimmed: List[Dict[str, Any]] = [first]
    if len(messages) > MAX_RECENT_MESSAGES + 1:
        trimmed.append(_marker(recent[0]))
    trimmed.extend(recent)

    if estimate_message_tokens(trimmed) <= token_budget:
        return trimmed

    budget_for_recent = token_budget - estimate_tokens(first.get("content") or "")
    kept: List[Dict[str, Any]] = []
    used = 0
    for message in reversed(recent):
        tokens = estimate_tokens(message.get("content") or "")
        if used + tokens > budget_for_recent:
            break
        kept.insert(0, message)
        used += tokens

    return [first, _marker(kept[0] if kept else {}), *kept]
