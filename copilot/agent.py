"""
copilot/agent.py
----------------

One copilot turn against the Anthropic Messages API.

The model may call the read-only fund tools; each ``tool_use`` block is
executed and answered with a ``tool_result`` block until the model stops
asking for tools or ``MAX_TOOL_STEPS`` requests have been made.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import anthropic

from copilot.config import MAX_OUTPUT_TOKENS, MAX_TOOL_STEPS, MODEL, get_anthropic_client
from copilot.cost_tracker import TokenUsage
from copilot.tools import TOOL_SCHEMAS, execute_tool
from core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

CHAT_ROLES = ("user", "assistant")


@dataclass
class CopilotReply:
    text: str
    usage: TokenUsage
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    steps: int = 0


def to_api_messages(messages: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Plain ``{role, content}`` pairs; system and empty messages are dropped."""
    return [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") in CHAT_ROLES and m.get("content")
    ]


def _block_to_dict(block: Any) -> Dict[str, Any]:
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return {"type": "text", "text": getattr(block, "text", "")}


def run_copilot_turn(
    *,
    system_prompt: str,
    messages: Sequence[Mapping[str, Any]],
    fund_id: str,
    currency: str,
    client: Optional[anthropic.Anthropic] = None,
    model: str = MODEL,
) -> CopilotReply:
    client = client or get_anthropic_client()
    conversation = to_api_messages(messages)
    input_tokens = output_tokens = 0
    tool_calls: List[Dict[str, Any]] = []
    text_parts: List[str] = []

    step = 0
    while step < MAX_TOOL_STEPS:
        step += 1
        try:
            response = client.messages.create(
                model=model,
                max_tokens=MAX_OUTPUT_TOKENS,
                system=system_prompt,
                tools=TOOL_SCHEMAS,
                messages=conversation,
            )
        except anthropic.APIError as e:
            logger.error(f"[Copilot] ❌ Anthropic request failed: {e}")
            raise ServiceUnavailableError("AI service is temporarily unavailable") from e

        input_tokens += response.usage.input_tokens or 0
        output_tokens += response.usage.output_tokens or 0
        blocks = [_block_to_dict(b) for b in response.content]
        text_parts = [b["text"] for b in blocks if b["type"] == "text" and b["text"]]

        tool_uses = [b for b in blocks if b["type"] == "tool_use"]
        if not tool_uses or response.stop_reason != "tool_use":
            break

        conversation.append({"role": "assistant", "content": blocks})
        results = []
        for block in tool_uses:
            output = execute_tool(fund_id, currency, block["name"], block["input"])
            tool_calls.append({"name": block["name"], "input": block["input"], "result": output})
            results.append(
                {"type": "tool_result", "tool_use_id": block["id"], "content": json.dumps(output, default=str)}
            )
        conversation.append({"role": "user", "content": results})

    logger.info(f"[Copilot] Turn finished in {step} step(s), {input_tokens}+{output_tokens} tokens")
    return CopilotReply(
        text="\n\n".join(text_parts),
        usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
        tool_calls=tool_calls,
        steps=step,
    )
