"""
Conversation history for the decision service.
Keeps tool calls and tool results paired the way tool-calling APIs require.
"""

import logging
from typing import Any

from ..core.config import settings
from ..llm.provider import LLMMessage


logger = logging.getLogger(__name__)

INTERRUPTED_PLACEHOLDER = "(Action was interrupted by page navigation.)"


def user_message(content: str) -> dict[str, Any]:
    return {"role": "user", "content": content}


def assistant_message(content: str, tool_calls: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return message


def tool_message(tool_call_id: str, content: str) -> dict[str, Any]:
    return {"role": "tool", "tool_call_id": tool_call_id, "content": content}


def trim_history(history: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Cut stored history back to the window once it grows past the threshold."""
    if len(history) > settings.history_trim_threshold:
        return history[-settings.history_window:]
    return history


def sanitize_history(
    history: list[dict[str, Any]],
    window: int | None = None,
) -> list[LLMMessage]:
    """
    Build a valid message list from the most recent history.

    - An assistant message keeps its tool calls only if every call has a
      result in the window; its results are placed directly after it.
    - Otherwise the tool calls are stripped and the message is kept as plain
      text (a placeholder when it had no text).
    - Tool results without a kept parent are dropped.

    Args:
        history: Stored conversation (neutral message dicts)
        window: Number of trailing messages to consider

    Returns:
        Messages safe to send
    """
    recent = history[-(window or settings.history_window):]

    results: dict[str, dict[str, Any]] = {}
    for msg in recent:
        if msg["role"] == "tool" and msg.get("tool_call_id"):
            results.setdefault(msg["tool_call_id"], msg)

    messages: list[LLMMessage] = []
    for msg in recent:
        role = msg["role"]
        if role == "tool":
            continue
        if role != "assistant" or not msg.get("tool_calls"):
            messages.append(LLMMessage(role=role, content=msg.get("content") or ""))
            continue

        call_ids = [call["id"] for call in msg["tool_calls"]]
        if all(call_id in results for call_id in call_ids):
            messages.append(LLMMessage(
                role="assistant",
                content=msg.get("content") or "",
                tool_calls=msg["tool_calls"],
            ))
            for call_id in call_ids:
                messages.append(LLMMessage(
                    role="tool",
                    tool_call_id=call_id,
                    content=results[call_id]["content"],
                ))
        else:
            missing = [c for c in call_ids if c not in results]
            logger.debug("Stripping tool calls without results: %s", missing)
            messages.append(LLMMessage(
                role="assistant",
                content=msg.get("content") or INTERRUPTED_PLACEHOLDER,
            ))

    return messages
