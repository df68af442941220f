"""
Anthropic LLM Client.
Messages API client; tool_use blocks are normalized to the neutral tool-call shape.
"""

import json
import logging
from typing import Any

from anthropic import AnthropicError, AsyncAnthropic

from .provider import LLMProvider, LLMMessage, LLMResponse
from ..core.config import settings
from ..core.errors import DecisionServiceError


logger = logging.getLogger(__name__)


class AnthropicClient(LLMProvider):
    """
    Anthropic Claude client implementing LLMProvider interface.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to config)
            model: Model name (defaults to config)
        """
        self.api_key = api_key or settings.anthropic_api_key
        self._model = model or settings.anthropic_model

        if not self.api_key:
            raise ValueError("Anthropic API key not configured")

        self.client = AsyncAnthropic(api_key=self.api_key)

    @property
    def model_name(self) -> str:
        return self._model

    async def invoke(
        self,
        messages: list[LLMMessage] | str,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | None = None,
    ) -> LLMResponse:
        """
        Request the next turn from the Messages API.

        Parallel tool use is disabled whenever tools are offered.

        Raises:
            DecisionServiceError: The API call failed
        """
        system, turns = self._format_messages(messages, system_prompt)

        request: dict[str, Any] = {
            "model": self._model,
            "messages": turns,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            request["system"] = system
        if tools:
            request["tools"] = self._format_tools(tools)
            request["tool_choice"] = {"type": tool_choice or "auto", "disable_parallel_tool_use": True}

        try:
            reply = await self.client.messages.create(**request)
        except AnthropicError as e:
            raise DecisionServiceError(f"Anthropic request failed: {e}") from e

        text_parts: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        for block in reply.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append({
                    "id": block.id,
                    "type": "function",
                    "function": {"name": block.name, "arguments": json.dumps(block.input)},
                })

        logger.debug("%s replied with %d blocks", reply.model, len(reply.content))
        prompt_tokens, completion_tokens = reply.usage.input_tokens, reply.usage.output_tokens
        return LLMResponse(
            content="".join(text_parts),
            model=reply.model,
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            tool_calls=tool_calls or None,
        )

    def _format_messages(
        self,
        messages: list[LLMMessage] | str,
        system_prompt: str | None,
    ) -> tuple[str | None, list[dict[str, Any]]]:
        """
        Translate neutral messages to Messages API turns.

        System messages are folded into the system prompt; tool results
        become tool_result blocks in a user turn, merged with an adjacent
        user turn since roles must alternate.

        Returns:
            (system prompt, turns)
        """
        if isinstance(messages, str):
            messages = [LLMMessage(role="user", content=messages)]

        turns: list[dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                system_prompt = f"{system_prompt or ''}\n{msg.content}".strip()
                continue

            role, blocks = self._blocks(msg)
            if turns and turns[-1]["role"] == role:
                turns[-1]["content"].extend(blocks)
            else:
                turns.append({"role": role, "content": blocks})

        return system_prompt, turns

    @staticmethod
    def _blocks(msg: LLMMessage) -> tuple[str, list[dict[str, Any]]]:
        if msg.role == "tool":
            return "user", [{"type": "tool_result", "tool_use_id": msg.tool_call_id, "content": msg.content}]

        blocks: list[dict[str, Any]] = [{"type": "text", "text": msg.content}] if msg.content else []
        if msg.role == "assistant" and msg.tool_calls:
            # Arguments were validated when the call was first parsed
            for call in msg.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call["id"],
                    "name": call["function"]["name"],
                    "input": json.loads(call["function"].get("arguments") or "{}"),
                })
        elif not blocks:
            blocks = [{"type": "text", "text": msg.content}]
        return msg.role, blocks

    def _format_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Operator tool schemas as Messages API tools (parameters become input_schema)."""
        return [
            {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "input_schema": tool.get("parameters") or {"type": "object", "properties": {}},
            }
            for tool in tools
        ]
