"""
OpenAI LLM Client.
Chat-completions client for the operator's one-tool-per-turn decisions.
"""

import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from .provider import LLMProvider, LLMMessage, LLMResponse
from ..core.config import settings
from ..core.errors import DecisionServiceError


logger = logging.getLogger(__name__)


class OpenAIClient(LLMProvider):
    """
    OpenAI GPT client implementing LLMProvider interface.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (defaults to config)
            model: Model name (defaults to config)
        """
        self.api_key = api_key or settings.openai_api_key
        self._model = model or settings.openai_model

        if not self.api_key:
            raise ValueError("OpenAI API key not configured")

        self.client = AsyncOpenAI(api_key=self.api_key)

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
        Request the next turn from chat completions.

        Parallel tool calls are disabled whenever tools are offered.

        Raises:
            DecisionServiceError: The API call failed
        """
        request: dict[str, Any] = {
            "model": self._model,
            "messages": self._format_messages(messages, system_prompt),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            request.update(
                tools=self._format_tools(tools),
                parallel_tool_calls=False,
            )
            if tool_choice:
                request["tool_choice"] = tool_choice

        try:
            completion = await self.client.chat.completions.create(**request)
        except OpenAIError as e:
            raise DecisionServiceError(f"OpenAI request failed: {e}") from e

        message = completion.choices[0].message
        tool_calls = self._parse_tool_calls(message.tool_calls)
        logger.debug(
            "%s replied with %d chars, %d tool calls",
            completion.model, len(message.content or ""), len(tool_calls or []),
        )
        return LLMResponse(
            content=message.content or "",
            model=completion.model,
            usage=self._usage(completion.usage),
            tool_calls=tool_calls,
        )

    @staticmethod
    def _parse_tool_calls(raw_calls: list[Any] | None) -> list[dict[str, Any]] | None:
        if not raw_calls:
            return None
        return [
            {
                "id": call.id,
                "type": call.type,
                "function": {"name": call.function.name, "arguments": call.function.arguments},
            }
            for call in raw_calls
        ]

    @staticmethod
    def _usage(usage: Any) -> dict[str, int]:
        if usage is None:
            return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        return {
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        }

    def _format_messages(
        self,
        messages: list[LLMMessage] | str,
        system_prompt: str | None,
    ) -> list[dict[str, Any]]:
        """
        Translate neutral messages to chat-completions messages.

        System messages stay in place (the page context travels as one);
        assistant tool calls and tool results pass through by id.
        """
        if isinstance(messages, str):
            messages = [LLMMessage(role="user", content=messages)]

        formatted: list[dict[str, Any]] = []
        if system_prompt:
            formatted.append({"role": "system", "content": system_prompt})

        for msg in messages:
            if msg.role == "tool":
                formatted.append({"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content})
            elif msg.role == "assistant" and msg.tool_calls:
                # Content must be null rather than empty next to tool calls
                formatted.append({"role": "assistant", "content": msg.content or None, "tool_calls": msg.tool_calls})
            else:
                entry: dict[str, Any] = {"role": msg.role, "content": msg.content}
                if msg.name:
                    entry["name"] = msg.name
                formatted.append(entry)
        return formatted

    def _format_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Wrap operator tool schemas as chat-completions function tools."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("parameters") or {"type": "object", "properties": {}},
                },
            }
            for tool in tools
        ]
