"""
Decision Service Interface.
The orchestrator talks to OpenAI or Anthropic through one neutral message
and tool-call format.
"""

from abc import ABC, abstractmethod
from typing import Any, Literal
from pydantic import BaseModel

from ..core.config import settings


class LLMMessage(BaseModel):
    """
    One neutral conversation message.

    Assistant messages may carry tool calls in the OpenAI shape
    ({"id", "type": "function", "function": {"name", "arguments"}});
    a "tool" message answers one of them by tool_call_id.
    """
    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    name: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None


class LLMResponse(BaseModel):
    """One decision: spoken text and at most one tool call."""
    content: str
    model: str
    usage: dict[str, int] | None = None
    tool_calls: list[dict[str, Any]] | None = None


class LLMProvider(ABC):
    """Decision service backend."""

    @abstractmethod
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
        Ask for the next turn of the conversation.

        Implementations request at most one tool call per turn and return
        tool calls normalized to the OpenAI shape.

        Args:
            messages: Conversation, or a bare user utterance
            system_prompt: Operator instructions
            temperature: Sampling temperature
            max_tokens: Maximum tokens in the reply
            tools: Operator tool schemas ({name, description, parameters})
            tool_choice: Provider tool-choice mode

        Returns:
            LLM response
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass


def get_llm_provider(provider: str | None = None) -> LLMProvider:
    """
    Create the configured decision service.

    Args:
        provider: "openai" or "anthropic" (defaults to settings.llm_provider)

    Raises:
        ValueError: Unknown provider or missing API key
    """
    provider = provider or settings.llm_provider

    if provider == "openai":
        from .openai_client import OpenAIClient
        return OpenAIClient()
    elif provider == "anthropic":
        from .anthropic_client import AnthropicClient
        return AnthropicClient()
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
