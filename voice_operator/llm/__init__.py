"""LLM module - Unified interface for OpenAI and Anthropic providers."""

from .provider import LLMProvider, LLMMessage, LLMResponse, get_llm_provider
from .openai_client import OpenAIClient
from .anthropic_client import AnthropicClient
from .tools import OPERATOR_TOOLS

__all__ = [
    "LLMProvider",
    "LLMMessage",
    "LLMResponse",
    "get_llm_provider",
    "OpenAIClient",
    "AnthropicClient",
    "OPERATOR_TOOLS",
]
