"""Tests for the provider-neutral message and tool translation."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from voice_operator.core.config import settings
from voice_operator.llm.anthropic_client import AnthropicClient
from voice_operator.llm.openai_client import OpenAIClient
from voice_operator.llm.provider import LLMMessage, get_llm_provider
from voice_operator.llm.tools import NAVIGATING_TOOLS, OPERATOR_TOOLS, TOOL_NAMES


CALL = {"id": "call_1", "type": "function", "function": {"name": "click", "arguments": '{"actionId": "act_1"}'}}

CONVERSATION = [
    LLMMessage(role="system", content="CURRENT PAGE MAP: {}"),
    LLMMessage(role="user", content="click next"),
    LLMMessage(role="assistant", content="", tool_calls=[CALL]),
    LLMMessage(role="tool", tool_call_id="call_1", content='{"success": true}'),
]


class TestToolSchema:
    def test_names(self):
        assert len(OPERATOR_TOOLS) == len(TOOL_NAMES) == 15
        assert "fill_form_with_profile" in TOOL_NAMES
        assert NAVIGATING_TOOLS == {"navigate_to", "go_back"}

    def test_every_tool_has_object_parameters(self):
        for tool in OPERATOR_TOOLS:
            assert tool["parameters"]["type"] == "object"


class TestOpenAIClient:
    def setup_method(self):
        self.client = OpenAIClient(api_key="test-key", model="gpt-test")

    def test_missing_key(self, monkeypatch):
        monkeypatch.setattr(settings, "openai_api_key", "")
        with pytest.raises(ValueError):
            OpenAIClient()

    def test_format_messages(self):
        messages = self.client._format_messages(CONVERSATION, "You operate a browser.")
        assert [m["role"] for m in messages] == ["system", "system", "user", "assistant", "tool"]
        assert messages[3]["content"] is None
        assert messages[3]["tool_calls"] == [CALL]
        assert messages[4] == {"role": "tool", "tool_call_id": "call_1", "content": '{"success": true}'}

    def test_format_tools(self):
        tools = self.client._format_tools(OPERATOR_TOOLS[:1])
        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["name"] == "click"

    async def test_invoke_parses_tool_calls(self):
        completion = SimpleNamespace(
            model="gpt-test",
            usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
            choices=[SimpleNamespace(message=SimpleNamespace(
                content=None,
                tool_calls=[SimpleNamespace(
                    id="call_9",
                    type="function",
                    function=SimpleNamespace(name="scroll", arguments='{"direction": "down"}'),
                )],
            ))],
        )
        self.client.client = SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(return_value=completion)))
        )

        response = await self.client.invoke("scroll down", tools=OPERATOR_TOOLS)

        kwargs = self.client.client.chat.completions.create.call_args.kwargs
        assert kwargs["parallel_tool_calls"] is False
        assert response.content == ""
        assert response.tool_calls[0]["function"]["name"] == "scroll"
        assert response.usage["total_tokens"] == 15


class TestAnthropicClient:
    def setup_method(self):
        self.client = AnthropicClient(api_key="test-key", model="claude-test")

    def test_format_messages(self):
        system, messages = self.client._format_messages(CONVERSATION, "You operate a browser.")
        assert system == "You operate a browser.\nCURRENT PAGE MAP: {}"
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[1]["content"] == [
            {"type": "tool_use", "id": "call_1", "name": "click", "input": {"actionId": "act_1"}},
        ]
        assert messages[2]["content"][0]["type"] == "tool_result"
        assert messages[2]["content"][0]["tool_use_id"] == "call_1"

    def test_adjacent_user_turns_merge(self):
        _, messages = self.client._format_messages(
            [
                LLMMessage(role="assistant", content="", tool_calls=[CALL]),
                LLMMessage(role="tool", tool_call_id="call_1", content="done"),
                LLMMessage(role="user", content="now scroll"),
            ],
            None,
        )
        assert len(messages) == 2
        assert [b["type"] for b in messages[1]["content"]] == ["tool_result", "text"]

    def test_format_tools(self):
        tools = self.client._format_tools(OPERATOR_TOOLS[:1])
        assert tools[0]["input_schema"]["required"] == ["actionId", "description"]

    async def test_invoke_normalizes_tool_use(self):
        message = SimpleNamespace(
            model="claude-test",
            usage=SimpleNamespace(input_tokens=7, output_tokens=3),
            content=[
                SimpleNamespace(type="text", text="Scrolling."),
                SimpleNamespace(type="tool_use", id="tu_1", name="scroll", input={"direction": "down"}),
            ],
        )
        self.client.client = SimpleNamespace(messages=SimpleNamespace(create=AsyncMock(return_value=message)))

        response = await self.client.invoke("scroll down", tools=OPERATOR_TOOLS)

        kwargs = self.client.client.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "auto", "disable_parallel_tool_use": True}
        assert response.content == "Scrolling."
        assert json.loads(response.tool_calls[0]["function"]["arguments"]) == {"direction": "down"}
        assert response.usage["total_tokens"] == 10


class TestProviderFactory:
    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_llm_provider("mystery")

    def test_anthropic(self, monkeypatch):
        monkeypatch.setattr(settings, "anthropic_api_key", "test-key")
        assert isinstance(get_llm_provider("anthropic"), AnthropicClient)
