"""
Session Orchestrator.
Per-tab state machine that turns transcripts into spoken replies and tool calls.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

from pydantic import ValidationError

from .history import (
    assistant_message,
    sanitize_history,
    tool_message,
    trim_history,
    user_message,
)
from .prompts import OPERATOR_SYSTEM_PROMPT, build_page_context
from ..core.config import settings
from ..core.errors import DecisionServiceError, ProtocolError
from ..core.guardrails import (
    RiskPolicy,
    classify_reply,
    match_builtin_command,
    match_terminal_command,
)
from ..core.models import (
    Envelope,
    PageMap,
    PendingAction,
    ToolCall,
    ToolResult,
    UserProfile,
)
from ..core.state import TabState, TabStatus, create_initial_state
from ..llm.provider import LLMMessage, LLMProvider, LLMResponse
from ..llm.tools import NAVIGATING_TOOLS, OPERATOR_TOOLS


logger = logging.getLogger(__name__)

Sender = Callable[[Envelope], Awaitable[None]]

APOLOGY = "I encountered an error. Please try again."
CANCELLED = "Action cancelled. What would you like to do instead?"


def load_profile(path: str | Path | None = None) -> UserProfile | None:
    """
    Load the form-filling profile from JSON.

    Args:
        path: Profile file (defaults to settings.profile_path)

    Returns:
        Profile, or None when the file does not exist
    """
    path = Path(path or settings.profile_path)
    if not path.exists():
        logger.info("No user profile at %s", path)
        return None
    return UserProfile.model_validate(json.loads(path.read_text(encoding="utf-8")))


def parse_tool_call(raw: dict[str, Any]) -> ToolCall:
    """Convert a provider tool call ({id, function: {name, arguments}}) to a ToolCall."""
    function = raw.get("function", {})
    try:
        args = json.loads(function.get("arguments") or "{}")
    except json.JSONDecodeError as e:
        raise DecisionServiceError(f"Unparseable tool arguments for {function.get('name')}: {e}") from e
    return ToolCall(id=raw["id"], name=function["name"], args=args)


def _raw_tool_call(call: ToolCall) -> dict[str, Any]:
    return {
        "id": call.id,
        "type": "function",
        "function": {"name": call.name, "arguments": json.dumps(call.args)},
    }


class SessionOrchestrator:
    """
    Orchestrates one tab's conversation.

    Messages for a tab are handled one at a time; the owner (the WebSocket
    worker) guarantees this by feeding handle() from a single queue.
    """

    def __init__(
        self,
        tab_id: str,
        send: Sender,
        llm: LLMProvider | None = None,
        policy: RiskPolicy | None = None,
        profile: UserProfile | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            tab_id: Caller-supplied tab identifier
            send: Coroutine delivering outbound envelopes to the tab
            llm: Decision service (created from settings on first use if omitted)
            policy: Risk policy for click interception
            profile: Profile used by fill_form_with_profile
        """
        self.tab_id = tab_id
        self.send = send
        self._llm = llm
        self.policy = policy or RiskPolicy()
        self.state: TabState = create_initial_state(tab_id, profile)
        self.closed = False

    @property
    def llm(self) -> LLMProvider:
        if self._llm is None:
            from ..llm.provider import get_llm_provider
            self._llm = get_llm_provider()
        return self._llm

    def close(self) -> None:
        """Mark the session closed; anything still in flight is discarded."""
        self.closed = True

    # ==========================================================================
    # Inbound dispatch
    # ==========================================================================

    async def handle(self, envelope: Envelope) -> None:
        """
        Handle one inbound envelope.

        Args:
            envelope: Validated message from the tab

        Raises:
            ProtocolError: Unknown type or malformed payload
        """
        if self.closed:
            return

        if envelope.type == "register_tab":
            logger.info("Tab %s registered", self.tab_id)
            await self.set_status("idle")
        elif envelope.type == "page_map_update":
            await self.on_page_map(envelope.data)
        elif envelope.type == "user_transcript":
            transcript = envelope.data.get("transcript")
            if not isinstance(transcript, str):
                raise ProtocolError("user_transcript requires a transcript string")
            await self.on_transcript(transcript)
        elif envelope.type == "tool_result":
            await self.on_tool_result(envelope.data)
        else:
            raise ProtocolError(f"Unknown message type: {envelope.type}")

    async def on_page_map(self, data: dict[str, Any]) -> None:
        """Replace the latest page snapshot. No reply."""
        try:
            self.state.page_map = PageMap.model_validate(data.get("pageMap", data))
        except ValidationError as e:
            raise ProtocolError(f"Invalid page map: {e}") from e
        logger.debug(
            "Tab %s page map: %s (%d actions, %d fields)",
            self.tab_id, self.state.page_map.url,
            len(self.state.page_map.actions), len(self.state.page_map.fields),
        )

    async def on_transcript(self, transcript: str) -> None:
        """
        Resolve one spoken turn.

        Order: terminal commands, pending confirmation, built-in commands,
        then the decision service.
        """
        logger.info("Tab %s heard: %s", self.tab_id, transcript)
        await self.set_status("thinking")

        terminal = match_terminal_command(transcript)
        if terminal:
            await self._terminal_command(terminal)
            return

        if self.state.pending:
            reply = classify_reply(transcript)
            if reply == "confirm":
                await self._confirm_pending()
                return
            if reply == "cancel":
                await self._cancel_pending()
                await self.speak(CANCELLED)
                await self.set_status("idle")
                return
            # A new request replaces the unanswered confirmation
            await self._cancel_pending()

        builtin = match_builtin_command(transcript)
        if builtin:
            await self._builtin_command(builtin, transcript)
            return

        await self._decide_and_act(transcript)

    async def on_tool_result(self, data: dict[str, Any]) -> None:
        """Close the loop on a previously issued tool call."""
        try:
            result = ToolResult.model_validate(data.get("result", data))
        except ValidationError as e:
            raise ProtocolError(f"Invalid tool result: {e}") from e

        call_id = data.get("toolCallId") or self.state.last_tool_call_id

        if call_id in self.state.batch_call_ids:
            self.state.batch_call_ids.discard(call_id)
            if not result.success:
                logger.warning("Profile fill step failed: %s", result.message)
            return
        if self.state.batch_mode:
            return

        if not call_id:
            logger.warning("Tab %s sent a tool result with no outstanding call", self.tab_id)
            return

        self._record(tool_message(call_id, json.dumps(result.wire())))
        if call_id != self.state.last_tool_call_id:
            # Superseded by a newer call; only the outstanding call drives the next turn
            logger.info(
                "Tab %s: late result for %s (outstanding: %s)",
                self.tab_id, call_id, self.state.last_tool_call_id,
            )
            return
        self.state.last_tool_call_id = None

        last_tool = self.state.last_tool
        self.state.last_tool = None
        if last_tool in NAVIGATING_TOOLS:
            # The tab reloads and reconnects
            await self.set_status("idle")
            return

        if not result.success:
            await self.speak(result.message)
            await self.set_status("idle")
            return

        await self.set_status("thinking")
        await self._decide_and_act(None)

    # ==========================================================================
    # Outbound commands
    # ==========================================================================

    async def _emit(self, type: str, data: dict[str, Any]) -> None:
        if self.closed:
            return
        logger.debug("Tab %s <- %s", self.tab_id, type)
        await self.send(Envelope(type=type, tab_id=self.tab_id, data=data))

    async def speak(self, text: str, priority: str = "normal") -> None:
        if text not in ("repeat_last", "stop_speaking"):
            self.state.last_spoken = text
        await self._emit("speak", {"text": text, "priority": priority})

    async def set_status(self, status: TabStatus, **extra: Any) -> None:
        self.state.status = status
        await self._emit("status_update", {"status": status, **extra})

    async def highlight(self, action_id: str | None) -> None:
        await self._emit("highlight_action", {"actionId": action_id})

    async def execute(self, call: ToolCall) -> None:
        """Send a tool call to the page and remember it as outstanding."""
        self.state.last_tool = call.name
        self.state.last_tool_call_id = call.id
        await self._emit("execute_tool", {"tool": call.name, "args": call.args, "toolCallId": call.id})

    # ==========================================================================
    # Local commands
    # ==========================================================================

    async def _terminal_command(self, command: str) -> None:
        if command == "repeat":
            await self.speak("repeat_last", priority="high")
        elif command == "stop":
            await self.speak("stop_speaking", priority="high")
        elif command == "slower":
            await self.speak("I will speak more slowly now.", priority="high")
        await self.set_status("idle")

    async def _builtin_command(self, command: str, transcript: str) -> None:
        page_map = self.state.page_map

        if command == "where_am_i":
            if page_map:
                host = urlparse(page_map.url).hostname or page_map.url
                text = f"You are on {page_map.title}. The URL is {host}."
            else:
                text = "I cannot determine the current page."
            self._record(user_message(transcript), assistant_message(text))
            await self.speak(text)
            await self.set_status("idle")

        elif command == "what_can_i_do":
            if page_map:
                top = ", ".join(a.label for a in page_map.actions[:5])
                text = (
                    f"There are {len(page_map.actions)} interactive elements and "
                    f"{len(page_map.fields)} form fields. Top actions include: {top}. "
                    "What would you like to do?"
                )
            else:
                text = "No page information available."
            self._record(user_message(transcript), assistant_message(text))
            await self.speak(text)
            await self.set_status("idle")

        elif command == "go_back":
            text = "Going back to the previous page."
            call = ToolCall(id=f"special_{int(time.time() * 1000)}", name="go_back")
            self._record(user_message(transcript), assistant_message(text, [_raw_tool_call(call)]))
            await self.speak(text)
            await self.set_status("executing", currentStep="go_back")
            await self.execute(call)

    # ==========================================================================
    # Confirmation gate
    # ==========================================================================

    async def _request_confirmation(self, call: ToolCall, description: str, prompt: str) -> None:
        self.state.pending = PendingAction(tool_call=call, description=description)
        await self.speak(prompt)
        await self.highlight(call.args.get("actionId"))
        await self.set_status("awaiting_confirmation", currentStep=description, message=prompt)

    async def _confirm_pending(self) -> None:
        pending = self.state.pending
        self.state.pending = None
        logger.info("Tab %s confirmed: %s", self.tab_id, pending.description)
        await self.speak(f"Confirmed. {pending.description}.")
        await self.set_status("executing", currentStep=pending.description)
        await self.execute(pending.tool_call)

    async def _cancel_pending(self) -> None:
        pending = self.state.pending
        self.state.pending = None
        await self.highlight(None)
        # Answer the held call so the history stays paired
        self._record(tool_message(
            pending.tool_call.id,
            json.dumps({"success": False, "message": "Cancelled by user"}),
        ))
        logger.info("Tab %s cancelled: %s", self.tab_id, pending.description)

    # ==========================================================================
    # Decision service
    # ==========================================================================

    async def _decide_and_act(self, transcript: str | None) -> None:
        """Call the decision service and act on its reply. Failures end the turn."""
        try:
            response = await self._decide(transcript)
            if self.closed:
                logger.debug("Tab %s closed during decision; discarding reply", self.tab_id)
                return
            await self._handle_decision(response, transcript)
        except DecisionServiceError as e:
            logger.error("Decision failed for tab %s: %s", self.tab_id, e)
            await self.speak(APOLOGY, priority="high")
            await self.set_status("error", message=str(e))
            await self.set_status("idle")

    async def _decide(self, transcript: str | None) -> LLMResponse:
        messages = [LLMMessage(role="system", content=build_page_context(self.state.page_map, self.state.profile))]
        messages.extend(sanitize_history(self.state.history))
        if transcript is not None:
            messages.append(LLMMessage(role="user", content=transcript))

        try:
            return await self.llm.invoke(
                messages=messages,
                system_prompt=OPERATOR_SYSTEM_PROMPT,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
                tools=OPERATOR_TOOLS,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Decision service call failed")
            raise DecisionServiceError(str(e)) from e

    async def _handle_decision(self, response: LLMResponse, transcript: str | None) -> None:
        """
        Act on one decision-service reply.

        Risk checks apply to every reply, including follow-ups after a
        tool result.
        """
        text = response.content.strip()

        if not response.tool_calls:
            self._record(
                *([user_message(transcript)] if transcript is not None else []),
                assistant_message(text),
            )
            if text:
                await self.speak(text)
            await self.set_status("idle")
            return

        raw = response.tool_calls[0]
        call = parse_tool_call(raw)
        self._record(
            *([user_message(transcript)] if transcript is not None else []),
            assistant_message(text, [raw]),
        )
        logger.info("Tab %s tool call: %s %s", self.tab_id, call.name, call.args)

        if call.name == "click":
            action = self._find_action(call.args.get("actionId"))
            if action and self.policy.needs_confirmation(action.label, action.is_risky):
                prompt = (
                    f'I need to click "{action.label}". This looks like an important action. '
                    'Please say "confirm" to proceed or "cancel" to stop.'
                )
                await self._request_confirmation(call, f'Click "{action.label}"', prompt)
                return

        if call.name == "request_confirmation":
            description = call.args.get("actionDescription") or "this action"
            held = ToolCall(
                id=call.id,
                name="click",
                args={"actionId": call.args.get("actionId"), "description": description},
            )
            prompt = text or f'{description}. Please say "confirm" to proceed or "cancel" to stop.'
            await self._request_confirmation(held, description, prompt)
            return

        if call.name == "fill_form_with_profile":
            await self._fill_with_profile(call)
            return

        if text:
            await self.speak(text)
        await self.set_status("executing", currentStep=call.name)
        if call.name == "click":
            await self.highlight(call.args.get("actionId"))
        await self.execute(call)

    def _find_action(self, action_id: str | None):
        if not self.state.page_map or not action_id:
            return None
        for action in self.state.page_map.actions:
            if action.id == action_id:
                return action
        return None

    # ==========================================================================
    # Profile fill batch
    # ==========================================================================

    async def _fill_with_profile(self, call: ToolCall) -> None:
        """Type each mapped profile value as its own tool call, with a delay between fields."""
        profile = self.state.profile or UserProfile()
        mappings = call.args.get("fieldsToFill") or []

        self.state.batch_mode = True
        filled = 0
        try:
            await self.set_status("executing", currentStep="fill_form_with_profile")
            for index, mapping in enumerate(mappings):
                value = profile.value_for(mapping.get("profileKey", ""))
                if not value:
                    continue
                step = ToolCall(
                    id=f"{call.id}_{index}",
                    name="type_text",
                    args={"fieldId": mapping.get("fieldId"), "text": value, "clearFirst": True},
                )
                self.state.batch_call_ids.add(step.id)
                await self._emit("execute_tool", {"tool": step.name, "args": step.args, "toolCallId": step.id})
                filled += 1
                await asyncio.sleep(settings.profile_fill_delay_ms / 1000)
        finally:
            self.state.batch_mode = False

        message = f"Filled {filled} form fields with your profile data."
        self._record(tool_message(call.id, json.dumps({"success": True, "message": message})))
        await self.speak(message)
        await self.set_status("idle")

    # ==========================================================================
    # History
    # ==========================================================================

    def _record(self, *messages: dict[str, Any]) -> None:
        self.state.history.extend(messages)
        self.state.history = trim_history(self.state.history)

    def snapshot(self) -> dict[str, Any]:
        """Summary of the session for the REST API."""
        page_map = self.state.page_map
        return {
            "tabId": self.tab_id,
            "status": self.state.status,
            "url": page_map.url if page_map else None,
            "title": page_map.title if page_map else None,
            "historyLength": len(self.state.history),
            "pending": self.state.pending.description if self.state.pending else None,
        }
