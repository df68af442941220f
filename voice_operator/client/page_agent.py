"""
Page Agent - page-side runtime.
Drives a Playwright tab for one orchestrator session: registers the tab,
pushes page maps, executes tool calls and handles speech input.
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Any

import httpx
import websockets
from playwright.async_api import Error as PlaywrightError
from websockets.exceptions import ConnectionClosed

from ..audio.vad import MicrophoneSource, VoiceActivityDetector, to_wav
from ..audio.wake_word import MicrophoneTranscriptStream, WakeWordSpotter
from ..browser.actions import ActionExecutor
from ..browser.manager import BrowserManager, error_summary
from ..browser.switch_scanning import SwitchScanner
from ..core.config import settings
from ..core.errors import AudioCaptureError, DecisionServiceError
from ..core.logging_setup import setup_logging
from ..core.models import ToolResult
from ..llm.tools import NAVIGATING_TOOLS


logger = logging.getLogger(__name__)

# Console commands mapped to switch-scanning keys
SCAN_KEYS = {
    ":next": (" ", False),
    ":prev": ("Tab", True),
    ":select": ("Enter", False),
}


class PageAgent:
    """
    Runtime for one browser tab.

    All document work (snapshot, tool execution, replay) runs under one lock
    so that tool calls never overlap.
    """

    def __init__(
        self,
        tab_id: str | None = None,
        browser: BrowserManager | None = None,
        executor: ActionExecutor | None = None,
        server_url: str | None = None,
        upload_url: str | None = None,
    ):
        """
        Initialize agent.

        Args:
            tab_id: Tab identifier (random if omitted)
            browser: Browser manager
            executor: Page-side tool executor
            server_url: WebSocket base URL
            upload_url: Audio upload endpoint
        """
        self.tab_id = tab_id or uuid.uuid4().hex[:8]
        self.browser = browser or BrowserManager()
        self.executor = executor or ActionExecutor()
        self.scanner = SwitchScanner(self.executor, speak=self.speak)
        self.server_url = (server_url or settings.server_url).rstrip("/")
        self.upload_url = upload_url or settings.audio_upload_url

        self.ws = None
        self.last_spoken: str | None = None
        self.status = "idle"
        self.spotter: WakeWordSpotter | None = None
        self._lock = asyncio.Lock()
        self._recording: asyncio.Task | None = None
        self.microphone_disabled = False

    # =========================================================================
    # Transport
    # =========================================================================

    async def send(self, type: str, data: dict[str, Any] | None = None) -> None:
        if self.ws is None:
            logger.warning("Not connected; dropping %s", type)
            return
        await self.ws.send(json.dumps({"type": type, "tabId": self.tab_id, "data": data or {}}))

    async def push_page_map(self) -> None:
        """Extract and send the current page map."""
        async with self._lock:
            document = await self.browser.snapshot()
            page_map = self.executor.extractor.extract(document)
        await self.send("page_map_update", {"pageMap": page_map.wire()})

    async def say(self, transcript: str) -> None:
        """Send a user transcript to the orchestrator."""
        transcript = transcript.strip()
        if transcript:
            await self.send("user_transcript", {"transcript": transcript})

    async def dispatch(self, raw: str | bytes) -> None:
        """Handle one raw frame; a failing command never ends the connection."""
        try:
            message = json.loads(raw)
        except ValueError:
            message = None
        if not isinstance(message, dict):
            logger.warning("Ignoring malformed frame: %.80r", raw)
            return
        try:
            await self.handle(message)
        except PlaywrightError as e:
            logger.error("Command %s failed on the live page: %s", message.get("type"), e)

    async def handle(self, message: dict[str, Any]) -> None:
        """
        Handle one outbound command from the orchestrator.

        Args:
            message: Parsed envelope
        """
        kind = message.get("type")
        data = message.get("data") or {}

        if kind == "speak":
            self.speak(data.get("text", ""), data.get("priority", "normal"))
        elif kind == "execute_tool":
            await self.run_tool(data.get("tool", ""), data.get("args") or {}, data.get("toolCallId"))
        elif kind == "highlight_action":
            await self.run_highlight(data.get("actionId"))
        elif kind == "status_update":
            self.status = data.get("status", self.status)
            step = data.get("currentStep")
            logger.info("Status: %s%s", self.status, f" ({step})" if step else "")
        elif kind == "ping":
            await self.send("pong")
        else:
            logger.debug("Ignoring message type %s", kind)

    # =========================================================================
    # Page work
    # =========================================================================

    async def run_tool(self, tool: str, args: dict[str, Any], call_id: str | None = None) -> None:
        """
        Execute a tool on the live page and report the result.

        The fresh page map is sent before the result so the next decision
        sees the page as the tool left it. A tool whose events fail on the
        live page is reported as failed.
        """
        try:
            async with self._lock:
                document = await self.browser.snapshot()
                result = await self.executor.execute_tool(document, tool, args)
                report = await self.browser.replay(document)
            if not report.ok:
                result = ToolResult(success=False, message=f"The page did not accept {tool}: {report.failures[0]}")
            logger.info("%s -> %s (%d events applied)", tool, result.message, report.applied)
        except PlaywrightError as e:
            logger.error("%s failed on the live page: %s", tool, e)
            result = ToolResult(success=False, message=f"The page did not respond to {tool}: {error_summary(e)}")

        if tool in NAVIGATING_TOOLS:
            # A new page; the previous registry entries no longer apply
            self.executor.extractor.registry.clear()
        try:
            await self.push_page_map()
        except PlaywrightError as e:
            logger.warning("No page map after %s: %s", tool, e)

        payload = result.wire()
        if call_id:
            payload["toolCallId"] = call_id
        await self.send("tool_result", payload)

    async def run_highlight(self, action_id: str | None) -> None:
        async with self._lock:
            document = await self.browser.snapshot()
            self.executor.highlight(document, action_id)
            await self.browser.replay(document)

    async def press(self, key: str, shift: bool = False) -> bool:
        """Feed a key to the switch scanner."""
        async with self._lock:
            document = await self.browser.snapshot()
            consumed = await self.scanner.handle_key(document, key, shift)
            await self.browser.replay(document)
        return consumed

    async def set_scanning(self, enabled: bool) -> None:
        async with self._lock:
            document = await self.browser.snapshot()
            self.scanner.set_enabled(document, enabled)
            await self.browser.replay(document)

    def speak(self, text: str, priority: str = "normal") -> None:
        """Render speech. Text-to-speech is left to the host; the agent logs it."""
        if text == "repeat_last":
            text = self.last_spoken or "There is nothing to repeat."
        elif text == "stop_speaking":
            logger.info("[speech stopped]")
            return
        else:
            self.last_spoken = text
        logger.info("[speak:%s] %s", priority, text)

    # =========================================================================
    # Audio
    # =========================================================================

    async def upload(self, audio: bytes) -> str:
        """
        Upload one utterance for transcription.

        Raises:
            DecisionServiceError: Upload or transcription failed
        """
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(
                    self.upload_url,
                    files={"audio": ("recording.wav", audio, "audio/wav")},
                    data={"tabId": self.tab_id},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise DecisionServiceError(f"Audio upload failed: {e}") from e
        return response.json().get("transcript", "")

    async def record_command(self) -> None:
        """Record one utterance until silence, transcribe it and send it."""
        if self.microphone_disabled:
            self.speak("Voice input is off for this session. Type your command instead.")
            return
        if self.spotter:
            await self.spotter.pause()
        try:
            detector = VoiceActivityDetector()
            source = MicrophoneSource()
            logger.info("Listening...")
            samples = await detector.run(source)
            if not detector.has_detected_speech:
                self.speak("I didn't hear anything.")
                return
            transcript = await self.upload(to_wav(samples, source.sample_rate))
            logger.info("Heard: %s", transcript)
            await self.say(transcript)
        except AudioCaptureError as e:
            logger.error("Microphone unavailable: %s", e)
            self.microphone_disabled = True
            self.speak("Microphone access is unavailable. Voice input is off for this session.", "high")
        except DecisionServiceError as e:
            logger.error("%s", e)
            self.speak("Sorry, I could not understand that.", "high")
        finally:
            if self.spotter and not self.microphone_disabled:
                self.spotter.resume()

    def _on_wake(self) -> None:
        if self.microphone_disabled:
            return
        if self._recording and not self._recording.done():
            return
        self._recording = asyncio.create_task(self.record_command())

    def _on_stop(self) -> None:
        self.speak("stop_speaking", "high")

    def start_wake_word(self) -> None:
        self.spotter = WakeWordSpotter(
            stream_factory=lambda: MicrophoneTranscriptStream(self.upload),
            on_wake=self._on_wake,
            on_stop=self._on_stop,
        )
        self.spotter.start()

    # =========================================================================
    # Main loops
    # =========================================================================

    async def connect_forever(self) -> None:
        """Hold the WebSocket open, reconnecting with exponential backoff."""
        url = f"{self.server_url}/{self.tab_id}"
        backoff = 1
        while True:
            try:
                async with websockets.connect(url) as ws:
                    self.ws = ws
                    backoff = 1
                    logger.info("Connected to %s", url)
                    await self.send("register_tab")
                    await self.push_page_map()
                    async for raw in ws:
                        await self.dispatch(raw)
            except asyncio.CancelledError:
                raise
            except (OSError, ConnectionClosed) as e:
                logger.error("Connection error: %s; reconnecting in %ds", e, backoff)
            finally:
                self.ws = None
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, 30)

    async def console(self) -> None:
        """
        Read commands from stdin.

        Plain lines are sent as transcripts; ":listen" records one spoken
        command; ":scan on|off", ":next", ":prev", ":select" drive switch
        scanning; ":quit" exits.
        """
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                return
            line = line.strip()
            if not line:
                continue
            if line == ":quit":
                return
            if line == ":listen":
                await self.record_command()
            elif line in (":scan on", ":scan off"):
                await self.set_scanning(line.endswith("on"))
            elif line in SCAN_KEYS:
                key, shift = SCAN_KEYS[line]
                await self.press(key, shift)
            else:
                await self.say(line)

    async def run(self, start_url: str, voice: bool = False) -> None:
        """
        Start the browser and serve the tab until the console exits.

        Args:
            start_url: First page to open
            voice: Listen for the wake phrase
        """
        await self.browser.start()
        await self.browser.navigate(start_url)
        connection = asyncio.create_task(self.connect_forever())
        if voice:
            self.start_wake_word()
        try:
            await self.console()
        finally:
            if self.spotter:
                await self.spotter.stop()
            connection.cancel()
            try:
                await connection
            except asyncio.CancelledError:
                pass
            await self.browser.stop()


def main() -> None:
    """Console entry point."""
    parser = argparse.ArgumentParser(description="Voice operator page agent")
    parser.add_argument("url", help="Page to open")
    parser.add_argument("--tab-id", default=None, help="Tab identifier (random by default)")
    parser.add_argument("--server", default=None, help="WebSocket base URL")
    parser.add_argument("--voice", action="store_true", help="Listen for the wake phrase")
    parser.add_argument("--headless", action="store_true", help="Run the browser headless")
    args = parser.parse_args()

    setup_logging(settings.log_level)
    agent = PageAgent(
        tab_id=args.tab_id,
        browser=BrowserManager(headless=True if args.headless else None),
        server_url=args.server,
    )
    try:
        asyncio.run(agent.run(args.url, voice=args.voice))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
