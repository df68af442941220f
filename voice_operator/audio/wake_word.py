"""
Wake-Phrase Spotter.
A supervised, continuously restarted recognition stream that listens for the
wake phrase, or for a stop phrase while the main recording is active.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Literal

from ..core.config import settings
from ..core.errors import AudioCaptureError, DecisionServiceError
from ..core.guardrails import matches_any, normalize
from .vad import MicrophoneSource, VoiceActivityDetector, to_wav


logger = logging.getLogger(__name__)

# Expected in continuous mode; restart after the base delay
BENIGN_ERRORS = {"no-speech", "aborted"}
# The microphone is unavailable; give up
FATAL_ERRORS = {"not-allowed", "service-not-allowed"}

Callback = Callable[[], None]


@dataclass
class RecognitionEvent:
    """One event from a recognition stream."""
    kind: Literal["result", "error"]
    transcripts: list[str] = field(default_factory=list)
    error: str | None = None


class TranscriptStream(ABC):
    """A single recognition session; iteration ends when the session ends."""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[RecognitionEvent]:
        ...

    @abstractmethod
    async def stop(self) -> None:
        """End the session; iteration finishes soon after."""
        ...


class MicrophoneTranscriptStream(TranscriptStream):
    """
    Recognition over the local microphone: each VAD-delimited utterance is
    transcribed and reported as one result.
    """

    def __init__(
        self,
        transcribe: Callable[[bytes], Awaitable[str]],
        source: MicrophoneSource | None = None,
        max_utterance_ms: float = 4000,
    ):
        self.transcribe = transcribe
        self.source = source or MicrophoneSource()
        self.max_utterance_ms = max_utterance_ms
        self._stopped = False
        self._vad: VoiceActivityDetector | None = None

    async def __aiter__(self) -> AsyncIterator[RecognitionEvent]:
        while not self._stopped:
            self._vad = VoiceActivityDetector()
            try:
                samples = await self._vad.run(self.source, max_ms=self.max_utterance_ms)
            except AudioCaptureError as e:
                logger.error("Microphone unavailable: %s", e)
                yield RecognitionEvent(kind="error", error="not-allowed")
                return
            if self._stopped:
                return
            if not self._vad.has_detected_speech:
                yield RecognitionEvent(kind="error", error="no-speech")
                continue
            try:
                text = await self.transcribe(to_wav(samples, self.source.sample_rate))
            except DecisionServiceError:
                yield RecognitionEvent(kind="error", error="network")
                return
            if text:
                yield RecognitionEvent(kind="result", transcripts=[text])

    async def stop(self) -> None:
        self._stopped = True
        if self._vad is not None:
            self._vad.stop()


class WakeWordSpotter:
    """
    Restart-with-backoff supervisor around a recognition stream.

    Natural ends and benign errors restart after the base delay; other
    errors back off exponentially with jitter up to a restart limit;
    permission errors stop the spotter.
    """

    def __init__(
        self,
        stream_factory: Callable[[], TranscriptStream],
        on_wake: Callback,
        on_stop: Callback | None = None,
        wake_phrases: list[str] | None = None,
        stop_phrases: list[str] | None = None,
        restart_delay_ms: int | None = None,
        max_restarts: int | None = None,
        max_backoff_ms: int | None = None,
        jitter: float | None = None,
        rng: Callable[[], float] = random.random,
    ):
        """
        Initialize spotter.

        Args:
            stream_factory: Creates a fresh recognition session
            on_wake: Called when a wake phrase is heard
            on_stop: Called when a stop phrase is heard during recording
            wake_phrases: Wake phrase list (defaults to config)
            stop_phrases: Stop phrase list (defaults to config)
            restart_delay_ms: Base restart delay
            max_restarts: Consecutive failures before giving up
            max_backoff_ms: Backoff ceiling
            jitter: Fractional random spread applied to each delay
            rng: Source of uniform [0, 1) numbers
        """
        self.stream_factory = stream_factory
        self.on_wake = on_wake
        self.on_stop = on_stop
        self.wake_phrases = wake_phrases or settings.wake_phrases
        self.stop_phrases = stop_phrases or settings.stop_phrases
        self.restart_delay_ms = restart_delay_ms if restart_delay_ms is not None else settings.wake_restart_delay_ms
        self.max_restarts = max_restarts if max_restarts is not None else settings.wake_max_restarts
        self.max_backoff_ms = max_backoff_ms if max_backoff_ms is not None else settings.wake_max_backoff_ms
        self.jitter = jitter if jitter is not None else settings.wake_jitter
        self.rng = rng

        self.listening = False
        self.recording_active = False
        self.failures = 0
        self.restarts = 0
        self._stream: TranscriptStream | None = None
        self._task: asyncio.Task | None = None
        self._resumed = asyncio.Event()
        self._resumed.set()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self.listening = True
        self.recording_active = False
        self.failures = 0
        self._resumed.set()
        self._task = asyncio.create_task(self._supervise())
        logger.info("Listening for wake phrase")

    async def stop(self) -> None:
        self.listening = False
        if self._stream is not None:
            await self._stream.stop()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stopped listening for wake phrase")

    async def pause(self) -> None:
        """The main recording started."""
        self.recording_active = True
        self._resumed.clear()
        if self._stream is not None:
            await self._stream.stop()

    def resume(self) -> None:
        """The main recording stopped."""
        self.recording_active = False
        self._resumed.set()

    @property
    def active(self) -> bool:
        return self.listening and self._task is not None and not self._task.done()

    # =========================================================================
    # Matching
    # =========================================================================

    def check(self, transcript: str) -> Literal["wake", "stop"] | None:
        """Stop phrases while recording, wake phrases otherwise."""
        text = normalize(transcript)
        if self.recording_active:
            return "stop" if matches_any(text, self.stop_phrases) else None
        return "wake" if matches_any(text, self.wake_phrases) else None

    def _handle(self, event: RecognitionEvent) -> bool:
        for transcript in event.transcripts:
            match = self.check(transcript)
            if match == "stop":
                logger.info("Stop phrase detected: %r", transcript)
                if self.on_stop:
                    self.on_stop()
                return True
            if match == "wake":
                logger.info("Wake phrase detected: %r", transcript)
                self.on_wake()
                return True
        return False

    # =========================================================================
    # Supervision
    # =========================================================================

    def backoff_delay(self, failures: int) -> float:
        """Delay in ms before the next restart after `failures` consecutive failures."""
        if failures <= 0:
            base = self.restart_delay_ms
        else:
            base = min(self.restart_delay_ms * 2 ** (failures - 1), self.max_backoff_ms)
        spread = 1 + self.jitter * (2 * self.rng() - 1)
        return max(0.0, base * spread)

    async def _run_once(self) -> str:
        """Run one session; returns "end", "benign", "error" or "fatal"."""
        self._stream = self.stream_factory()
        try:
            async for event in self._stream:
                if event.kind == "result":
                    self._handle(event)
                    self.failures = 0
                elif event.error in FATAL_ERRORS:
                    logger.warning("Recognition unavailable: %s", event.error)
                    return "fatal"
                elif event.error in BENIGN_ERRORS:
                    return "benign"
                else:
                    logger.warning("Recognition error: %s", event.error)
                    return "error"
        finally:
            self._stream = None
        return "end"

    async def _supervise(self) -> None:
        while self.listening:
            await self._resumed.wait()
            if not self.listening:
                break
            outcome = await self._run_once()
            if outcome == "fatal":
                self.listening = False
                break
            if outcome == "error":
                self.failures += 1
                if self.failures > self.max_restarts:
                    logger.error("Wake phrase spotter gave up after %d failed restarts", self.failures - 1)
                    self.listening = False
                    break
            else:
                self.failures = 0
            delay = self.backoff_delay(self.failures)
            self.restarts += 1
            logger.debug("Restarting recognition in %.0fms (%s)", delay, outcome)
            await asyncio.sleep(delay / 1000)
