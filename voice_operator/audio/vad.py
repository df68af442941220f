"""
Voice Activity Detection.
RMS energy over fixed-size frames decides when an utterance has ended.
"""

import asyncio
import io
import logging
import time
from dataclasses import dataclass
from typing import Callable

import numpy as np
import scipy.io.wavfile as wav

from ..core.config import settings
from ..core.errors import AudioCaptureError


logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.monotonic() * 1000


def rms(samples: np.ndarray) -> float:
    """Root mean square of float samples in [-1, 1]."""
    if samples.size == 0:
        return 0.0
    data = samples.astype(np.float64)
    return float(np.sqrt(np.mean(data * data)))


def to_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode float samples as 16-bit mono WAV."""
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16)
    buffer = io.BytesIO()
    wav.write(buffer, sample_rate, pcm)
    return buffer.getvalue()


class MicrophoneSource:
    """
    Default input device delivering fixed-size float32 frames.

    The PortAudio callback runs on its own thread; frames are handed to the
    event loop through a queue.
    """

    def __init__(self, sample_rate: int | None = None, block_size: int | None = None):
        self.sample_rate = sample_rate or settings.vad_sample_rate
        self.block_size = block_size or settings.vad_buffer_size
        self._stream = None
        self._queue: asyncio.Queue[np.ndarray] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None

    def open(self) -> None:
        """
        Open the input stream.

        Raises:
            AudioCaptureError: No usable microphone or permission denied
        """
        self._loop = asyncio.get_running_loop()
        try:
            # Loading the PortAudio binding fails on hosts without the library
            import sounddevice as sd
        except OSError as e:
            raise AudioCaptureError(f"PortAudio is unavailable: {e}") from e
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                channels=1,
                dtype="float32",
                callback=self._callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            raise AudioCaptureError(f"Could not open microphone: {e}") from e
        logger.debug("Microphone open at %d Hz", self.sample_rate)

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Input status: %s", status)
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, indata[:, 0].copy())

    async def read(self) -> np.ndarray:
        if self._stream is None:
            raise AudioCaptureError("Microphone is not open")
        return await self._queue.get()

    def close(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        self._queue = asyncio.Queue()


@dataclass
class VADState:
    """Per-recording detector state."""
    recording_start: float = 0.0
    speech_started: bool = False
    silence_start: float | None = None
    stopped: bool = False


class VoiceActivityDetector:
    """
    Silence detector for one recording.

    process() is a pure step over one frame; run() drives it from a
    microphone source and tears the source down when it finishes.
    """

    def __init__(
        self,
        threshold: float | None = None,
        silence_ms: int | None = None,
        min_recording_ms: int | None = None,
        on_silence: Callable[[], None] | None = None,
        on_level: Callable[[float], None] | None = None,
    ):
        """
        Initialize detector.

        Args:
            threshold: RMS above which a frame counts as speech
            silence_ms: Silence after speech that ends the utterance
            min_recording_ms: Frames before this are ignored
            on_silence: One-shot callback when the utterance ends
            on_level: Receives the normalized 0-1 level of every frame
        """
        self.threshold = threshold if threshold is not None else settings.vad_threshold
        self.silence_ms = silence_ms if silence_ms is not None else settings.vad_silence_ms
        self.min_recording_ms = (
            min_recording_ms if min_recording_ms is not None else settings.vad_min_recording_ms
        )
        self.on_silence = on_silence
        self.on_level = on_level
        self.state = VADState(stopped=True)

    def start(self, now: float | None = None) -> None:
        self.state = VADState(recording_start=now if now is not None else now_ms())

    def stop(self) -> None:
        self.state.stopped = True
        self.state.silence_start = None

    @property
    def has_detected_speech(self) -> bool:
        return self.state.speech_started

    def process(self, samples: np.ndarray, now: float) -> bool:
        """
        Feed one frame.

        Args:
            samples: Time-domain frame
            now: Timestamp in milliseconds

        Returns:
            True when this frame ended the utterance
        """
        state = self.state
        if state.stopped:
            return False

        energy = rms(samples)
        if self.on_level:
            self.on_level(min(1.0, energy * 4))

        if now - state.recording_start < self.min_recording_ms:
            return False

        if energy > self.threshold:
            state.speech_started = True
            state.silence_start = None
        elif state.speech_started:
            if state.silence_start is None:
                state.silence_start = now
            elif now - state.silence_start >= self.silence_ms:
                logger.info("Silence detected after speech")
                state.stopped = True
                if self.on_silence:
                    self.on_silence()
                return True
        return False

    async def run(self, source: MicrophoneSource, max_ms: float | None = None) -> np.ndarray:
        """
        Record from a source until silence ends the utterance.

        Args:
            source: Microphone source (opened here, always closed on exit)
            max_ms: Optional hard cap on recording length

        Returns:
            All captured samples
        """
        frames: list[np.ndarray] = []
        source.open()
        self.start()
        try:
            while not self.state.stopped:
                frame = await source.read()
                frames.append(frame)
                now = now_ms()
                if self.process(frame, now):
                    break
                if max_ms is not None and now - self.state.recording_start >= max_ms:
                    break
        finally:
            self.stop()
            source.close()
        return np.concatenate(frames) if frames else np.zeros(0, dtype=np.float32)
