"""Tests for voice activity detection."""

import io

import numpy as np
import scipy.io.wavfile as wav

from voice_operator.audio.vad import VoiceActivityDetector, rms, to_wav


FRAME = 512


def silence() -> np.ndarray:
    return np.zeros(FRAME, dtype=np.float32)


def speech(level: float = 0.2) -> np.ndarray:
    return np.full(FRAME, level, dtype=np.float32)


class FakeSource:
    """Frame source replaying a fixed list, recording open/close."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.sample_rate = 16000
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True

    async def read(self):
        return self.frames.pop(0) if self.frames else silence()

    def close(self):
        self.closed = True


class TestRms:
    def test_empty(self):
        assert rms(np.zeros(0, dtype=np.float32)) == 0.0

    def test_constant(self):
        assert abs(rms(speech(0.5)) - 0.5) < 1e-6


class TestProcess:
    def setup_method(self):
        self.fired = []
        self.vad = VoiceActivityDetector(
            threshold=0.015,
            silence_ms=1800,
            min_recording_ms=600,
            on_silence=lambda: self.fired.append(True),
        )
        self.vad.start(now=0)

    def test_never_fires_without_speech(self):
        for t in range(0, 10000, 100):
            assert not self.vad.process(silence(), t)
        assert not self.vad.has_detected_speech
        assert self.fired == []

    def test_energy_before_min_recording_is_ignored(self):
        self.vad.process(speech(), 100)
        assert not self.vad.has_detected_speech

    def test_fires_after_silence_following_speech(self):
        assert not self.vad.process(speech(), 700)
        assert not self.vad.process(silence(), 800)
        assert not self.vad.process(silence(), 2500)
        assert self.vad.process(silence(), 2600)
        assert self.fired == [True]
        assert self.vad.state.stopped

    def test_speech_resets_silence(self):
        self.vad.process(speech(), 700)
        self.vad.process(silence(), 800)
        self.vad.process(speech(), 2000)
        self.vad.process(silence(), 2100)
        assert not self.vad.process(silence(), 3800)
        assert self.vad.process(silence(), 3900)

    def test_fires_once(self):
        self.vad.process(speech(), 700)
        self.vad.process(silence(), 800)
        self.vad.process(silence(), 2600)
        assert not self.vad.process(silence(), 5000)
        assert self.fired == [True]

    def test_level_callback(self):
        levels = []
        vad = VoiceActivityDetector(on_level=levels.append)
        vad.start(now=0)
        vad.process(speech(0.5), 10)
        assert levels == [1.0]


class TestRun:
    async def test_stops_on_silence_and_closes_source(self):
        source = FakeSource([speech()] * 3)
        vad = VoiceActivityDetector(silence_ms=0, min_recording_ms=0)
        samples = await vad.run(source)
        assert vad.has_detected_speech
        assert source.opened and source.closed
        assert samples.size >= 3 * FRAME

    async def test_max_duration(self):
        source = FakeSource([])
        vad = VoiceActivityDetector(min_recording_ms=0)
        await vad.run(source, max_ms=0)
        assert not vad.has_detected_speech
        assert source.closed


class TestWav:
    def test_encodes_16_bit_mono(self):
        data = to_wav(np.array([0.0, 0.5, -1.0, 2.0], dtype=np.float32), 16000)
        rate, pcm = wav.read(io.BytesIO(data))
        assert rate == 16000
        assert pcm.dtype == np.int16
        assert list(pcm) == [0, 16383, -32767, 32767]
