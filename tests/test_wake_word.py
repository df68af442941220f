"""Tests for the wake-phrase spotter and its restart supervisor."""

import asyncio

import pytest

from voice_operator.audio.wake_word import RecognitionEvent, TranscriptStream, WakeWordSpotter


# =========================================================================
# Helpers
# =========================================================================


class ScriptedStream(TranscriptStream):
    """Recognition session yielding a fixed list of events."""

    def __init__(self, events):
        self.events = events
        self.stopped = False

    async def __aiter__(self):
        for event in self.events:
            if self.stopped:
                return
            yield event

    async def stop(self):
        self.stopped = True


def result(text: str) -> RecognitionEvent:
    return RecognitionEvent(kind="result", transcripts=[text])


def error(code: str) -> RecognitionEvent:
    return RecognitionEvent(kind="error", error=code)


def make_spotter(sessions, **kwargs) -> tuple[WakeWordSpotter, dict]:
    calls = {"wake": 0, "stop": 0, "sessions": 0}
    scripted = iter(sessions)

    def factory():
        calls["sessions"] += 1
        return ScriptedStream(next(scripted, []))

    def on_wake():
        calls["wake"] += 1

    def on_stop():
        calls["stop"] += 1

    spotter = WakeWordSpotter(
        stream_factory=factory,
        on_wake=on_wake,
        on_stop=on_stop,
        restart_delay_ms=0,
        max_backoff_ms=0,
        jitter=0,
        **kwargs,
    )
    return spotter, calls


async def wait_until(predicate, timeout: float = 1.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


# =========================================================================
# Matching
# =========================================================================


class TestCheck:
    def setup_method(self):
        self.spotter, _ = make_spotter([])

    def test_wake_phrase(self):
        assert self.spotter.check("Hey Jarvis, open my mail") == "wake"

    def test_misheard_variant(self):
        assert self.spotter.check("hay jarvis") == "wake"

    def test_no_match(self):
        assert self.spotter.check("what time is it") is None

    def test_stop_only_while_recording(self):
        assert self.spotter.check("stop") is None
        self.spotter.recording_active = True
        assert self.spotter.check("Jarvis stop!") == "stop"
        assert self.spotter.check("hey jarvis") is None


class TestBackoff:
    def test_exponential_with_ceiling(self):
        spotter, _ = make_spotter([])
        spotter.restart_delay_ms = 500
        spotter.max_backoff_ms = 8000
        assert [spotter.backoff_delay(n) for n in range(7)] == [500, 500, 1000, 2000, 4000, 8000, 8000]

    def test_jitter_spread(self):
        spotter, _ = make_spotter([], rng=lambda: 1.0)
        spotter.restart_delay_ms = 1000
        spotter.jitter = 0.2
        assert spotter.backoff_delay(0) == pytest.approx(1200)

        spotter.rng = lambda: 0.0
        assert spotter.backoff_delay(0) == pytest.approx(800)


# =========================================================================
# Supervision
# =========================================================================


class TestSupervisor:
    async def test_wake_callback(self):
        spotter, calls = make_spotter([[result("hey jarvis")]])
        spotter.start()
        await wait_until(lambda: calls["wake"] == 1)
        await spotter.stop()
        assert not spotter.active

    async def test_restarts_after_benign_errors(self):
        spotter, calls = make_spotter([[error("no-speech")], [error("aborted")], [result("jarvis")]])
        spotter.start()
        await wait_until(lambda: calls["wake"] == 1)
        await spotter.stop()
        assert calls["sessions"] >= 3
        assert spotter.failures == 0

    async def test_fatal_error_stops(self):
        spotter, calls = make_spotter([[error("not-allowed")]])
        spotter.start()
        await wait_until(lambda: not spotter.listening)
        assert calls["sessions"] == 1

    async def test_gives_up_after_max_restarts(self):
        spotter, calls = make_spotter([[error("network")]] * 10, max_restarts=3)
        spotter.start()
        await wait_until(lambda: not spotter.listening)
        assert calls["sessions"] == 4
        assert spotter.failures == 4

    async def test_stop_phrase_while_paused_recording(self):
        spotter, calls = make_spotter([])
        spotter.recording_active = True
        spotter._handle(result("stop"))
        assert calls["stop"] == 1
        assert calls["wake"] == 0

    async def test_pause_and_resume(self):
        spotter, calls = make_spotter([])
        spotter.start()
        await spotter.pause()
        assert spotter.recording_active
        spotter.resume()
        assert not spotter.recording_active
        await spotter.stop()
