"""Tests for the REST routes and the per-tab WebSocket channel."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from voice_operator.api.main import create_app
from voice_operator.api.websocket import SessionManager, parse_envelope
from voice_operator.audio.transcribe import Transcriber
from voice_operator.core.config import settings
from voice_operator.core.errors import DecisionServiceError, ProtocolError
from voice_operator.core.models import Envelope, UserProfile
from voice_operator.llm.provider import LLMResponse


def make_llm(*replies: str) -> MagicMock:
    llm = MagicMock()
    llm.invoke = AsyncMock(side_effect=[LLMResponse(content=text, model="test-model") for text in replies])
    return llm


def make_client(*replies: str) -> TestClient:
    return TestClient(create_app(llm=make_llm(*replies), profile=UserProfile()))


# =========================================================================
# REST
# =========================================================================


class TestRestRoutes:
    def test_health(self):
        with make_client() as client:
            response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert isinstance(response.json()["timestamp"], int)

    def test_root(self):
        with make_client() as client:
            body = client.get("/").json()
        assert body["name"] == "Voice Operator"
        assert body["live_tabs"] == 0

    def test_no_sessions(self):
        with make_client() as client:
            assert client.get("/api/sessions/").json() == []

    def test_unknown_session(self):
        with make_client() as client:
            response = client.get("/api/sessions/missing")
        assert response.status_code == 404
        assert response.json()["detail"] == "Session not found"


class TestAudioRoute:
    def setup_method(self):
        self.app = create_app(llm=make_llm(), profile=UserProfile())
        self.transcriber = MagicMock()
        self.transcriber.transcribe = AsyncMock(return_value="open my mail")
        self.app.state.transcriber = self.transcriber

    def post(self, client, **kwargs):
        return client.post("/api/audio", data={"tabId": "tab-1"}, **kwargs)

    def test_missing_file(self):
        with TestClient(self.app) as client:
            response = self.post(client)
        assert response.status_code == 400
        assert response.json()["detail"] == "No audio file provided"

    def test_transcript_is_returned(self):
        with TestClient(self.app) as client:
            response = self.post(client, files={"audio": ("clip.webm", b"RIFFdata", "audio/webm")})
        assert response.status_code == 200
        assert response.json() == {"transcript": "open my mail", "tabId": "tab-1"}
        args, kwargs = self.transcriber.transcribe.call_args
        assert args[0] == b"RIFFdata"
        assert kwargs["filename"] == "clip.webm"

    def test_transcription_failure(self):
        self.transcriber.transcribe.side_effect = DecisionServiceError("upstream down")
        with TestClient(self.app) as client:
            response = self.post(client, files={"audio": ("clip.webm", b"data", "audio/webm")})
        assert response.status_code == 500
        assert response.json()["detail"] == "Transcription failed"

    def test_too_large(self, monkeypatch):
        monkeypatch.setattr(settings, "max_audio_bytes", 4)
        with TestClient(self.app) as client:
            response = self.post(client, files={"audio": ("clip.webm", b"too many bytes", "audio/webm")})
        assert response.status_code == 413


class TestTranscriber:
    async def test_strips_text(self):
        create = AsyncMock(return_value=SimpleNamespace(text="  hello there \n"))
        client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))
        transcriber = Transcriber(client=client, model="whisper-test", language="en")

        assert await transcriber.transcribe(b"abc", filename="a.wav", content_type="audio/wav") == "hello there"
        assert create.call_args.kwargs["file"] == ("a.wav", b"abc", "audio/wav")

    async def test_empty_clip(self):
        transcriber = Transcriber(client=MagicMock(), model="whisper-test", language="en")
        assert await transcriber.transcribe(b"") == ""


# =========================================================================
# WebSocket
# =========================================================================


class TestParseEnvelope:
    def test_tab_id_defaults_to_connection(self):
        envelope = parse_envelope('{"type": "register_tab"}', "tab-1")
        assert envelope.tab_id == "tab-1"
        assert envelope.data == {}

    def test_connection_tab_wins(self):
        envelope = parse_envelope('{"type": "register_tab", "tabId": "other"}', "tab-1")
        assert envelope.tab_id == "tab-1"

    def test_numeric_tab_id(self):
        assert parse_envelope('{"type": "register_tab", "tabId": 7}', "7").tab_id == "7"

    def test_not_json(self):
        with pytest.raises(ProtocolError):
            parse_envelope("{oops", "tab-1")

    def test_not_an_object(self):
        with pytest.raises(ProtocolError):
            parse_envelope("[1, 2]", "tab-1")

    def test_missing_type(self):
        with pytest.raises(ProtocolError):
            parse_envelope('{"data": {}}', "tab-1")


class TestWebSocket:
    def test_conversation(self):
        with make_client("Hello, how can I help?") as client:
            with client.websocket_connect("/ws/tab-1") as ws:
                ws.send_json({"type": "register_tab", "data": {}})
                assert ws.receive_json() == {"type": "status_update", "tabId": "tab-1", "data": {"status": "idle"}}

                ws.send_json({"type": "user_transcript", "data": {"transcript": "hello"}})
                assert ws.receive_json()["data"] == {"status": "thinking"}
                assert ws.receive_json()["data"] == {"text": "Hello, how can I help?", "priority": "normal"}
                assert ws.receive_json()["data"] == {"status": "idle"}

                sessions = client.get("/api/sessions/").json()
                assert [s["tabId"] for s in sessions] == ["tab-1"]
                assert sessions[0]["historyLength"] == 2

    def test_bad_frames_are_skipped(self):
        with make_client() as client:
            with client.websocket_connect("/ws/tab-1") as ws:
                ws.send_text("not json")
                ws.send_json({"type": "ping"})
                ws.send_json({"type": "teleport"})
                ws.send_json({"type": "register_tab"})
                assert ws.receive_json()["data"] == {"status": "idle"}

    def test_local_command_over_socket(self):
        with make_client() as client:
            with client.websocket_connect("/ws/tab-1") as ws:
                ws.send_json({"type": "user_transcript", "data": {"transcript": "repeat"}})
                assert ws.receive_json()["data"] == {"status": "thinking"}
                assert ws.receive_json()["data"] == {"text": "repeat_last", "priority": "high"}

    def test_reconnect_replaces_session(self):
        with make_client() as client:
            with client.websocket_connect("/ws/tab-1") as first:
                first.send_json({"type": "register_tab"})
                assert first.receive_json()["data"] == {"status": "idle"}

                with client.websocket_connect("/ws/tab-1") as second:
                    second.send_json({"type": "register_tab"})
                    assert second.receive_json()["data"] == {"status": "idle"}
                    assert [s["tabId"] for s in client.get("/api/sessions/").json()] == ["tab-1"]


# =========================================================================
# Session lifetime
# =========================================================================


def make_socket() -> MagicMock:
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_text = AsyncMock()
    return websocket


class TestSessionManager:
    def setup_method(self):
        self.sessions = SessionManager(llm=make_llm(), profile=UserProfile())

    async def test_disconnect_evicts_and_cancels_worker(self):
        connection = await self.sessions.connect(make_socket(), "tab-1")
        assert self.sessions.get("tab-1") is connection.orchestrator

        await self.sessions.disconnect("tab-1")

        assert self.sessions.connections == {}
        assert connection.worker.cancelled()
        assert connection.orchestrator.closed

    async def test_reconnect_replaces_old_session(self):
        old = await self.sessions.connect(make_socket(), "tab-1")
        new = await self.sessions.connect(make_socket(), "tab-1")

        assert self.sessions.connections == {"tab-1": new}
        assert old.worker.cancelled()
        assert old.orchestrator.closed
        assert not new.orchestrator.closed
        await self.sessions.close_all()

    async def test_late_release_keeps_replacement(self):
        old = await self.sessions.connect(make_socket(), "tab-1")
        new = await self.sessions.connect(make_socket(), "tab-1")

        assert not await self.sessions.release("tab-1", old)
        assert self.sessions.get("tab-1") is new.orchestrator
        assert not new.worker.done()

        assert await self.sessions.release("tab-1", new)
        assert self.sessions.connections == {}

    async def test_worker_handles_queued_messages(self):
        websocket = make_socket()
        connection = await self.sessions.connect(websocket, "tab-1")

        await connection.queue.put(Envelope(type="register_tab", tab_id="tab-1"))
        for _ in range(20):
            if websocket.send_text.await_count:
                break
            await asyncio.sleep(0)

        sent = json.loads(websocket.send_text.call_args.args[0])
        assert sent == {"type": "status_update", "tabId": "tab-1", "data": {"status": "idle"}}
        await self.sessions.close_all()
        assert self.sessions.connections == {}
