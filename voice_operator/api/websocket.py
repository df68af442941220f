"""
WebSocket API - per-tab command channel.
Each tab gets one connection, one orchestrator and one worker that handles
its messages in order.
"""

import asyncio
import json
import logging
from dataclasses import dataclass

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ..agents.orchestrator import SessionOrchestrator
from ..core.errors import ProtocolError
from ..core.guardrails import RiskPolicy
from ..core.models import Envelope, UserProfile
from ..llm.provider import LLMProvider


logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 30.0


@dataclass
class TabConnection:
    """Live connection for one tab."""
    websocket: WebSocket
    orchestrator: SessionOrchestrator
    queue: asyncio.Queue
    worker: asyncio.Task | None = None


class SessionManager:
    """
    Registry of live tab sessions.

    Entries exist only while the tab's connection is open.
    """

    def __init__(
        self,
        llm: LLMProvider | None = None,
        profile: UserProfile | None = None,
        policy: RiskPolicy | None = None,
    ):
        self.llm = llm
        self.profile = profile
        self.policy = policy or RiskPolicy()
        self.connections: dict[str, TabConnection] = {}

    async def connect(self, websocket: WebSocket, tab_id: str) -> TabConnection:
        """Accept a connection and start the tab's worker. A reconnect replaces the old session."""
        await websocket.accept()
        if tab_id in self.connections:
            logger.info("Tab %s reconnected; replacing previous session", tab_id)
            await self.disconnect(tab_id)

        async def send(envelope: Envelope) -> None:
            await websocket.send_text(json.dumps(envelope.wire()))

        orchestrator = SessionOrchestrator(
            tab_id,
            send,
            llm=self.llm,
            policy=self.policy,
            profile=self.profile,
        )
        connection = TabConnection(websocket=websocket, orchestrator=orchestrator, queue=asyncio.Queue())
        connection.worker = asyncio.create_task(self._work(connection))
        self.connections[tab_id] = connection
        logger.info("Tab %s connected (%d live)", tab_id, len(self.connections))
        return connection

    async def disconnect(self, tab_id: str) -> None:
        """Close the tab's session, cancel its worker and evict its state."""
        connection = self.connections.pop(tab_id, None)
        if connection is None:
            return
        connection.orchestrator.close()
        if connection.worker:
            connection.worker.cancel()
            try:
                await connection.worker
            except asyncio.CancelledError:
                pass
        logger.info("Tab %s disconnected (%d live)", tab_id, len(self.connections))

    async def release(self, tab_id: str, connection: TabConnection) -> bool:
        """
        Disconnect a tab only if `connection` is still its live session.

        A replaced connection closing late must not end its replacement.

        Returns:
            True if the session was closed
        """
        if self.connections.get(tab_id) is not connection:
            return False
        await self.disconnect(tab_id)
        return True

    async def close_all(self) -> None:
        for tab_id in list(self.connections):
            await self.disconnect(tab_id)

    def get(self, tab_id: str) -> SessionOrchestrator | None:
        connection = self.connections.get(tab_id)
        return connection.orchestrator if connection else None

    async def notify_status(self, tab_id: str, status: str) -> bool:
        """
        Best-effort status push from outside the tab's worker.

        Does not touch the tab's state.

        Returns:
            True if the tab is connected and the update was sent
        """
        connection = self.connections.get(tab_id)
        if connection is None:
            return False
        envelope = Envelope(type="status_update", tab_id=tab_id, data={"status": status})
        await connection.orchestrator.send(envelope)
        return True

    async def _work(self, connection: TabConnection) -> None:
        """Handle the tab's messages one at a time."""
        orchestrator = connection.orchestrator
        while True:
            envelope = await connection.queue.get()
            try:
                await orchestrator.handle(envelope)
            except ProtocolError as e:
                logger.warning("Tab %s protocol error: %s", orchestrator.tab_id, e)
            except Exception as e:
                logger.exception("Tab %s handler failed", orchestrator.tab_id)
                await orchestrator.set_status("error", message=str(e))
                await orchestrator.set_status("idle")


def parse_envelope(raw: str, tab_id: str) -> Envelope:
    """
    Parse and validate one inbound frame.

    Raises:
        ProtocolError: Not JSON or not an envelope
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Frame is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ProtocolError("Frame is not a JSON object")
    payload.setdefault("tabId", tab_id)
    try:
        envelope = Envelope.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(f"Invalid envelope: {e}") from e
    if envelope.tab_id != tab_id:
        logger.warning("Envelope for tab %s arrived on tab %s connection", envelope.tab_id, tab_id)
        envelope.tab_id = tab_id
    return envelope


@router.websocket("/{tab_id}")
async def websocket_endpoint(websocket: WebSocket, tab_id: str):
    """
    Bidirectional channel for one tab.

    Inbound: register_tab, page_map_update, user_transcript, tool_result.
    Outbound: speak, execute_tool, highlight_action, status_update.

    Args:
        websocket: WebSocket connection
        tab_id: Caller-supplied tab identifier
    """
    sessions: SessionManager = websocket.app.state.sessions
    connection = await sessions.connect(websocket, tab_id)

    try:
        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "ping"})
                continue

            try:
                envelope = parse_envelope(raw, tab_id)
            except ProtocolError as e:
                logger.warning("Tab %s sent a bad frame: %s", tab_id, e)
                continue

            if envelope.type in ("ping", "pong"):
                continue
            await connection.queue.put(envelope)

    except WebSocketDisconnect:
        logger.debug("Tab %s closed its connection", tab_id)
    finally:
        await sessions.release(tab_id, connection)
