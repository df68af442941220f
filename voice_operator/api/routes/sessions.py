"""
Sessions API - inspect live tab sessions.
"""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel


router = APIRouter()


class SessionResponse(BaseModel):
    """Live tab session summary."""
    tabId: str
    status: str
    url: str | None
    title: str | None
    historyLength: int
    pending: str | None


@router.get("/", response_model=list[SessionResponse])
async def list_sessions(req: Request) -> list[SessionResponse]:
    """
    List connected tabs.

    Args:
        req: FastAPI request (for app state)

    Returns:
        One summary per live tab
    """
    sessions = req.app.state.sessions
    return [
        SessionResponse(**connection.orchestrator.snapshot())
        for connection in sessions.connections.values()
    ]


@router.get("/{tab_id}", response_model=SessionResponse)
async def get_session(tab_id: str, req: Request) -> SessionResponse:
    """
    Get one tab's session.

    Args:
        tab_id: Tab identifier
        req: FastAPI request

    Returns:
        Session summary
    """
    orchestrator = req.app.state.sessions.get(tab_id)
    if not orchestrator:
        raise HTTPException(status_code=404, detail="Session not found")
    return SessionResponse(**orchestrator.snapshot())
