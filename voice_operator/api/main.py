"""
FastAPI Application - Main entry point.
Provides the per-tab WebSocket channel and the audio/sessions REST API.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..agents.orchestrator import load_profile
from ..core.config import settings
from ..core.logging_setup import setup_logging
from ..core.models import UserProfile, now_ms
from ..llm.provider import LLMProvider

from .routes import audio, sessions
from .websocket import SessionManager, router as websocket_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Closes every live tab session on shutdown.
    """
    logger.info("Voice operator API ready on %s:%d", settings.api_host, settings.api_port)

    yield

    logger.info("Shutting down...")
    await app.state.sessions.close_all()


def create_app(
    llm: LLMProvider | None = None,
    profile: UserProfile | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        llm: Decision service shared by all tabs (created from settings if omitted)
        profile: Form-filling profile (loaded from settings.profile_path if omitted)

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="Voice Operator",
        description=(
            "Voice-driven browser operator. Tabs stream page maps and transcripts "
            "over a WebSocket and receive spoken replies and tool calls."
        ),
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.sessions = SessionManager(
        llm=llm,
        profile=profile if profile is not None else load_profile(),
    )

    origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(audio.router, prefix="/api", tags=["Audio"])
    app.include_router(sessions.router, prefix="/api/sessions", tags=["Sessions"])
    app.include_router(websocket_router, prefix="/ws", tags=["WebSocket"])

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Voice Operator",
            "version": "0.1.0",
            "status": "running",
            "docs": "/docs",
            "websocket": "/ws/{tabId}",
            "live_tabs": len(app.state.sessions.connections),
        }

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "timestamp": int(now_ms())}

    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    setup_logging(settings.log_level)
    uvicorn.run(
        "voice_operator.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


# Create app instance
app = create_app()
