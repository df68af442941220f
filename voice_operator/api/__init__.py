"""API module - FastAPI app, WebSocket channel and REST routes."""
