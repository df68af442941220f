"""API route modules."""

from . import audio, sessions

__all__ = ["audio", "sessions"]
