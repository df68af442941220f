"""Client module - page-side runtime."""

from .page_agent import PageAgent

__all__ = ["PageAgent"]
