"""Agents module - per-tab session orchestration."""

from .history import sanitize_history, trim_history
from .orchestrator import SessionOrchestrator, load_profile
from .prompts import OPERATOR_SYSTEM_PROMPT, build_page_context, truncate_page_map

__all__ = [
    "SessionOrchestrator",
    "load_profile",
    "sanitize_history",
    "trim_history",
    "OPERATOR_SYSTEM_PROMPT",
    "build_page_context",
    "truncate_page_map",
]
