"""
Per-tab session state.
Owned and mutated only by the tab's orchestrator.
"""

from typing import Any, Literal
from pydantic import BaseModel, Field

from .models import PageMap, PendingAction, UserProfile


TabStatus = Literal[
    "idle",
    "listening",
    "transcribing",
    "thinking",
    "executing",
    "speaking",
    "awaiting_confirmation",
    "error",
]


class TabState(BaseModel):
    """
    State held for one browser tab.
    Created on the tab's first message and discarded on disconnect.
    """

    tab_id: str
    status: TabStatus = "idle"

    # Latest snapshot pushed by the page
    page_map: PageMap | None = None

    # Decision-service conversation (neutral message dicts)
    history: list[dict[str, Any]] = Field(default_factory=list)

    # Confirmation gate
    pending: PendingAction | None = None

    # Tool-call bookkeeping
    last_tool: str | None = None
    last_tool_call_id: str | None = None
    batch_mode: bool = False
    batch_call_ids: set[str] = Field(default_factory=set)

    # Last thing spoken, for "repeat"
    last_spoken: str | None = None

    profile: UserProfile | None = None


def create_initial_state(tab_id: str, profile: UserProfile | None = None) -> TabState:
    """Create initial state for a new tab."""
    return TabState(tab_id=tab_id, profile=profile)
