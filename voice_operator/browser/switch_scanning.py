"""
Switch Scanning.
Next/previous/select navigation through a page's actions for users who
operate the page with one or two switches.
"""

import logging
from typing import Any, Callable, Literal

from ..core.config import settings
from ..core.models import ActionInfo, ToolResult
from .actions import ActionExecutor
from .dom import Document
from .events import settle


logger = logging.getLogger(__name__)

ScanStatus = Literal["disabled", "idle", "highlighted", "selecting", "confirming"]
Speaker = Callable[[str, str], Any]

ROW_TOLERANCE = 20
PLAIN_ROLES = ("button", "link")
FORM_TAGS = ("input", "textarea", "select")


def scan_order(actions: list[ActionInfo]) -> list[ActionInfo]:
    """Top-to-bottom, then left-to-right; boxes within 20px vertically share a row."""
    rows: list[list[ActionInfo]] = []
    for action in sorted(actions, key=lambda a: (a.bbox.y, a.bbox.x)):
        if rows and abs(action.bbox.y - rows[-1][0].bbox.y) <= ROW_TOLERANCE:
            rows[-1].append(action)
        else:
            rows.append([action])
    return [action for row in rows for action in sorted(row, key=lambda a: a.bbox.x)]


def _log_speaker(text: str, priority: str) -> None:
    logger.info("[speak:%s] %s", priority, text)


class SwitchScanner:
    """
    Switch-scanning state machine for one page.

    disabled -> idle -> highlighted(i) -> selecting -> idle (after refresh),
    with a confirming branch for risk-flagged actions.
    """

    def __init__(self, executor: ActionExecutor, speak: Speaker | None = None):
        """
        Initialize scanner.

        Args:
            executor: Executor used to highlight and click
            speak: Callback receiving (text, priority)
        """
        self.executor = executor
        self.speak = speak or _log_speaker
        self.status: ScanStatus = "disabled"
        self.index = -1
        self.actions: list[ActionInfo] = []

    @property
    def enabled(self) -> bool:
        return self.status != "disabled"

    @property
    def current(self) -> ActionInfo | None:
        if 0 <= self.index < len(self.actions):
            return self.actions[self.index]
        return None

    def set_enabled(self, document: Document, enabled: bool) -> None:
        if enabled:
            self.refresh(document)
            self.index = -1
            self.status = "idle"
            self.speak("Switch scanning enabled. Press Space or Tab for next, Enter to select.", "high")
        else:
            self.executor.highlight(document, None)
            self.index = -1
            self.status = "disabled"
            self.speak("Switch scanning disabled.", "high")

    def refresh(self, document: Document) -> None:
        """Re-derive the action list from a fresh page map."""
        page_map = self.executor.extractor.extract(document)
        self.actions = scan_order([a for a in page_map.actions if not a.state.disabled and a.bbox is not None])
        logger.debug("Switch scanning over %d actions", len(self.actions))

    # =========================================================================
    # Navigation
    # =========================================================================

    def next(self, document: Document) -> ActionInfo | None:
        if not self.enabled or not self.actions:
            return None
        self.index = (self.index + 1) % len(self.actions)
        return self._highlight(document)

    def previous(self, document: Document) -> ActionInfo | None:
        if not self.enabled or not self.actions:
            return None
        self.index = len(self.actions) - 1 if self.index <= 0 else self.index - 1
        return self._highlight(document)

    def _highlight(self, document: Document) -> ActionInfo:
        action = self.actions[self.index]
        self.status = "highlighted"
        self.executor.highlight(document, action.id)
        self.speak(self.announcement(action), "normal")
        return action

    def announcement(self, action: ActionInfo) -> str:
        """Position, label, role and state of an action."""
        text = f"{self.index + 1} of {len(self.actions)}: {action.label}"
        if action.role not in PLAIN_ROLES:
            text += f", {action.role}"
        if action.state.checked is not None:
            text += ", checked" if action.state.checked else ", unchecked"
        if action.state.expanded is not None:
            text += ", expanded" if action.state.expanded else ", collapsed"
        if action.is_risky:
            text += ", caution: this may submit or change data"
        return text

    # =========================================================================
    # Selection
    # =========================================================================

    async def select(self, document: Document) -> ToolResult | None:
        """
        Activate the highlighted action.

        Risk-flagged actions are held until confirm() is called.
        """
        action = self.current
        if not self.enabled or action is None:
            self.speak("No action selected. Press Space for next.", "normal")
            return None
        if action.is_risky:
            self.status = "confirming"
            self.speak(
                f'Warning: This is "{action.label}". This may be a risky action. Say confirm to proceed.',
                "high",
            )
            return None
        return await self._activate(document, action)

    async def confirm(self, document: Document) -> ToolResult | None:
        """Release a held risk-flagged selection."""
        action = self.current
        if self.status != "confirming" or action is None:
            return None
        return await self._activate(document, action)

    def cancel(self) -> None:
        if self.status == "confirming":
            self.status = "highlighted"
            self.speak("Cancelled.", "normal")

    async def _activate(self, document: Document, action: ActionInfo) -> ToolResult:
        self.status = "selecting"
        self.speak(f"Selecting {action.label}", "normal")
        result = await self.executor.execute_tool(
            document, "click", {"actionId": action.id, "description": action.label}
        )
        if not result.success:
            self.speak(result.message, "high")
        await settle(settings.switch_refresh_ms)
        self.refresh(document)
        self.index = -1
        self.executor.highlight(document, None)
        if self.status == "selecting":
            self.status = "idle"
        return result

    # =========================================================================
    # Keyboard
    # =========================================================================

    async def handle_key(self, document: Document, key: str, shift: bool = False) -> bool:
        """
        Map a key press to a scanning command.

        Returns:
            True if the key was consumed
        """
        if not self.enabled:
            return False
        active = document.active_element
        if active is not None and active.name in FORM_TAGS:
            return False
        if key in (" ", "Tab"):
            if shift:
                self.previous(document)
            else:
                self.next(document)
        elif key == "Enter":
            await self.select(document)
        elif key == "Escape":
            self.set_enabled(document, False)
        else:
            return False
        return True

    def scan_state(self) -> dict[str, Any]:
        current = self.current
        return {
            "enabled": self.enabled,
            "status": self.status,
            "index": self.index,
            "total": len(self.actions),
            "currentAction": current.wire() if current else None,
        }
