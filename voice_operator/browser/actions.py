"""
Action Executor.
Carries out tool calls on the live document with synthetic input events.
"""

import logging
from typing import Any
from urllib.parse import urlparse

from bs4 import Tag

from ..core.config import settings
from ..core.errors import (
    ElementDisabledError,
    ElementNotFoundError,
    InvalidURLError,
    VoiceOperatorError,
)
from ..core.models import FormScanResult, ToolResult
from .accessibility import AccessibilityAuditor
from .dom import Document, DomEvent, css_path, parse_style
from .events import pointer_click, select_value, set_text, settle
from .form_scanner import FormScanner
from .page_map import PageMapExtractor


logger = logging.getLogger(__name__)

SCROLL_AMOUNTS = {"small": 200, "medium": 500, "large": 800}
MIN_WAIT_MS = 100
MAX_WAIT_MS = 5000
HIGHLIGHT_ATTR = "data-voice-highlight"
HIGHLIGHT_OUTLINE = "4px solid #00ff00"
TEXT_INPUT_TAGS = ("input", "textarea")


def clamp_wait(duration_ms: Any) -> int:
    """Clamp a wait duration to the allowed range; non-numbers become 1000ms."""
    try:
        duration = int(duration_ms)
    except (TypeError, ValueError):
        duration = 1000
    return min(max(duration, MIN_WAIT_MS), MAX_WAIT_MS)


def _set_outline(element: Tag, outline: str | None) -> None:
    styles = parse_style(element.get("style"))
    if outline:
        styles["outline"] = outline
        styles["outline-offset"] = "2px"
    else:
        styles.pop("outline", None)
        styles.pop("outline-offset", None)
    if styles:
        element["style"] = "; ".join(f"{k}: {v}" for k, v in styles.items())
    elif element.has_attr("style"):
        del element["style"]


def summarize_scan(scan: FormScanResult) -> str:
    """Plain-text rendering of a form scan for the decision service."""
    lines = [
        f'Form: "{scan.form_title}" ({scan.total_questions} questions, '
        f"{scan.answered_questions} answered)"
    ]
    if scan.form_description:
        lines.append(f"Description: {scan.form_description}")
    lines.append("")
    lines.append("Questions:")
    for q in scan.questions:
        line = f'- [{q.question_id}] "{q.question_text}" ({q.type}{", required" if q.required else ""})'
        if q.options:
            marks = ", ".join(f"{'✓' if o.selected else '○'} {o.label}" for o in q.options)
            line += f" Options: {marks}"
        if q.current_answer:
            line += f' Current: "{q.current_answer}"'
        lines.append(line)
    if scan.submit_action_id:
        lines.append("")
        lines.append(f"Submit button ID: {scan.submit_action_id}")
    return "\n".join(lines)


class ActionExecutor:
    """
    Executes page-side tools.

    Every mutating operation resolves its target (re-extracting once on a
    miss), checks the disabled/read-only guard, scrolls the target into view
    and waits a settle delay before firing events.
    """

    def __init__(self, extractor: PageMapExtractor | None = None, scanner: FormScanner | None = None):
        """
        Initialize executor.

        Args:
            extractor: Page-map extractor owning the element registry
            scanner: Form scanner sharing that registry
        """
        self.extractor = extractor or PageMapExtractor()
        self.scanner = scanner or FormScanner(self.extractor)
        self.auditor = AccessibilityAuditor()

    def _resolve(self, document: Document, element_id: str, kind: str = "Element") -> Tag:
        element = self.extractor.find_element(document, element_id)
        if element is None:
            raise ElementNotFoundError(element_id, kind=kind)
        return element

    # =========================================================================
    # Pointer & Keyboard
    # =========================================================================

    async def click(self, document: Document, action_id: str, description: str = "element") -> ToolResult:
        """
        Click an action with the full pointer sequence at its center.

        Args:
            document: Live document
            action_id: Action identifier
            description: Spoken description of the target

        Returns:
            Tool result
        """
        element = self._resolve(document, action_id)
        if document.is_disabled(element):
            raise ElementDisabledError(f'The element "{description}" is disabled and cannot be clicked.')
        document.scroll_into_view(element)
        await settle(settings.click_settle_ms)
        document.focus(element)
        pointer_click(document, element)
        return ToolResult(
            success=True,
            message=f'Clicked "{description}". Waiting for page to update.',
            data={"actionId": action_id},
        )

    async def type_text(
        self,
        document: Document,
        field_id: str,
        text: str,
        clear_first: bool = True,
    ) -> ToolResult:
        """
        Type into a text field through the native setter.

        Args:
            document: Live document
            field_id: Field identifier
            text: Text to enter
            clear_first: Empty the field (and fire input) before typing

        Returns:
            Tool result
        """
        element = self._resolve(document, field_id, kind="Input field")
        if element.name not in TEXT_INPUT_TAGS:
            return ToolResult(success=False, message="Element is not a text input field.")
        if document.is_disabled(element) or document.is_readonly(element):
            raise ElementDisabledError("The input field is disabled or read-only.")
        document.focus(element)
        document.scroll_into_view(element)
        await settle(settings.text_settle_ms)
        if clear_first:
            document.set_value(element, "")
            document.dispatch(element, "input", value="", bubbles=True)
        else:
            text = document.get_value(element) + text
        set_text(document, element, text)
        return ToolResult(
            success=True,
            message=f'Typed "{text}" into the field.',
            data={"fieldId": field_id, "value": text},
        )

    async def select_option(self, document: Document, field_id: str, value: str) -> ToolResult:
        """Pick an option of a native list control by value or text."""
        element = self._resolve(document, field_id, kind="Select field")
        if element.name != "select":
            return ToolResult(success=False, message=f"Element {field_id} is not a select field.")
        if document.is_disabled(element):
            raise ElementDisabledError("The select field is disabled.")
        document.scroll_into_view(element)
        await settle(settings.text_settle_ms)

        wanted = value.lower()
        options = element.find_all("option")
        for option in options:
            option_value = option.get("value", document.text_content(option))
            if option_value == value or wanted in document.text_content(option).lower():
                select_value(document, element, option_value)
                return ToolResult(
                    success=True,
                    message=f'Selected "{value}" from dropdown.',
                    data={"fieldId": field_id, "value": option_value},
                )

        available = ", ".join(document.text_content(o) for o in options)
        return ToolResult(
            success=False,
            message=f'Could not find option "{value}". Available options: {available}',
        )

    async def focus_element(self, document: Document, action_id: str) -> ToolResult:
        element = self._resolve(document, action_id)
        document.scroll_into_view(element)
        document.focus(element)
        return ToolResult(success=True, message="Focused on element.", data={"actionId": action_id})

    # =========================================================================
    # Viewport & Navigation
    # =========================================================================

    def scroll(self, document: Document, direction: str, amount: str = "medium") -> ToolResult:
        """
        Scroll the viewport.

        Args:
            document: Live document
            direction: up, down, top or bottom
            amount: small, medium, large or full (one viewport)

        Returns:
            Tool result
        """
        distance = document.viewport_height if amount == "full" else SCROLL_AMOUNTS.get(amount, 500)
        if direction == "up":
            document.scroll_by(-distance)
        elif direction == "down":
            document.scroll_by(distance)
        elif direction == "top":
            document.scroll_to(0)
        elif direction == "bottom":
            document.scroll_to(document.scroll_height)
        else:
            return ToolResult(success=False, message=f"Unknown scroll direction: {direction}")
        return ToolResult(success=True, message=f"Scrolled {direction}.")

    def go_back(self, document: Document) -> ToolResult:
        if document.go_back():
            return ToolResult(success=True, message="Going back to previous page.")
        return ToolResult(success=False, message="Cannot go back, no history available.")

    def navigate_to(self, document: Document, url: str) -> ToolResult:
        """
        Resolve a URL against the current location and assign it.

        Raises:
            InvalidURLError: The URL cannot be resolved to a navigable location
        """
        if not url or not url.strip():
            raise InvalidURLError(f"Invalid URL: {url}")
        try:
            resolved = document.resolve_url(url.strip())
            parsed = urlparse(resolved)
            # .port raises ValueError for a malformed port
            has_host = bool(parsed.hostname) and (parsed.port is None or parsed.port > 0)
        except ValueError as e:
            raise InvalidURLError(f"Invalid URL: {url}") from e
        if not parsed.scheme or (parsed.scheme in ("http", "https") and not has_host):
            raise InvalidURLError(f"Invalid URL: {url}")
        document.navigate(resolved)
        return ToolResult(success=True, message=f"Navigating to {resolved}. Page will reload.")

    async def wait(self, duration_ms: Any = 1000, reason: str = "") -> ToolResult:
        duration = clamp_wait(duration_ms)
        await settle(duration)
        return ToolResult(success=True, message=f"Waited {duration}ms: {reason}")

    def highlight(self, document: Document, action_id: str | None) -> ToolResult:
        """
        Outline one action, clearing any previous highlight.

        Args:
            document: Live document
            action_id: Action to outline, or None to only clear

        Returns:
            Tool result
        """
        for element in document.select(f"[{HIGHLIGHT_ATTR}]"):
            _set_outline(element, None)
            del element[HIGHLIGHT_ATTR]
        document.events.append(DomEvent(type="highlight", target=None))

        if not action_id:
            return ToolResult(success=True, message="Highlight cleared.")

        element = self.extractor.find_element(document, action_id)
        if element is None:
            raise ElementNotFoundError(action_id)
        _set_outline(element, HIGHLIGHT_OUTLINE)
        element[HIGHLIGHT_ATTR] = "true"
        document.scroll_into_view(element)
        document.events.append(DomEvent(
            type="highlight",
            target=element,
            selector=css_path(element, document),
        ))
        return ToolResult(success=True, message="Highlighted element.", data={"actionId": action_id})

    # =========================================================================
    # Reading
    # =========================================================================

    def read_section(self, document: Document, section_id: str) -> ToolResult:
        for section in self.extractor.extract_sections(document):
            if section.id == section_id:
                return ToolResult(
                    success=True,
                    message=section.snippet,
                    data={"sectionId": section_id, "heading": section.heading},
                )
        return ToolResult(success=False, message=f"Could not find section {section_id}.")

    def read_page_summary(self, document: Document) -> ToolResult:
        """Spoken overview: title, main headings, counts and page-type hints."""
        page_map = self.extractor.extract(document)
        headings = ", ".join(h.text for h in page_map.headings[:5])

        summary = f"Page: {page_map.title}. "
        if headings:
            summary += f"Main sections: {headings}. "
        summary += f"There are {len(page_map.actions)} interactive elements"
        if page_map.fields:
            summary += f" and {len(page_map.fields)} form fields"
        summary += "."
        if page_map.has_login:
            summary += " This appears to be a login page."
        if page_map.has_captcha:
            summary += " Warning: This page has a captcha that requires manual interaction."
        if page_map.has_checkout:
            summary += " This appears to be a checkout or payment page."
        if page_map.alerts:
            summary += f" Alert: {page_map.alerts[0]}"
        return ToolResult(success=True, message=summary)

    # =========================================================================
    # Forms
    # =========================================================================

    def scan_form(self, document: Document) -> ToolResult:
        scan = self.scanner.scan(document)
        return ToolResult(success=True, message=summarize_scan(scan), data=scan.wire())

    async def answer_form_question(self, document: Document, question_id: str, answer: str) -> ToolResult:
        return await self.scanner.answer(document, question_id, answer)

    # =========================================================================
    # Accessibility
    # =========================================================================

    def audit_accessibility(self, document: Document) -> ToolResult:
        audit = self.auditor.audit(document)
        return ToolResult(
            success=True,
            message=audit.summary,
            data={
                "score": audit.score,
                "issueCount": len(audit.issues),
                "issues": [issue.describe() for issue in audit.issues],
            },
        )

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def execute_tool(self, document: Document, name: str, args: dict[str, Any] | None = None) -> ToolResult:
        """
        Execute a tool by name.

        Args:
            document: Live document
            name: Tool name from the decision-service schema
            args: Tool arguments (camelCase keys)

        Returns:
            Tool result; errors become failed results
        """
        args = args or {}
        logger.info("Executing %s %s", name, args)
        try:
            if name == "click":
                return await self.click(document, args["actionId"], args.get("description") or "element")
            elif name == "type_text":
                return await self.type_text(
                    document, args["fieldId"], str(args.get("text", "")), args.get("clearFirst") is not False
                )
            elif name == "select_option":
                return await self.select_option(document, args["fieldId"], str(args.get("value", "")))
            elif name == "scroll":
                return self.scroll(document, args.get("direction", "down"), args.get("amount") or "medium")
            elif name == "read_section":
                return self.read_section(document, args["sectionId"])
            elif name == "read_page_summary":
                return self.read_page_summary(document)
            elif name == "focus_element":
                return await self.focus_element(document, args["actionId"])
            elif name == "go_back":
                return self.go_back(document)
            elif name == "wait":
                return await self.wait(args.get("duration", 1000), args.get("reason", ""))
            elif name == "navigate_to":
                return self.navigate_to(document, args.get("url", ""))
            elif name == "highlight":
                return self.highlight(document, args.get("actionId"))
            elif name == "scan_form":
                return self.scan_form(document)
            elif name == "answer_form_question":
                return await self.answer_form_question(
                    document, args["questionId"], str(args.get("answer", ""))
                )
            elif name == "audit_accessibility":
                return self.audit_accessibility(document)
            else:
                return ToolResult(success=False, message=f"Unknown tool: {name}")
        except VoiceOperatorError as e:
            logger.info("Tool %s failed: %s", name, e)
            return ToolResult(success=False, message=str(e))
        except KeyError as e:
            return ToolResult(success=False, message=f"Missing argument {e.args[0]} for {name}")
