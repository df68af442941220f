"""
Page-Map Extractor.
Walks the document once and produces a bounded structural summary, registering
every referenced element in the Element Registry.
"""

import logging
from urllib.parse import urlparse

from bs4 import Tag

from ..core.config import settings
from ..core.guardrails import RiskPolicy
from ..core.models import (
    ActionInfo,
    ActionState,
    FocusInfo,
    FormFieldInfo,
    HeadingInfo,
    PageMap,
    SectionInfo,
)
from ..utils.hashing import element_id
from . import labels
from .dom import Document, css_path
from .registry import ElementRegistry


logger = logging.getLogger(__name__)

BUTTON_SELECTOR = 'button, [role="button"], input[type="submit"], input[type="button"]'
LINK_SELECTOR = "a[href]"
CHOICE_SELECTOR = (
    'input[type="checkbox"], input[type="radio"], [role="radio"], [role="checkbox"], '
    '[role="switch"], [role="option"], [role="menuitemradio"], [role="menuitemcheckbox"]'
)
TAB_SELECTOR = '[role="tab"]'
FIELD_SELECTOR = (
    'input[type="text"], input[type="email"], input[type="password"], '
    'input[type="tel"], input[type="number"], input[type="search"], '
    'input[type="url"], input[type="date"], input:not([type]), textarea, select'
)
ALERT_SELECTOR = (
    '[role="alert"], [role="status"], [class*="alert"], [class*="notification"], '
    '[class*="error"], [class*="warning"]'
)
CHECKOUT_WORDS = ["checkout", "payment", "billing", "shipping", "order summary"]
LOGIN_WORDS = ["sign in", "log in", "login"]
HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}


def _aria_bool(element: Tag, attr: str) -> bool | None:
    value = element.get(attr)
    if value is None:
        return None
    return value == "true"


class PageMapExtractor:
    """
    Builds PageMaps from a Document.

    The only side effect is registering elements; the same registry is used
    by the executor and the form scanner to resolve identifiers later.
    """

    def __init__(
        self,
        registry: ElementRegistry | None = None,
        policy: RiskPolicy | None = None,
        max_actions: int | None = None,
        max_fields: int | None = None,
        max_sections: int | None = None,
        max_snippet: int | None = None,
    ):
        """
        Initialize extractor.

        Args:
            registry: Element registry to populate (a fresh one if omitted)
            policy: Risk policy used to flag actions
            max_actions: Cap on actions (defaults to config)
            max_fields: Cap on fields (defaults to config)
            max_sections: Cap on sections (defaults to config)
            max_snippet: Cap on section snippet length (defaults to config)
        """
        self.registry = registry or ElementRegistry()
        self.policy = policy or RiskPolicy()
        self.max_actions = max_actions or settings.max_actions
        self.max_fields = max_fields or settings.max_fields
        self.max_sections = max_sections or settings.max_sections
        self.max_snippet = max_snippet or settings.max_snippet_length

    # =========================================================================
    # Public API
    # =========================================================================

    def extract(self, document: Document) -> PageMap:
        """
        Extract a page map.

        Args:
            document: Live document

        Returns:
            Size-capped PageMap
        """
        self.registry.sync_url(document.url)
        page_map = PageMap(
            url=document.url,
            title=document.title or "Untitled Page",
            headings=self.extract_headings(document),
            sections=self.extract_sections(document),
            actions=self.extract_actions(document),
            fields=self.extract_fields(document),
            focus=self.focus_info(document),
            alerts=self.extract_alerts(document),
            has_login=self.detect_login(document),
            has_captcha=self.detect_captcha(document),
            has_checkout=self.detect_checkout(document),
        )
        logger.debug(
            "Extracted %s: %d actions, %d fields, %d sections",
            document.url, len(page_map.actions), len(page_map.fields), len(page_map.sections),
        )
        return page_map

    def find_element(self, document: Document, target_id: str) -> Tag | None:
        """
        Resolve an action/field identifier, re-extracting once on a miss.

        Args:
            document: Live document
            target_id: Action or field identifier

        Returns:
            Element or None
        """
        element = self.registry.resolve(target_id, document)
        if element is not None:
            return element
        logger.info("Cache miss for %s, re-extracting", target_id)
        self.extract_actions(document)
        self.extract_fields(document)
        return self.registry.resolve(target_id, document)

    def identify(self, document: Document, element: Tag, prefix: str, label: str | None = None) -> str:
        """Identifier from accessible name, role and input type."""
        role = element.get("role") or element.name
        if label is None:
            label = labels.accessible_name(element, document)
        return element_id(prefix, role, label, document.input_type(element))

    def register(self, document: Document, element: Tag, prefix: str, scope: str = "") -> str:
        """
        Compute an element's identifier and register it.

        Args:
            document: Document the element belongs to
            element: Element to register
            prefix: Identifier prefix
            scope: Question or group text; options named alike in different
                questions get distinct identifiers
        """
        label = labels.accessible_name(element, document)
        ident = self.identify(document, element, prefix, f"{scope}: {label}" if scope else label)
        self.registry.register(ident, css_path(element, document), element)
        return ident

    # =========================================================================
    # Content
    # =========================================================================

    def extract_headings(self, document: Document) -> list[HeadingInfo]:
        headings = []
        for index, heading in enumerate(document.select('h1, h2, h3, h4, h5, h6, [role="heading"]')):
            text = document.text_content(heading)
            if not text or not document.is_visible(heading, settings.viewport_margin):
                continue
            if heading.name in HEADING_TAGS:
                level = int(heading.name[1])
            else:
                aria_level = heading.get("aria-level", "2")
                level = int(aria_level) if aria_level.isdigit() else 2
            headings.append(HeadingInfo(level=level, text=text[:100], id=f"section_{index}"))
        return headings[:settings.max_headings]

    def extract_sections(self, document: Document) -> list[SectionInfo]:
        sections = []
        for index, heading in enumerate(document.select("h1, h2, h3")):
            heading_text = document.text_content(heading)
            if not heading_text or not document.is_visible(heading, settings.viewport_margin):
                continue
            content = ""
            for sibling in heading.find_next_siblings():
                if sibling.name in ("h1", "h2", "h3"):
                    break
                text = document.visible_text(sibling)
                if text:
                    content += text + " "
                    if len(content) > self.max_snippet:
                        break
            content = content.strip()
            if content:
                sections.append(SectionInfo(
                    id=f"section_{index}",
                    heading=heading_text[:100],
                    snippet=content[:self.max_snippet],
                    level=int(heading.name[1]),
                ))
        return sections[:self.max_sections]

    def extract_alerts(self, document: Document) -> list[str]:
        alerts = []
        for element in document.select(ALERT_SELECTOR):
            text = document.text_content(element)
            if text and len(text) < 200 and document.is_visible(element, settings.viewport_margin):
                alerts.append(text)
        return alerts[:settings.max_alerts]

    # =========================================================================
    # Actions
    # =========================================================================

    def extract_actions(self, document: Document) -> list[ActionInfo]:
        """Buttons, links, choices and tabs, deduplicated by identifier."""
        actions: list[ActionInfo] = []
        seen: set[str] = set()

        def candidates(selector: str, grouped: bool = False):
            for element in document.select(selector):
                if not document.is_visible(element, settings.viewport_margin):
                    continue
                label = labels.accessible_name(element, document)
                if not label:
                    continue
                if grouped:
                    # Choices repeat across questions ("Yes", "No"); the group keeps them apart
                    group = labels.group_label(element, document)
                    label = f"{group}: {label}" if group else label
                ident = self.identify(document, element, "act", label)
                if ident in seen:
                    continue
                seen.add(ident)
                self.registry.register(ident, css_path(element, document), element)
                yield element, ident, label

        for element, ident, label in candidates(BUTTON_SELECTOR):
            actions.append(ActionInfo(
                id=ident,
                role="button",
                label=label,
                state=ActionState(
                    disabled=document.is_disabled(element),
                    expanded=_aria_bool(element, "aria-expanded"),
                ),
                bbox=document.rect(element),
                is_risky=self.policy.is_risky_label(label),
            ))

        for element, ident, label in candidates(LINK_SELECTOR):
            href = document.resolve_url(element["href"])
            parsed = urlparse(href)
            if parsed.scheme in ("http", "https"):
                path = parsed.path[:30] if len(parsed.path) > 1 else ""
                label = f"{label} → {parsed.hostname}{path}"
            actions.append(ActionInfo(
                id=ident,
                role="link",
                label=label,
                bbox=document.rect(element),
                href=href,
            ))

        for element, ident, label in candidates(CHOICE_SELECTOR, grouped=True):
            native = element.name == "input"
            role = element.get("role") or (document.input_type(element) if native else "radio")
            checked = document.is_checked(element) or element.get("aria-selected") == "true"
            actions.append(ActionInfo(
                id=ident,
                role=role,
                label=label,
                state=ActionState(disabled=document.is_disabled(element), checked=checked),
                bbox=document.rect(element),
            ))

        for element, ident, label in candidates(TAB_SELECTOR):
            actions.append(ActionInfo(
                id=ident,
                role="tab",
                label=label,
                state=ActionState(
                    disabled=document.is_disabled(element),
                    selected=element.get("aria-selected") == "true",
                ),
                bbox=document.rect(element),
            ))

        return actions[:self.max_actions]

    # =========================================================================
    # Fields
    # =========================================================================

    def extract_fields(self, document: Document) -> list[FormFieldInfo]:
        fields: list[FormFieldInfo] = []
        seen: set[str] = set()

        for element in document.select(FIELD_SELECTOR):
            if not document.is_visible(element, settings.viewport_margin):
                continue
            ident = self.identify(document, element, "fld")
            if ident in seen:
                continue
            seen.add(ident)
            self.registry.register(ident, css_path(element, document), element)

            options = None
            if element.name == "select":
                options = [document.text_content(o) for o in element.find_all("option")]

            fields.append(FormFieldInfo(
                id=ident,
                type=document.input_type(element) or element.name,
                label=labels.field_label(element, document),
                value=document.get_value(element),
                placeholder=element.get("placeholder") or None,
                required=element.has_attr("required") or element.get("aria-required") == "true",
                disabled=document.is_disabled(element),
                options=options,
                validation_error=self.validation_error(document, element),
                autocomplete=element.get("autocomplete"),
                bbox=document.rect(element),
            ))

        return fields[:self.max_fields]

    def validation_error(self, document: Document, element: Tag) -> str | None:
        error = None
        described_by = element.get("aria-describedby")
        if described_by:
            described = document.get_element_by_id(described_by.split()[0])
            if described is not None:
                error = document.text_content(described) or None
        if element.get("aria-invalid") == "true":
            error = error or "Invalid input"
        return error

    # =========================================================================
    # Focus & Page Type
    # =========================================================================

    def focus_info(self, document: Document) -> FocusInfo | None:
        active = document.active_element
        if active is None or active is document.body or not document.is_connected(active):
            return None
        is_field = active.name in ("input", "textarea", "select")
        role = active.get("role") or active.name
        label = labels.accessible_name(active, document)
        return FocusInfo(
            id=self.identify(document, active, "fld" if is_field else "act", label),
            role=role,
            label=label or "Unknown element",
            type=document.input_type(active) or None,
        )

    def detect_login(self, document: Document) -> bool:
        if document.select_one('input[type="password"]') is None:
            return False
        text = document.visible_text(document.body).lower()
        return any(word in text for word in LOGIN_WORDS)

    def detect_captcha(self, document: Document) -> bool:
        return document.select_one(
            '[class*="captcha"], [id*="captcha"], iframe[src*="recaptcha"]'
        ) is not None

    def detect_checkout(self, document: Document) -> bool:
        text = document.visible_text(document.body).lower()
        if not any(word in text for word in CHECKOUT_WORDS):
            return False
        return (
            document.select_one('input[type="text"][name*="card"]') is not None
            or document.select_one('[class*="payment"]') is not None
        )
