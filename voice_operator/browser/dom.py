"""
Live Document Model.
A mutable HTML tree with the browser facilities the page-side components need:
visibility, geometry, focus, values, event dispatch and navigation.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import urljoin, urlparse

import soupsieve
from bs4 import BeautifulSoup, NavigableString, Tag

from ..core.models import BoundingBox


logger = logging.getLogger(__name__)

# Subtrees never contributing visible text
SKIP_TEXT_TAGS = {"style", "script", "noscript", "svg", "template", "link", "head", "title"}

# Tags that never render
NON_RENDERED_TAGS = {"script", "style", "template", "head", "meta", "link", "noscript", "title"}

FORM_CONTROL_TAGS = {"input", "select", "textarea", "button"}

# Synthetic flow layout for documents without measured geometry
FLOW_ROW_HEIGHT = 24
FLOW_BOX_HEIGHT = 20
FLOW_BOX_WIDTH = 200


@dataclass
class DomEvent:
    """A dispatched event, kept so a browser driver can replay it."""
    type: str
    target: Tag | None
    selector: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


EventListener = Callable[[DomEvent], None]


def css_escape(ident: str) -> str:
    """Escape a string for use as a CSS identifier."""
    out = []
    for i, ch in enumerate(ident):
        if (ch.isascii() and ch.isalnum()) or ch in "-_" or ord(ch) >= 0x80:
            if i == 0 and ch.isdigit():
                out.append(f"\\{ord(ch):x} ")
            else:
                out.append(ch)
        else:
            out.append("\\" + ch)
    return "".join(out)


def collapse_ws(text: str) -> str:
    return " ".join(text.split())


def parse_style(value: str | None) -> dict[str, str]:
    """Parse an inline style attribute into a property map."""
    styles: dict[str, str] = {}
    if not value:
        return styles
    for declaration in value.split(";"):
        if ":" not in declaration:
            continue
        name, _, val = declaration.partition(":")
        styles[name.strip().lower()] = val.strip().lower()
    return styles


class Document:
    """
    Mutable page document.

    Geometry comes from `data-rect="x,y,width,height"` annotations in page
    coordinates (written by the browser driver). A document without any
    annotation gets a synthetic top-to-bottom flow layout and skips the
    viewport-margin check.
    """

    def __init__(
        self,
        html: str,
        url: str = "about:blank",
        viewport: tuple[int, int] = (1280, 800),
        scroll: tuple[float, float] = (0, 0),
        history_length: int = 1,
        scroll_height: float | None = None,
    ):
        """
        Initialize document.

        Args:
            html: Page markup
            url: Current location
            viewport: Viewport (width, height) in pixels
            scroll: Current (x, y) scroll offset
            history_length: Number of entries in the session history
            scroll_height: Total scrollable height, if known
        """
        self.soup = BeautifulSoup(html, "html.parser")
        self.url = url
        self.viewport_width, self.viewport_height = viewport
        self.scroll_x, self.scroll_y = scroll
        self.history_length = history_length
        self._back_stack: list[str] = []
        self._scroll_height = scroll_height

        self.events: list[DomEvent] = []
        self._listeners: list[tuple[str, Tag | None, EventListener]] = []

        self.has_layout = self.soup.find(attrs={"data-rect": True}) is not None
        self._order: dict[int, int] | None = None

        self.active_element: Tag | None = (
            self.soup.find(attrs={"data-focused": "true"})
            or self.soup.find(attrs={"autofocus": True})
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def title(self) -> str:
        if self.soup.title and self.soup.title.string:
            return self.soup.title.string.strip()
        return ""

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    @property
    def hostname(self) -> str:
        return urlparse(self.url).hostname or ""

    def select(self, css: str, root: Tag | None = None) -> list[Tag]:
        return (root or self.soup).select(css)

    def select_one(self, css: str, root: Tag | None = None) -> Tag | None:
        return (root or self.soup).select_one(css)

    def get_element_by_id(self, element_id: str) -> Tag | None:
        return self.soup.find(id=element_id)

    def is_connected(self, element: Tag) -> bool:
        """True if the element is still attached to this document."""
        node = element
        while node is not None:
            if node is self.soup:
                return True
            node = node.parent
        return False

    def contains(self, ancestor: Tag, element: Tag) -> bool:
        node = element
        while node is not None:
            if node is ancestor:
                return True
            node = node.parent
        return False

    def closest(self, element: Tag, css: str) -> Tag | None:
        """Nearest ancestor-or-self matching a selector."""
        node = element
        while isinstance(node, Tag) and node is not self.soup:
            if node.name != "[document]" and _matches(node, css):
                return node
            node = node.parent
        return None

    def position(self, element: Tag) -> int:
        """Document-order index of an element."""
        if self._order is None or id(element) not in self._order:
            self._order = {id(tag): i for i, tag in enumerate(self.soup.find_all(True))}
        return self._order.get(id(element), len(self._order))

    def remove(self, element: Tag) -> None:
        """Detach an element from the document."""
        element.extract()
        self._order = None
        if self.active_element is not None and not self.is_connected(self.active_element):
            self.active_element = None

    # =========================================================================
    # Text
    # =========================================================================

    def text_content(self, element: Tag) -> str:
        """All descendant text, whitespace collapsed."""
        return collapse_ws(element.get_text(" "))

    def visible_text(self, element: Tag) -> str:
        """Descendant text excluding style/script subtrees and hidden nodes."""
        parts = []
        for node in element.descendants:
            if type(node) is not NavigableString:
                continue
            parent = node.parent
            skip = False
            while parent is not None and parent is not element.parent:
                if parent.name in SKIP_TEXT_TAGS or self._hidden_self(parent):
                    skip = True
                    break
                parent = parent.parent
            if not skip:
                parts.append(str(node))
        return collapse_ws(" ".join(parts))

    # =========================================================================
    # Visibility & Geometry
    # =========================================================================

    def _hidden_self(self, element: Tag) -> bool:
        if element.name in NON_RENDERED_TAGS:
            return True
        if element.has_attr("hidden") or element.get("data-hidden") == "true":
            return True
        if element.name == "input" and (element.get("type") or "").lower() == "hidden":
            return True
        style = parse_style(element.get("style"))
        if style.get("display") == "none" or style.get("visibility") in ("hidden", "collapse"):
            return True
        return style.get("opacity", "1").strip() in ("0", "0.0")

    def is_hidden(self, element: Tag) -> bool:
        """Computed hidden state (self or any ancestor)."""
        node = element
        while isinstance(node, Tag) and node is not self.soup:
            if self._hidden_self(node):
                return True
            node = node.parent
        return False

    def rect(self, element: Tag) -> BoundingBox | None:
        """Bounding box in page coordinates, or None when not rendered."""
        raw = element.get("data-rect")
        if raw:
            try:
                x, y, w, h = (float(v) for v in raw.split(","))
            except ValueError:
                return None
            return BoundingBox(x=x, y=y, width=w, height=h)
        if self.has_layout:
            return None
        return BoundingBox(
            x=0,
            y=self.position(element) * FLOW_ROW_HEIGHT,
            width=FLOW_BOX_WIDTH,
            height=FLOW_BOX_HEIGHT,
        )

    def is_rendered(self, element: Tag) -> bool:
        """Not hidden and non-zero size, regardless of scroll position."""
        if self.is_hidden(element):
            return False
        box = self.rect(element)
        return box is not None and box.width > 0 and box.height > 0

    def is_visible(self, element: Tag, margin: float = 500) -> bool:
        """
        Visible if not hidden, non-zero size and vertically within a
        margin of the viewport.
        """
        if self.is_hidden(element):
            return False
        box = self.rect(element)
        if box is None or box.width == 0 or box.height == 0:
            return False
        if not self.has_layout:
            return True
        top = box.y - self.scroll_y
        bottom = top + box.height
        return bottom > -margin and top < self.viewport_height + margin

    @property
    def scroll_height(self) -> float:
        if self._scroll_height is not None:
            return self._scroll_height
        bottom = float(self.viewport_height)
        for tag in self.soup.find_all(True):
            box = self.rect(tag)
            if box is not None:
                bottom = max(bottom, box.y + box.height)
        return bottom

    # =========================================================================
    # Form State
    # =========================================================================

    def is_disabled(self, element: Tag) -> bool:
        if element.has_attr("disabled") or element.get("aria-disabled") == "true":
            return True
        fieldset = self.closest(element, "fieldset[disabled]")
        return fieldset is not None and element.name in FORM_CONTROL_TAGS

    def is_readonly(self, element: Tag) -> bool:
        return element.has_attr("readonly") or element.get("aria-readonly") == "true"

    def input_type(self, element: Tag) -> str:
        if element.name == "input":
            return (element.get("type") or "text").lower()
        if element.name == "textarea":
            return "textarea"
        if element.name == "select":
            return "select-multiple" if element.has_attr("multiple") else "select-one"
        if element.name == "button":
            return (element.get("type") or "submit").lower()
        return ""

    def get_value(self, element: Tag) -> str:
        """Current value of a form control."""
        if element.name == "textarea":
            return element.get_text()
        if element.name == "select":
            option = self.selected_option(element)
            if option is None:
                return ""
            return option.get("value", self.text_content(option))
        return element.get("value", "")

    def set_value(self, element: Tag, value: str) -> None:
        """Native value setter: changes the value without firing events."""
        if element.name == "textarea":
            element.string = value
        elif element.name == "select":
            for option in element.find_all("option"):
                opt_value = option.get("value", self.text_content(option))
                if opt_value == value:
                    option["selected"] = ""
                elif option.has_attr("selected"):
                    del option["selected"]
        else:
            element["value"] = value

    def selected_option(self, select: Tag) -> Tag | None:
        options = select.find_all("option")
        for option in options:
            if option.has_attr("selected"):
                return option
        return options[0] if options and not select.has_attr("multiple") else None

    def is_checked(self, element: Tag) -> bool:
        if element.name == "input":
            return element.has_attr("checked")
        return element.get("aria-checked") == "true"

    def set_checked(self, element: Tag, checked: bool) -> None:
        if element.name == "input":
            if checked:
                element["checked"] = ""
            elif element.has_attr("checked"):
                del element["checked"]
        else:
            element["aria-checked"] = "true" if checked else "false"

    # =========================================================================
    # Events
    # =========================================================================

    def add_event_listener(
        self,
        event_type: str,
        listener: EventListener,
        target: Tag | None = None,
    ) -> None:
        """Register a listener; with a target it sees events bubbling from inside it."""
        self._listeners.append((event_type, target, listener))

    def dispatch(self, element: Tag, event_type: str, **detail: Any) -> DomEvent:
        """
        Dispatch an event at an element.

        Listeners run first; default actions (checkbox toggle, radio
        selection, label activation) run unless a listener prevented them.
        Events fired by a default action carry `default_action=True`.
        """
        event = DomEvent(
            type=event_type,
            target=element,
            selector=css_path(element, self),
            detail=detail,
        )
        self.events.append(event)
        for listened_type, target, listener in list(self._listeners):
            if listened_type != event_type:
                continue
            if target is None or self.contains(target, element):
                listener(event)
        if event_type == "click" and not event.default_prevented:
            self._default_click(element)
        return event

    def _default_click(self, element: Tag) -> None:
        if self.is_disabled(element):
            return
        if element.name == "input":
            input_type = self.input_type(element)
            if input_type == "checkbox":
                self.set_checked(element, not self.is_checked(element))
                self.dispatch(element, "input", default_action=True)
                self.dispatch(element, "change", default_action=True)
            elif input_type == "radio" and not self.is_checked(element):
                name = element.get("name")
                if name:
                    scope = self.closest(element, "form") or self.soup
                    for other in scope.find_all("input", attrs={"type": "radio", "name": name}):
                        if other is not element:
                            self.set_checked(other, False)
                self.set_checked(element, True)
                self.dispatch(element, "input", default_action=True)
                self.dispatch(element, "change", default_action=True)
        elif element.name == "label":
            control = label_control(element, self)
            if control is not None:
                self.dispatch(control, "click", default_action=True)

    def focus(self, element: Tag) -> None:
        previous = self.active_element
        if previous is element:
            return
        if previous is not None and self.is_connected(previous):
            self.dispatch(previous, "blur")
        self.active_element = element
        self.dispatch(element, "focus")

    # =========================================================================
    # Scrolling & Navigation
    # =========================================================================

    def scroll_to(self, y: float) -> None:
        max_y = max(0.0, self.scroll_height - self.viewport_height)
        self.scroll_y = min(max(0.0, y), max_y)
        self.events.append(DomEvent(type="scroll", target=None, detail={"y": self.scroll_y}))

    def scroll_by(self, dy: float) -> None:
        self.scroll_to(self.scroll_y + dy)

    def scroll_into_view(self, element: Tag) -> None:
        """Center the element vertically in the viewport."""
        box = self.rect(element)
        if box is not None and self.has_layout:
            self.scroll_y = max(0.0, box.y + box.height / 2 - self.viewport_height / 2)
        self.events.append(DomEvent(
            type="scrollintoview",
            target=element,
            selector=css_path(element, self),
            detail={"y": self.scroll_y},
        ))

    def resolve_url(self, url: str) -> str:
        return urljoin(self.url, url)

    def navigate(self, url: str) -> None:
        """Assign a new location (already resolved)."""
        self._back_stack.append(self.url)
        self.history_length += 1
        self.url = url
        self.events.append(DomEvent(type="navigate", target=None, detail={"url": url}))

    def go_back(self) -> bool:
        """Go back one history entry. Returns False if there is none."""
        if self.history_length <= 1:
            return False
        self.history_length -= 1
        if self._back_stack:
            self.url = self._back_stack.pop()
        self.events.append(DomEvent(type="history_back", target=None))
        return True

    def drain_events(self) -> list[DomEvent]:
        """Return and clear the recorded events."""
        events, self.events = self.events, []
        return events


# =============================================================================
# Helpers
# =============================================================================

def _matches(element: Tag, css: str) -> bool:
    return soupsieve.match(css, element)


def label_control(label: Tag, document: Document) -> Tag | None:
    """The form control a <label> activates."""
    target_id = label.get("for")
    if target_id:
        return document.get_element_by_id(target_id)
    return label.find(["input", "select", "textarea", "button"])


def css_path(element: Tag, document: Document) -> str:
    """
    Structural locator for an element.

    `#id` when the element has an id; otherwise a child-combinator path from
    body (or the nearest ancestor with an id) using the tag, up to two
    classes and :nth-of-type when same-tag siblings exist.
    """
    element_id = element.get("id")
    if element_id:
        return f"#{css_escape(element_id)}"

    path = []
    node = element
    body = document.body
    while isinstance(node, Tag) and node is not body and node is not document.soup:
        if node.get("id"):
            path.insert(0, f"#{css_escape(node['id'])}")
            return " > ".join(path)
        selector = node.name
        classes = [c for c in (node.get("class") or []) if c][:2]
        if classes:
            selector += "".join(f".{css_escape(c)}" for c in classes)
        parent = node.parent
        if isinstance(parent, Tag):
            siblings = parent.find_all(node.name, recursive=False)
            if len(siblings) > 1:
                index = next(i for i, s in enumerate(siblings) if s is node) + 1
                selector += f":nth-of-type({index})"
        path.insert(0, selector)
        node = parent
    if node is body and body is not document.soup:
        path.insert(0, "body")
    return " > ".join(path)


def humanize(name: str) -> str:
    """Turn an attribute like `first_name` or `firstName` into `first name`."""
    spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", name)
    spaced = re.sub(r"[\[\]_\-.]+", " ", spaced)
    return collapse_ws(spaced).lower()
