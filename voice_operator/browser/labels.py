"""
Label Resolution Strategies.
Ordered lists of small pure functions; the first one returning a non-empty
string names the element.
"""

import re
from typing import Callable
from urllib.parse import urlparse

from bs4 import Tag

from .dom import Document, collapse_ws, humanize


LabelStrategy = Callable[[Tag, Document], str | None]

VISIBLE_TEXT_LIMIT = 150
TRUNCATED_TEXT_LENGTH = 80

GENERIC_PLACEHOLDERS = [
    "your answer", "type here", "enter text", "enter here",
    "type your answer", "your response", "write here",
    "placeholder", "input", "...", "…", "search",
]

# Block-builder prompt artifact: data-params='%.@.[null,["Question text", ...'
DATA_PARAMS_PROMPT = re.compile(r'\[\s*null\s*,\s*\[\s*"([^"]+)"')

QUESTION_TEXT_SELECTOR = (
    'h1, h2, h3, h4, h5, h6, legend, [role="heading"], span[dir], '
    ".freebirdFormviewerComponentsQuestionBaseTitle, "
    ".freebirdFormviewerComponentsQuestionBaseHeader"
)

VALUE_CONTROLS = {"input", "select", "textarea"}


def is_generic_placeholder(text: str) -> bool:
    """True for filler like "Your answer" that does not name a field."""
    lower = text.lower().strip()
    return any(lower in (g, g + "...", g + "…") for g in GENERIC_PLACEHOLDERS)


def _text(element: Tag | None, document: Document) -> str:
    return document.text_content(element) if element is not None else ""


def _strip_value(text: str, element: Tag, document: Document) -> str:
    if document.input_type(element) in ("checkbox", "radio"):
        return text
    value = document.get_value(element) if element.name in VALUE_CONTROLS else ""
    return collapse_ws(text.replace(value, "", 1)) if value else text


# =============================================================================
# Accessible name strategies
# =============================================================================

def from_aria_label(element: Tag, document: Document) -> str | None:
    return (element.get("aria-label") or "").strip() or None


def from_aria_labelledby(element: Tag, document: Document) -> str | None:
    ids = (element.get("aria-labelledby") or "").split()
    parts = [_text(document.get_element_by_id(i), document) for i in ids]
    parts = [p for p in parts if p]
    return " ".join(parts) if parts else None


def from_label_for(element: Tag, document: Document) -> str | None:
    if element.name not in VALUE_CONTROLS or not element.get("id"):
        return None
    label = document.soup.find("label", attrs={"for": element["id"]})
    return _text(label, document) or None


def from_wrapping_label(element: Tag, document: Document) -> str | None:
    if element.name not in VALUE_CONTROLS:
        return None
    label = element.find_parent("label")
    if label is None:
        return None
    return _strip_value(_text(label, document), element, document) or None


def from_title(element: Tag, document: Document) -> str | None:
    return (element.get("title") or "").strip() or None


def from_placeholder(element: Tag, document: Document) -> str | None:
    if element.name not in ("input", "textarea"):
        return None
    return (element.get("placeholder") or "").strip() or None


def from_visible_text(element: Tag, document: Document) -> str | None:
    text = document.visible_text(element)
    if text and len(text) < VISIBLE_TEXT_LIMIT:
        return text
    return None


def from_child_image(element: Tag, document: Document) -> str | None:
    if element.name not in ("a", "button") and element.get("role") != "button":
        return None
    for img in element.find_all("img"):
        alt = (img.get("alt") or "").strip()
        if alt:
            return alt
    svg_title = document.select_one("svg title", element)
    return _text(svg_title, document) or None


def from_image_alt(element: Tag, document: Document) -> str | None:
    if element.name != "img":
        return None
    return (element.get("alt") or "").strip() or None


def from_button_value(element: Tag, document: Document) -> str | None:
    if element.name == "input" and document.input_type(element) in ("submit", "button", "reset"):
        return (element.get("value") or "").strip() or None
    return None


def from_link_path(element: Tag, document: Document) -> str | None:
    """Turn "/education/undergraduate_programs/" into "education / undergraduate programs"."""
    if element.name != "a" or not element.get("href"):
        return None
    path = urlparse(document.resolve_url(element["href"])).path.strip("/")
    segments = [re.sub(r"[-_]", " ", s) for s in path.split("/") if s]
    return " / ".join(segments) or None


def from_truncated_text(element: Tag, document: Document) -> str | None:
    text = document.visible_text(element)
    return text[:TRUNCATED_TEXT_LENGTH] + "…" if text else None


ACCESSIBLE_NAME_STRATEGIES: list[LabelStrategy] = [
    from_aria_label,
    from_aria_labelledby,
    from_label_for,
    from_wrapping_label,
    from_title,
    from_placeholder,
    from_visible_text,
    from_child_image,
    from_image_alt,
    from_button_value,
    from_link_path,
    from_truncated_text,
]


def resolve(element: Tag, document: Document, strategies: list[LabelStrategy]) -> str:
    """Run strategies in order; the first non-empty answer wins."""
    for strategy in strategies:
        label = strategy(element, document)
        if label:
            return label
    return ""


def accessible_name(element: Tag, document: Document) -> str:
    return resolve(element, document, ACCESSIBLE_NAME_STRATEGIES)


# =============================================================================
# Form field strategies
# =============================================================================

def field_aria_label(element: Tag, document: Document) -> str | None:
    label = from_aria_label(element, document)
    return label if label and not is_generic_placeholder(label) else None


def from_data_params(element: Tag, document: Document) -> str | None:
    item = document.closest(element, "[data-params]")
    if item is None:
        return None
    match = DATA_PARAMS_PROMPT.search(item.get("data-params", ""))
    return match.group(1) if match else None


def from_container_heading(element: Tag, document: Document) -> str | None:
    container = document.closest(
        element,
        "[data-item-id], .freebirdFormviewerViewItemsItemItem, .question, "
        '.form-group, .field-group, div[class], section, fieldset, [role="group"]',
    )
    if container is None:
        return None
    for candidate in document.select(QUESTION_TEXT_SELECTOR, container):
        if document.contains(element, candidate):
            continue
        text = _text(candidate, document)
        if text and len(text) < 150 and not is_generic_placeholder(text):
            return text
    return None


def from_table_cell(element: Tag, document: Document) -> str | None:
    cell = document.closest(element, "td, th")
    row = cell.find_parent("tr") if cell is not None else None
    if row is None:
        return None
    for other in row.find_all(["td", "th"]):
        if other is cell:
            continue
        text = document.visible_text(other)
        if text and len(text) < 100:
            return text
    return None


def from_previous_sibling(element: Tag, document: Document) -> str | None:
    prev = element.find_previous_sibling()
    while prev is not None and (prev.name == "br" or document.is_hidden(prev)):
        prev = prev.find_previous_sibling()
    if prev is None:
        return None
    text = document.visible_text(prev)
    if text and len(text) < 100 and not is_generic_placeholder(text):
        return text
    return None


def from_previous_text_node(element: Tag, document: Document) -> str | None:
    for node in element.previous_siblings:
        if isinstance(node, Tag):
            continue
        text = str(node).strip()
        if 1 < len(text) < 100:
            return text
    return None


def _cleaned_container_text(container: Tag, element: Tag, document: Document) -> str:
    text = document.visible_text(container)
    for noise in (element.get("placeholder") or "", document.get_value(element)):
        if noise:
            text = text.replace(noise, "", 1)
    return collapse_ws(text)


def from_parent_text(element: Tag, document: Document) -> str | None:
    parent = element.parent
    if not isinstance(parent, Tag) or parent.name in ("body", "form", "[document]"):
        return None
    text = _cleaned_container_text(parent, element, document)
    if text and len(text) < 100 and not is_generic_placeholder(text):
        return text
    return None


def from_ancestor_text(element: Tag, document: Document) -> str | None:
    ancestor = element.parent
    for _ in range(5):
        if not isinstance(ancestor, Tag) or ancestor is document.soup:
            return None
        text = _cleaned_container_text(ancestor, element, document)
        if 2 < len(text) < 120 and not is_generic_placeholder(text):
            return text
        ancestor = ancestor.parent
    return None


def from_name_attribute(element: Tag, document: Document) -> str | None:
    name = element.get("name")
    return humanize(name) if name else None


FIELD_LABEL_STRATEGIES: list[LabelStrategy] = [
    field_aria_label,
    from_aria_labelledby,
    from_label_for,
    from_wrapping_label,
    from_title,
    from_data_params,
    from_container_heading,
    from_table_cell,
    from_previous_sibling,
    from_previous_text_node,
    from_parent_text,
    from_ancestor_text,
    from_placeholder,
    from_name_attribute,
]


def field_label(element: Tag, document: Document) -> str:
    return resolve(element, document, FIELD_LABEL_STRATEGIES) or "Unlabeled field"


# =============================================================================
# Choice group strategies
# =============================================================================

GROUP_SELECTOR = '[role="radiogroup"], [role="listbox"], [role="group"], fieldset'


def _group(element: Tag, document: Document) -> Tag | None:
    return document.closest(element, GROUP_SELECTOR)


def group_from_aria(element: Tag, document: Document) -> str | None:
    group = _group(element, document)
    if group is None:
        return None
    label = (group.get("aria-label") or "").strip()
    if label:
        return label
    labelled_by = group.get("aria-labelledby")
    if labelled_by:
        text = _text(document.get_element_by_id(labelled_by.split()[0]), document)
        if text:
            return text
    if group.name == "fieldset":
        return _text(group.find("legend"), document) or None
    return None


def group_from_container_heading(element: Tag, document: Document) -> str | None:
    container = document.closest(
        _group(element, document) or element,
        "[data-item-id], .freebirdFormviewerViewItemsItemItem, .question, "
        ".form-group, .field-group, div > div, li",
    )
    if container is None:
        return None
    for candidate in document.select(QUESTION_TEXT_SELECTOR, container):
        text = _text(candidate, document)
        if text and len(text) < 150:
            return text
    return None


def group_from_preceding_text(element: Tag, document: Document) -> str | None:
    group = _group(element, document)
    anchor = group if group is not None else element.parent
    if not isinstance(anchor, Tag):
        return None
    for prev in anchor.find_previous_siblings():
        text = document.visible_text(prev)
        if text and len(text) < 150:
            return text
    return None


GROUP_LABEL_STRATEGIES: list[LabelStrategy] = [
    group_from_aria,
    from_data_params,
    group_from_container_heading,
    group_from_preceding_text,
]


def group_label(element: Tag, document: Document) -> str:
    return resolve(element, document, GROUP_LABEL_STRATEGIES)
