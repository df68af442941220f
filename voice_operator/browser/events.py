"""
Synthetic Input Sequences.
Event sequences that reactive UI frameworks observe the same way as real input.
"""

import asyncio

from bs4 import Tag

from .dom import Document


POINTER_SEQUENCE = ["pointerdown", "mousedown", "pointerup", "mouseup", "click"]


async def settle(ms: int) -> None:
    """Let prior layout or animation finish before the next event."""
    await asyncio.sleep(ms / 1000)


def pointer_click(document: Document, element: Tag) -> None:
    """Fire the full pointer/mouse/click sequence at the element's center."""
    box = document.rect(element)
    if box is not None:
        x, y = box.center
    else:
        x = y = 0.0
    for event_type in POINTER_SEQUENCE:
        document.dispatch(
            element,
            event_type,
            clientX=x - document.scroll_x,
            clientY=y - document.scroll_y,
            pageX=x,
            pageY=y,
            bubbles=True,
            cancelable=True,
        )


def set_text(document: Document, element: Tag, text: str, keyup: bool = False) -> None:
    """Set a value through the native setter, then fire input and change."""
    document.set_value(element, text)
    document.dispatch(element, "input", value=text, bubbles=True)
    document.dispatch(element, "change", value=text, bubbles=True)
    if keyup:
        document.dispatch(element, "keyup", bubbles=True)


def select_value(document: Document, select: Tag, value: str) -> None:
    """Assign a native list control's value and fire change."""
    document.set_value(select, value)
    document.dispatch(select, "change", value=value, bubbles=True)
