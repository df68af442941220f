"""
Element Registry.
Maps stable element identifiers to a non-owning handle plus a structural locator.
"""

import logging
import weakref
from dataclasses import dataclass

import soupsieve
from bs4 import Tag

from .dom import Document


logger = logging.getLogger(__name__)


@dataclass
class RegistryEntry:
    """Cache entry for one identifier."""
    element_id: str
    locator: str
    ref: weakref.ref

    def element(self) -> Tag | None:
        return self.ref()


class ElementRegistry:
    """
    Identifier -> element cache that survives repeated snapshots of a page.

    Holds only weak references, so removing an element from the document
    lets it be collected. A reclaimed handle and a handle to a detached
    element are treated the same: both fall back to the locator.
    """

    def __init__(self):
        self._entries: dict[str, RegistryEntry] = {}
        self.url: str | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, element_id: str) -> bool:
        return element_id in self._entries

    def ids(self) -> list[str]:
        return list(self._entries)

    def register(self, element_id: str, locator: str, element: Tag) -> None:
        """Store or overwrite an entry."""
        self._entries[element_id] = RegistryEntry(
            element_id=element_id,
            locator=locator,
            ref=weakref.ref(element),
        )

    def resolve(self, element_id: str, document: Document) -> Tag | None:
        """
        Resolve an identifier to a live element.

        Args:
            element_id: Identifier to look up
            document: Document the element must belong to

        Returns:
            The element, or None on a cache miss
        """
        entry = self._entries.get(element_id)
        if entry is None:
            return None

        element = entry.element()
        if element is not None and document.is_connected(element):
            return element

        try:
            element = document.select_one(entry.locator)
        except soupsieve.SelectorSyntaxError:
            logger.debug("Bad locator for %s: %s", element_id, entry.locator)
            element = None

        if element is None:
            logger.debug("Registry miss for %s", element_id)
            return None

        entry.ref = weakref.ref(element)
        return element

    def sync_url(self, url: str) -> None:
        """Discard all entries when the tab has navigated to a new page."""
        if self.url is not None and url != self.url:
            logger.debug("Navigation %s -> %s, clearing %d entries", self.url, url, len(self._entries))
            self._entries.clear()
        self.url = url

    def clear(self) -> None:
        self._entries.clear()
