"""Tests for the element registry and structural locators."""

from voice_operator.browser.dom import Document, css_path
from voice_operator.browser.registry import ElementRegistry


PAGE = """
<html><body>
  <button id="go">Go</button>
  <div class="toolbar main">
    <button>Save</button>
    <button>Share</button>
  </div>
</body></html>
"""


class TestCssPath:
    def test_id_wins(self):
        doc = Document(PAGE)
        assert css_path(doc.select_one("#go"), doc) == "#go"

    def test_path_uses_classes_and_nth_of_type(self):
        doc = Document(PAGE)
        share = doc.select("div button")[1]
        path = css_path(share, doc)
        assert path == "body > div.toolbar.main > button:nth-of-type(2)"
        assert doc.select_one(path) is share

    def test_escapes_leading_digit_ids(self):
        doc = Document('<html><body><input id="1st"></body></html>')
        element = doc.select_one("input")
        assert doc.select_one(css_path(element, doc)) is element


class TestElementRegistry:
    def setup_method(self):
        self.doc = Document(PAGE, url="https://example.com/")
        self.registry = ElementRegistry()
        self.button = self.doc.select_one("#go")
        self.registry.register("act_go", css_path(self.button, self.doc), self.button)

    def test_resolve_returns_same_element(self):
        first = self.registry.resolve("act_go", self.doc)
        second = self.registry.resolve("act_go", self.doc)
        assert first is self.button
        assert second is first

    def test_unknown_id_misses(self):
        assert self.registry.resolve("act_nope", self.doc) is None

    def test_detached_element_falls_back_to_locator(self):
        replacement = self.doc.soup.new_tag("button", id="go")
        replacement.string = "Go"
        self.button.replace_with(replacement)

        assert self.registry.resolve("act_go", self.doc) is replacement

    def test_new_snapshot_resolves_through_locator(self):
        fresh = Document(PAGE, url="https://example.com/")
        resolved = self.registry.resolve("act_go", fresh)
        assert resolved is fresh.select_one("#go")
        assert resolved is not self.button

    def test_removed_element_misses(self):
        self.doc.remove(self.button)
        assert self.registry.resolve("act_go", self.doc) is None

    def test_sync_url_clears_on_navigation(self):
        self.registry.sync_url("https://example.com/")
        assert len(self.registry) == 1

        self.registry.sync_url("https://example.com/")
        assert "act_go" in self.registry

        self.registry.sync_url("https://example.com/next")
        assert len(self.registry) == 0
