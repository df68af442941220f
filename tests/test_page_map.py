"""Tests for page-map extraction."""

from voice_operator.browser.dom import Document
from voice_operator.browser.page_map import PageMapExtractor


SHOP = """
<html><head><title>Shop</title></head><body>
  <h1>Welcome</h1>
  <p>Great deals today.</p>
  <button>Add to cart</button>
  <button>Submit order</button>
  <button disabled>Sold out</button>
  <button style="display:none">Hidden</button>
  <a href="/about">About us</a>
  <label for="q">Search query</label>
  <input id="q" type="text" value="shoes">
  <select id="size" aria-label="Size"><option>Small</option><option selected>Large</option></select>
  <input type="checkbox" id="gift" name="gift"><label for="gift">Gift wrap</label>
  <div role="alert">Item added</div>
</body></html>
"""


def _by_label(items, label):
    return next(item for item in items if item.label == label)


class TestPageMapExtractor:
    def setup_method(self):
        self.doc = Document(SHOP, url="https://shop.example.com/home")
        self.extractor = PageMapExtractor()
        self.page_map = self.extractor.extract(self.doc)

    def test_title_and_url(self):
        assert self.page_map.title == "Shop"
        assert self.page_map.url == "https://shop.example.com/home"

    def test_buttons(self):
        labels = [a.label for a in self.page_map.actions if a.role == "button"]
        assert labels == ["Add to cart", "Submit order", "Sold out"]

    def test_hidden_elements_are_skipped(self):
        assert all(a.label != "Hidden" for a in self.page_map.actions)

    def test_commit_verbs_are_flagged(self):
        assert _by_label(self.page_map.actions, "Submit order").is_risky
        assert not _by_label(self.page_map.actions, "Add to cart").is_risky

    def test_disabled_state(self):
        assert _by_label(self.page_map.actions, "Sold out").state.disabled

    def test_link_label_includes_destination(self):
        link = next(a for a in self.page_map.actions if a.role == "link")
        assert link.label == "About us → shop.example.com/about"
        assert link.href == "https://shop.example.com/about"

    def test_checkbox_choice(self):
        choice = next(a for a in self.page_map.actions if a.role == "checkbox")
        assert choice.label == "Gift wrap"
        assert choice.state.checked is False

    def test_fields(self):
        query = _by_label(self.page_map.fields, "Search query")
        assert query.type == "text"
        assert query.value == "shoes"

        size = _by_label(self.page_map.fields, "Size")
        assert size.type == "select-one"
        assert size.options == ["Small", "Large"]
        assert size.value == "Large"

    def test_headings_sections_alerts(self):
        assert [(h.level, h.text) for h in self.page_map.headings] == [(1, "Welcome")]
        section = self.page_map.sections[0]
        assert section.id == "section_0"
        assert section.snippet.startswith("Great deals today.")
        assert self.page_map.alerts == ["Item added"]

    def test_ids_are_stable_across_extractions(self):
        again = self.extractor.extract(Document(SHOP, url="https://shop.example.com/home"))
        assert [a.id for a in again.actions] == [a.id for a in self.page_map.actions]
        assert [f.id for f in again.fields] == [f.id for f in self.page_map.fields]

    def test_every_id_resolves(self):
        for item in self.page_map.actions + self.page_map.fields:
            assert self.extractor.find_element(self.doc, item.id) is not None

    def test_prefixes(self):
        assert all(a.id.startswith("act_") for a in self.page_map.actions)
        assert all(f.id.startswith("fld_") for f in self.page_map.fields)

    def test_wire_format_is_camel_case(self):
        wire = self.page_map.wire()
        assert "hasLogin" in wire
        assert "isRisky" in wire["actions"][0]


class TestExtractionLimits:
    def test_duplicate_controls_collapse(self):
        doc = Document("<html><body><button>Next</button><button>Next</button></body></html>")
        page_map = PageMapExtractor().extract(doc)
        assert len(page_map.actions) == 1

    def test_same_choice_in_two_groups_is_kept(self):
        doc = Document(
            "<html><body>"
            '<fieldset><legend>Do you smoke?</legend><label><input type="radio" name="s"> Yes</label></fieldset>'
            '<fieldset><legend>Do you drink?</legend><label><input type="radio" name="d"> Yes</label></fieldset>'
            "</body></html>"
        )
        page_map = PageMapExtractor().extract(doc)
        choices = [a for a in page_map.actions if a.role == "radio"]
        assert [a.label for a in choices] == ["Do you smoke?: Yes", "Do you drink?: Yes"]
        assert choices[0].id != choices[1].id

    def test_action_cap(self):
        buttons = "".join(f"<button>Item {i}</button>" for i in range(10))
        doc = Document(f"<html><body>{buttons}</body></html>")
        page_map = PageMapExtractor(max_actions=3).extract(doc)
        assert [a.label for a in page_map.actions] == ["Item 0", "Item 1", "Item 2"]

    def test_viewport_margin(self):
        doc = Document(
            '<html><body>'
            '<button data-rect="10,10,100,30">Near</button>'
            '<button data-rect="10,5000,100,30">Far</button>'
            '</body></html>',
            viewport=(1280, 800),
        )
        page_map = PageMapExtractor().extract(doc)
        assert [a.label for a in page_map.actions] == ["Near"]
        assert page_map.actions[0].bbox.y == 10


class TestPageHints:
    def test_login(self):
        doc = Document(
            '<html><body><h2>Sign in</h2><input type="email" name="email">'
            '<input type="password" name="password"></body></html>'
        )
        assert PageMapExtractor().extract(doc).has_login

    def test_captcha(self):
        doc = Document('<html><body><div class="g-captcha"></div></body></html>')
        assert PageMapExtractor().extract(doc).has_captcha

    def test_checkout(self):
        doc = Document(
            '<html><body><h1>Payment</h1>'
            '<input type="text" name="card_number"></body></html>'
        )
        assert PageMapExtractor().extract(doc).has_checkout

    def test_focus(self):
        doc = Document('<html><body><input type="search" aria-label="Search site" data-focused="true"></body></html>')
        focus = PageMapExtractor().extract(doc).focus
        assert focus.label == "Search site"
        assert focus.id.startswith("fld_")
        assert focus.type == "search"

    def test_untitled(self):
        assert PageMapExtractor().extract(Document("<html><body></body></html>")).title == "Untitled Page"
