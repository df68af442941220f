"""Tests for form scanning and answering."""

import pytest

from voice_operator.browser.dom import Document
from voice_operator.browser.form_scanner import FormScanner, match_option, question_id
from voice_operator.browser.page_map import PageMapExtractor
from voice_operator.core.errors import AmbiguousMatchError, QuestionNotFoundError
from voice_operator.core.models import FormOption, FormQuestion, FormScanResult


SURVEY = """
<html><head><title>Survey</title></head><body>
<form>
  <label for="email">Email</label>
  <input id="email" type="email" name="email" required>
  <fieldset>
    <legend>Favorite color</legend>
    <label><input type="radio" name="color" value="red"> Red</label>
    <label><input type="radio" name="color" value="blue" checked> Blue</label>
  </fieldset>
  <fieldset>
    <legend>Toppings</legend>
    <label><input type="checkbox" name="t" value="cheese"> Cheese</label>
    <label><input type="checkbox" name="t" value="ham" checked> Ham</label>
    <label><input type="checkbox" name="t" value="olives"> Olives</label>
  </fieldset>
  <label for="country">Country</label>
  <select id="country">
    <option value="">Choose</option>
    <option value="fr">France</option>
    <option value="de">Germany</option>
  </select>
  <button type="submit">Submit</button>
</form>
</body></html>
"""

BLOCK_FORM = """
<html><head><title>Party RSVP - Google Forms</title></head><body>
<form action="https://docs.google.com/forms/d/e/abc/formResponse">
  <div data-params='%.@.[null,["Your name",null,0]]'>
    <span aria-label="Required question">*</span>
    <input type="text" value="">
  </div>
  <div data-params='%.@.[null,["Will you attend?",null,0]]'>
    <div role="radio" aria-label="Yes" aria-checked="false"></div>
    <div role="radio" aria-label="No" aria-checked="true"></div>
  </div>
  <div data-params='%.@.[null,["How excited are you?",null,0]]'>
    <div role="radio" aria-label="1" aria-checked="false"></div>
    <div role="radio" aria-label="2" aria-checked="false"></div>
    <div role="radio" aria-label="3" aria-checked="false"></div>
  </div>
  <div role="button" aria-label="Submit">Submit</div>
</form>
</body></html>
"""


def _question(scan, text):
    return next(q for q in scan.questions if q.question_text == text)


# =========================================================================
# Generic forms
# =========================================================================


class TestGenericScan:
    def setup_method(self):
        self.doc = Document(SURVEY, url="https://example.com/survey")
        self.scanner = FormScanner(PageMapExtractor())
        self.scan = self.scanner.scan(self.doc)

    def test_questions_in_document_order(self):
        assert [q.question_text for q in self.scan.questions] == [
            "Email", "Favorite color", "Toppings", "Country",
        ]

    def test_counts(self):
        assert self.scan.total_questions == 4
        # Favorite color, Toppings and Country (first option selected by default)
        assert self.scan.answered_questions == 3

    def test_text_question(self):
        email = _question(self.scan, "Email")
        assert email.type == "short_text"
        assert email.required
        assert email.field_id.startswith("fld_")
        assert email.question_id == question_id("Email")

    def test_radio_question(self):
        color = _question(self.scan, "Favorite color")
        assert color.type == "radio"
        assert [o.label for o in color.options] == ["Red", "Blue"]
        assert color.current_answer == "Blue"

    def test_checkbox_question(self):
        toppings = _question(self.scan, "Toppings")
        assert toppings.type == "checkbox"
        assert [o.selected for o in toppings.options] == [False, True, False]

    def test_select_question(self):
        country = _question(self.scan, "Country")
        assert country.type == "select"
        assert [o.label for o in country.options] == ["Choose", "France", "Germany"]

    def test_submit_registered(self):
        assert self.scan.submit_action_id
        submit = self.scanner.extractor.find_element(self.doc, self.scan.submit_action_id)
        assert submit.name == "button"

    def test_wire_keys(self):
        wire = self.scan.wire()
        assert wire["totalQuestions"] == 4
        assert "questionText" in wire["questions"][0]


class TestEmailAndColorForm:
    def test_one_of_two_answered(self):
        doc = Document(
            "<html><body><form>"
            '<label for="e">Email</label><input id="e" type="email" required>'
            "<fieldset><legend>Favorite color</legend>"
            '<label><input type="radio" name="c"> Red</label>'
            '<label><input type="radio" name="c" checked> Blue</label>'
            "</fieldset></form></body></html>"
        )
        scan = FormScanner(PageMapExtractor()).scan(doc)
        assert scan.total_questions == 2
        assert scan.answered_questions == 1
        assert _question(scan, "Favorite color").current_answer == "Blue"


class TestAnswering:
    def setup_method(self):
        self.doc = Document(SURVEY, url="https://example.com/survey")
        self.scanner = FormScanner(PageMapExtractor())
        self.scan = self.scanner.scan(self.doc)

    async def test_text_answer_by_id(self):
        email = _question(self.scan, "Email")
        result = await self.scanner.answer(self.doc, email.question_id, "a@b.com")
        assert result.success
        assert result.message == 'Typed "a@b.com" for question "Email"'
        assert self.doc.select_one("#email")["value"] == "a@b.com"
        assert [e.type for e in self.doc.events if e.type in ("input", "change", "keyup")] == [
            "input", "change", "keyup",
        ]

    async def test_radio_answer_by_text(self):
        result = await self.scanner.answer(self.doc, "favorite color", "red")
        assert result.success
        red, blue = self.doc.select('input[name="color"]')
        assert red.has_attr("checked")
        assert not blue.has_attr("checked")

    async def test_unknown_option_lists_available(self):
        result = await self.scanner.answer(self.doc, "Favorite color", "green")
        assert not result.success
        assert "Available: Red, Blue" in result.message

    async def test_checkbox_multi_answer(self):
        result = await self.scanner.answer(self.doc, "Toppings", "Cheese, Ham")
        assert result.success
        assert 'Selected "Cheese"' in result.message
        assert '"Ham" already selected' in result.message
        cheese, ham, olives = self.doc.select('input[name="t"]')
        assert cheese.has_attr("checked")
        assert ham.has_attr("checked")
        assert not olives.has_attr("checked")

    async def test_select_answer(self):
        result = await self.scanner.answer(self.doc, "Country", "germany")
        assert result.success
        assert self.doc.get_value(self.doc.select_one("#country")) == "de"

    async def test_unknown_question(self):
        result = await self.scanner.answer(self.doc, "Phone number", "555")
        assert not result.success
        assert result.message.startswith('Could not find question "Phone number"')
        assert "Favorite color" in result.message


class TestRepeatedOptionLabels:
    def setup_method(self):
        self.doc = Document(
            "<html><body><form>"
            "<fieldset><legend>Do you smoke?</legend>"
            '<label><input type="radio" name="smoke" value="y"> Yes</label>'
            '<label><input type="radio" name="smoke" value="n"> No</label>'
            "</fieldset>"
            "<fieldset><legend>Do you drink?</legend>"
            '<label><input type="radio" name="drink" value="y"> Yes</label>'
            '<label><input type="radio" name="drink" value="n"> No</label>'
            "</fieldset></form></body></html>"
        )
        self.scanner = FormScanner(PageMapExtractor())
        self.scan = self.scanner.scan(self.doc)

    def test_option_ids_differ_per_question(self):
        smoke = _question(self.scan, "Do you smoke?")
        drink = _question(self.scan, "Do you drink?")
        smoke_ids = {o.id for o in smoke.options}
        drink_ids = {o.id for o in drink.options}
        assert len(smoke_ids) == 2
        assert not smoke_ids & drink_ids

    async def test_answer_changes_only_its_question(self):
        result = await self.scanner.answer(self.doc, "Do you smoke?", "Yes")
        assert result.success
        smoke_yes = self.doc.select_one('input[name="smoke"][value="y"]')
        drink_yes = self.doc.select_one('input[name="drink"][value="y"]')
        assert self.doc.is_checked(smoke_yes)
        assert not self.doc.is_checked(drink_yes)


# =========================================================================
# Block-structured forms
# =========================================================================


class TestBlockForm:
    def setup_method(self):
        self.doc = Document(BLOCK_FORM, url="https://docs.google.com/forms/d/e/abc/viewform")
        self.scanner = FormScanner(PageMapExtractor())
        self.scan = self.scanner.scan(self.doc)

    def test_detected_as_block_form(self):
        assert self.scanner.is_block_form(self.doc)

    def test_title_drops_provider_suffix(self):
        assert self.scan.form_title == "Party RSVP"

    def test_question_types(self):
        assert [(q.question_text, q.type) for q in self.scan.questions] == [
            ("Your name", "short_text"),
            ("Will you attend?", "radio"),
            ("How excited are you?", "linear_scale"),
        ]

    def test_required_marker(self):
        assert _question(self.scan, "Your name").required

    def test_aria_radio_answer(self):
        assert _question(self.scan, "Will you attend?").current_answer == "No"

    def test_submit_found(self):
        assert self.scan.submit_action_id

    async def test_answer_clicks_aria_radio(self):
        result = await self.scanner.answer(self.doc, "Will you attend?", "yes")
        assert result.success
        yes = self.doc.select_one('[aria-label="Yes"]')
        clicks = [e for e in self.doc.events if e.type == "click"]
        assert clicks and clicks[-1].target is yes


# =========================================================================
# Matching
# =========================================================================


class TestMatching:
    def setup_method(self):
        self.scanner = FormScanner(PageMapExtractor())
        self.scan = FormScanResult(
            form_title="Addresses",
            questions=[
                FormQuestion(question_id="q_home", question_text="Home address"),
                FormQuestion(question_id="q_work", question_text="Work address"),
            ],
        )

    def test_by_id(self):
        assert self.scanner.find_question(self.scan, "q_work").question_text == "Work address"

    def test_by_fuzzy_text(self):
        assert self.scanner.find_question(self.scan, "home").question_id == "q_home"

    def test_ambiguous(self):
        with pytest.raises(AmbiguousMatchError) as exc:
            self.scanner.find_question(self.scan, "address")
        assert exc.value.candidates == ["Home address", "Work address"]

    def test_not_found(self):
        with pytest.raises(QuestionNotFoundError):
            self.scanner.find_question(self.scan, "phone")

    def test_option_exact_before_substring(self):
        options = [FormOption(id="a", label="Yes, definitely"), FormOption(id="b", label="Yes")]
        assert match_option(options, "yes").id == "b"
        assert match_option(options, "definitely").id == "a"
        assert match_option(options, "") is None
