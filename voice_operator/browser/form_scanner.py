"""
Form Scanner.
Groups low-level controls into semantic questions and answers them.
"""

import logging
import re

from bs4 import Tag

from ..core.config import settings
from ..core.errors import (
    AmbiguousMatchError,
    ElementNotFoundError,
    QuestionNotFoundError,
    VoiceOperatorError,
)
from ..core.models import (
    FormOption,
    FormQuestion,
    FormScanResult,
    TEXT_QUESTION_TYPES,
    ToolResult,
)
from ..utils.hashing import short_hash
from . import labels
from .dom import Document, humanize
from .events import pointer_click, select_value, set_text, settle
from .page_map import PageMapExtractor


logger = logging.getLogger(__name__)

BLOCK_FORM_SELECTOR = 'form[action*="formResponse"], [data-params], .freebirdFormviewerViewItemList'
BLOCK_CONTAINERS = (
    "[data-params], .freebirdFormviewerViewNumberedItemContainer, "
    ".freebirdFormviewerViewItemsItemItem"
)
BLOCK_HEADER = ".freebirdFormviewerViewHeaderHeader"
BLOCK_SUBMIT = '[type="submit"], [jsname="M2UYVd"], [aria-label="Submit"]'

GROUP_CONTAINERS = (
    'fieldset, [role="group"], [role="radiogroup"], .form-group, .field-group, '
    ".form-field, .question"
)
STANDALONE_INPUTS = (
    'input[type="text"], input[type="email"], input[type="password"], input[type="tel"], '
    'input[type="number"], input[type="search"], input[type="url"], input[type="date"], '
    'input[type="time"], input:not([type]), textarea, select'
)
GENERIC_SUBMIT = '[type="submit"], button:not([type="button"]), input[type="submit"]'

RADIO_SELECTOR = '[role="radio"], input[type="radio"]'
CHECKBOX_SELECTOR = '[role="checkbox"], input[type="checkbox"]'

TRAILING_PROVIDER = re.compile(r"\s+-\s+Google Forms$")


def question_id(text: str) -> str:
    return f"q_{short_hash(text)}"


def match_option(options: list[FormOption], answer: str) -> FormOption | None:
    """Exact case-insensitive match first, then substring either way."""
    wanted = answer.lower().strip()
    if not wanted:
        return None
    normalized = [(option, option.label.lower().strip()) for option in options]
    for option, label in normalized:
        if label == wanted:
            return option
    for option, label in normalized:
        if label and (wanted in label or label in wanted):
            return option
    return None


class FormScanner:
    """
    Form question scanner.

    Uses the extractor's registry so option and field identifiers resolve
    through the same path as page-map actions.
    """

    def __init__(self, extractor: PageMapExtractor):
        """
        Initialize scanner.

        Args:
            extractor: Page-map extractor whose registry is shared
        """
        self.extractor = extractor

    @property
    def registry(self):
        return self.extractor.registry

    # =========================================================================
    # Scanning
    # =========================================================================

    def is_block_form(self, document: Document) -> bool:
        """Whether the document is a block-structured form builder page."""
        return document.select_one(BLOCK_FORM_SELECTOR) is not None

    def scan(self, document: Document) -> FormScanResult:
        """
        Scan the form on the page.

        Args:
            document: Live document

        Returns:
            Questions with their current answers
        """
        self.registry.sync_url(document.url)
        if self.is_block_form(document):
            result = self._scan_blocks(document)
        else:
            result = self._scan_generic(document)
        result.total_questions = len(result.questions)
        result.answered_questions = sum(
            1 for q in result.questions
            if q.current_answer or any(o.selected for o in q.options or [])
        )
        logger.debug(
            "Scanned form %r: %d questions, %d answered",
            result.form_title, result.total_questions, result.answered_questions,
        )
        return result

    def _scan_blocks(self, document: Document) -> FormScanResult:
        result = FormScanResult(form_title="")
        header = document.select_one(BLOCK_HEADER)
        if header is not None:
            heading = document.select_one('[role="heading"], h1, .freebirdFormviewerViewHeaderTitle', header)
            result.form_title = document.text_content(heading) if heading is not None else ""
            description = document.select_one(".freebirdFormviewerViewHeaderDescription", header)
            result.form_description = document.text_content(description) if description is not None else ""
        if not result.form_title:
            result.form_title = TRAILING_PROVIDER.sub("", document.title).strip()

        processed: list[Tag] = []
        for container in document.select(BLOCK_CONTAINERS):
            if any(document.contains(p, container) for p in processed):
                continue
            if document.closest(container, BLOCK_HEADER) is not None:
                continue
            question = self._parse_block(document, container)
            if question is not None:
                result.questions.append(question)
                processed.append(container)

        submit = document.select_one(BLOCK_SUBMIT)
        if submit is not None:
            result.submit_action_id = self.extractor.register(document, submit, "act")
        return result

    def _block_prompt(self, document: Document, container: Tag) -> str:
        match = labels.DATA_PARAMS_PROMPT.search(container.get("data-params", ""))
        if match:
            return match.group(1)
        title = document.select_one(
            '[role="heading"], .freebirdFormviewerComponentsQuestionBaseTitle, '
            ".freebirdFormviewerComponentsQuestionBaseHeader span[dir]",
            container,
        )
        if title is not None and document.text_content(title):
            return document.text_content(title)
        for candidate in container.find_all(["span", "div"]):
            text = document.text_content(candidate)
            if 2 < len(text) < 200 and text not in ("Required", "*"):
                return text
        return ""

    def _parse_block(self, document: Document, container: Tag) -> FormQuestion | None:
        text = self._block_prompt(document, container)
        if not text:
            return None
        required = document.select_one(
            '[aria-label*="Required"], .freebirdFormviewerComponentsQuestionBaseRequiredAsterisk, '
            '[data-required="true"]',
            container,
        ) is not None
        question = FormQuestion(question_id=question_id(text), question_text=text, required=required)

        radios = document.select(RADIO_SELECTOR, container)
        if radios:
            question.type = "radio"
            question.options = self._choice_options(document, radios, question)
            if len(radios) >= 3 and all(o.label.isdigit() for o in question.options):
                question.type = "linear_scale"
            return question

        checkboxes = document.select(CHECKBOX_SELECTOR, container)
        if checkboxes:
            question.type = "checkbox"
            question.options = self._choice_options(document, checkboxes, question)
            return question

        if document.select_one('[role="listbox"], [data-value]', container) is not None:
            question.type = "dropdown"
            question.options = []
            for option in document.select('[role="option"], [data-value]', container):
                label = option.get("data-value") or document.text_content(option)
                selected = option.get("aria-selected") == "true"
                if selected and label:
                    question.current_answer = label
                question.options.append(FormOption(
                    id=self.extractor.register(document, option, "act", scope=question.question_text),
                    label=label,
                    selected=selected,
                ))
            trigger = document.select_one('[role="combobox"], [aria-haspopup="listbox"]', container)
            if trigger is not None:
                question.dropdown_action_id = self.extractor.register(document, trigger, "act")
            return question

        for selector, kind in (('input[type="text"], input:not([type])', "short_text"), ("textarea", "long_text")):
            field = document.select_one(selector, container)
            if field is not None:
                question.type = kind
                question.current_answer = document.get_value(field)
                question.field_id = self.extractor.register(document, field, "fld")
                return question

        date_input = document.select_one(
            'input[type="date"], [aria-label*="Day"], [aria-label*="Month"], [aria-label*="Year"]',
            container,
        )
        if date_input is not None:
            question.type = "date"
            parts = [document.get_value(i) for i in container.find_all("input") if document.get_value(i)]
            question.current_answer = "/".join(parts)
            question.field_id = self.extractor.register(document, date_input, "fld")
            return question

        file_input = document.select_one('input[type="file"]', container)
        if file_input is not None or "Add file" in document.text_content(container):
            question.type = "file_upload"
            if file_input is not None:
                question.field_id = self.extractor.register(document, file_input, "fld")
            return question

        return question

    def _scan_generic(self, document: Document) -> FormScanResult:
        result = FormScanResult(form_title=document.title)
        forms = document.select("form")
        target = forms[0] if len(forms) == 1 else document.body

        found: list[tuple[int, FormQuestion]] = []
        covered: set[int] = set()
        processed: list[Tag] = []

        for group in document.select(GROUP_CONTAINERS, target):
            if any(document.contains(p, group) for p in processed):
                continue
            parsed = self._parse_group(document, group)
            if parsed is not None:
                question, controls = parsed
                found.append((document.position(group), question))
                covered.update(id(c) for c in controls)
                processed.append(group)

        for field in document.select(STANDALONE_INPUTS, target):
            if id(field) in covered or not document.is_rendered(field):
                continue
            question = self._parse_standalone(document, field)
            found.append((document.position(field), question))
            covered.add(id(field))

        radio_groups: dict[str, list[Tag]] = {}
        for radio in document.select(RADIO_SELECTOR, target):
            if id(radio) in covered or not document.is_rendered(radio):
                continue
            group = document.closest(radio, '[role="radiogroup"]')
            name = radio.get("name") or (group.get("aria-label") if group is not None else None) or "unnamed"
            radio_groups.setdefault(name, []).append(radio)

        for name, radios in radio_groups.items():
            container = document.closest(radios[0], '[role="radiogroup"], fieldset')
            text = ""
            if container is not None:
                text = container.get("aria-label") or ""
                if not text:
                    legend = document.select_one('legend, [role="heading"]', container)
                    text = document.text_content(legend) if legend is not None else ""
            question = self._choice_question(document, text or humanize(name), "radio", radios)
            found.append((document.position(radios[0]), question))

        checkbox_groups: dict[str, list[Tag]] = {}
        for checkbox in document.select(CHECKBOX_SELECTOR, target):
            if id(checkbox) in covered or not document.is_rendered(checkbox):
                continue
            checkbox_groups.setdefault(checkbox.get("name") or "unnamed_cb", []).append(checkbox)

        for name, checkboxes in checkbox_groups.items():
            if len(checkboxes) > 1:
                question = self._choice_question(document, humanize(name), "checkbox", checkboxes)
                found.append((document.position(checkboxes[0]), question))

        found.sort(key=lambda item: item[0])
        result.questions = [q for _, q in found]

        submit = document.select_one(GENERIC_SUBMIT, target)
        if submit is not None:
            result.submit_action_id = self.extractor.register(document, submit, "act")
        return result

    def _parse_group(self, document: Document, group: Tag) -> tuple[FormQuestion, list[Tag]] | None:
        heading = document.select_one('legend, [role="heading"], h1, h2, h3, h4, h5, h6, label', group)
        text = document.text_content(heading) if heading is not None else ""
        if not text:
            text = group.get("aria-label") or ""
        if not text and group.get("aria-labelledby"):
            labelled = document.get_element_by_id(group["aria-labelledby"].split()[0])
            text = document.text_content(labelled) if labelled is not None else ""

        radios = document.select(RADIO_SELECTOR, group)
        if radios:
            return self._choice_question(document, text or "Unnamed choice", "radio", radios), radios

        checkboxes = document.select(CHECKBOX_SELECTOR, group)
        if len(checkboxes) > 1:
            return self._choice_question(document, text or "Unnamed checkboxes", "checkbox", checkboxes), checkboxes

        field = document.select_one("input, textarea, select", group)
        if field is not None:
            return self._parse_standalone(document, field, text), [field]
        return None

    def _parse_standalone(self, document: Document, field: Tag, override: str = "") -> FormQuestion:
        text = override or labels.field_label(field, document)
        required = field.has_attr("required") or field.get("aria-required") == "true"

        if field.name == "select":
            options = []
            current = ""
            for option in field.find_all("option"):
                label = document.text_content(option) or option.get("value", "")
                if not label:
                    continue
                selected = document.selected_option(field) is option
                if selected:
                    current = label
                options.append(FormOption(
                    id=self.extractor.register(document, option, "opt", scope=text),
                    label=label,
                    selected=selected,
                ))
            return FormQuestion(
                question_id=question_id(text),
                question_text=text,
                type="select",
                required=required,
                options=options,
                current_answer=current,
            )

        input_type = document.input_type(field)
        if field.name == "textarea":
            kind = "long_text"
        elif input_type in ("date", "time"):
            kind = input_type
        elif input_type == "file":
            kind = "file_upload"
        else:
            kind = "short_text"

        return FormQuestion(
            question_id=question_id(text),
            question_text=text,
            type=kind,
            required=required,
            current_answer=document.get_value(field),
            field_id=self.extractor.register(document, field, "fld"),
        )

    def _option_label(self, document: Document, control: Tag) -> str:
        label = control.get("aria-label") or control.get("data-value") or ""
        if not label and control.get("id"):
            for_label = document.soup.find("label", attrs={"for": control["id"]})
            label = document.text_content(for_label) if for_label is not None else ""
        if not label:
            wrapping = document.closest(control, "label")
            label = document.visible_text(wrapping) if wrapping is not None else ""
        if not label:
            label = document.visible_text(control)
        return label or "Unknown option"

    def _choice_options(self, document: Document, controls: list[Tag], question: FormQuestion) -> list[FormOption]:
        options = []
        selected_labels = []
        for control in controls:
            label = self._option_label(document, control)
            selected = document.is_checked(control)
            if selected:
                selected_labels.append(label)
            options.append(FormOption(
                id=self.extractor.register(document, control, "act", scope=question.question_text),
                label=label,
                selected=selected,
            ))
        if selected_labels:
            question.current_answer = ", ".join(selected_labels)
        return options

    def _choice_question(self, document: Document, text: str, kind: str, controls: list[Tag]) -> FormQuestion:
        question = FormQuestion(
            question_id=question_id(text),
            question_text=text,
            type=kind,
            required=any(c.has_attr("required") or c.get("aria-required") == "true" for c in controls),
        )
        question.options = self._choice_options(document, controls, question)
        return question

    # =========================================================================
    # Answering
    # =========================================================================

    def find_question(self, scan: FormScanResult, target: str) -> FormQuestion:
        """
        Find a question by identifier, falling back to a text match.

        Raises:
            QuestionNotFoundError: No question matches
            AmbiguousMatchError: More than one question matches the text
        """
        for question in scan.questions:
            if question.question_id == target:
                return question
        wanted = target.lower().strip()
        exact = [q for q in scan.questions if q.question_text.lower().strip() == wanted]
        if exact:
            return exact[0]
        fuzzy = [
            q for q in scan.questions
            if wanted and (wanted in q.question_text.lower() or q.question_text.lower() in wanted)
        ]
        if len(fuzzy) == 1:
            return fuzzy[0]
        if len(fuzzy) > 1:
            raise AmbiguousMatchError(
                f'"{target}" matches several questions',
                [q.question_text for q in fuzzy],
            )
        raise QuestionNotFoundError(target, [q.question_text for q in scan.questions])

    async def answer(self, document: Document, target: str, answer: str) -> ToolResult:
        """
        Answer a question.

        Args:
            document: Live document
            target: Question identifier or question text
            answer: Answer text (comma-separated for multi-choice)

        Returns:
            Tool result; failures list the available options
        """
        try:
            question = self.find_question(self.scan(document), target)
            if question.type in TEXT_QUESTION_TYPES:
                return await self._answer_text(document, question, answer)
            if question.type in ("radio", "linear_scale"):
                return await self._answer_single(document, question, answer)
            if question.type == "checkbox":
                return await self._answer_multi(document, question, answer)
            if question.type == "select":
                return self._answer_select(document, question, answer)
            if question.type == "dropdown":
                return await self._answer_dropdown(document, question, answer)
            if question.type == "file_upload":
                return ToolResult(success=False, message="File upload questions require manual interaction.")
            return ToolResult(
                success=False,
                message=f'Unsupported question type "{question.type}" for "{question.question_text}"',
            )
        except VoiceOperatorError as e:
            return ToolResult(success=False, message=str(e))

    def _resolve(self, document: Document, element_id: str, what: str) -> Tag:
        element = self.extractor.find_element(document, element_id)
        if element is None:
            raise ElementNotFoundError(element_id, kind=what)
        return element

    @staticmethod
    def _done(question: FormQuestion, message: str) -> ToolResult:
        return ToolResult(success=True, message=message, data={"questionId": question.question_id})

    @staticmethod
    def _unmatched(question: FormQuestion, answer: str) -> ToolResult:
        available = ", ".join(o.label for o in question.options or [])
        return ToolResult(
            success=False,
            message=f'Option "{answer}" not found for "{question.question_text}". Available: {available}',
        )

    async def _answer_text(self, document: Document, question: FormQuestion, answer: str) -> ToolResult:
        if not question.field_id:
            return ToolResult(success=False, message=f'No input field found for question "{question.question_text}"')
        field = self._resolve(document, question.field_id, "Input")
        document.focus(field)
        document.scroll_into_view(field)
        await settle(settings.text_settle_ms)
        set_text(document, field, answer, keyup=True)
        return self._done(question, f'Typed "{answer}" for question "{question.question_text}"')

    async def _answer_single(self, document: Document, question: FormQuestion, answer: str) -> ToolResult:
        option = match_option(question.options or [], answer)
        if option is None:
            return self._unmatched(question, answer)
        control = self._resolve(document, option.id, "Option")
        document.scroll_into_view(control)
        await settle(settings.text_settle_ms)
        pointer_click(document, control)
        return self._done(question, f'Selected "{option.label}" for question "{question.question_text}"')

    async def _answer_multi(self, document: Document, question: FormQuestion, answer: str) -> ToolResult:
        notes = []
        matched = 0
        for wanted in (a.strip() for a in answer.split(",")):
            if not wanted:
                continue
            option = match_option(question.options or [], wanted)
            if option is None:
                notes.append(f'Option "{wanted}" not found')
                continue
            matched += 1
            if option.selected:
                notes.append(f'"{option.label}" already selected')
                continue
            control = self._resolve(document, option.id, "Checkbox")
            document.scroll_into_view(control)
            await settle(settings.checkbox_settle_ms)
            pointer_click(document, control)
            notes.append(f'Selected "{option.label}"')
        if matched == 0:
            return self._unmatched(question, answer)
        return self._done(question, f'For "{question.question_text}": {"; ".join(notes)}')

    def _answer_select(self, document: Document, question: FormQuestion, answer: str) -> ToolResult:
        options = question.options or []
        if not options:
            return ToolResult(success=False, message=f'No options found for "{question.question_text}"')
        wanted = answer.lower().strip()
        chosen = None
        for option in options:
            element = self._resolve(document, option.id, "Option")
            value = element.get("value", option.label)
            if wanted and (wanted in option.label.lower() or value.lower() == wanted):
                chosen = (option, element, value)
                break
        if chosen is None:
            return self._unmatched(question, answer)
        option, element, value = chosen
        select = element.find_parent("select")
        if select is None:
            raise ElementNotFoundError(option.id, kind="List control for option")
        select_value(document, select, value)
        return self._done(question, f'Selected "{option.label}" for "{question.question_text}"')

    async def _answer_dropdown(self, document: Document, question: FormQuestion, answer: str) -> ToolResult:
        if question.dropdown_action_id:
            trigger = self.extractor.find_element(document, question.dropdown_action_id)
            if trigger is not None:
                document.dispatch(trigger, "click")
                await settle(settings.dropdown_settle_ms)
        if not question.options:
            return ToolResult(success=False, message=f'Cannot interact with dropdown for "{question.question_text}"')
        option = match_option(question.options, answer)
        if option is None:
            return self._unmatched(question, answer)
        element = self._resolve(document, option.id, "Option")
        document.scroll_into_view(element)
        await settle(settings.text_settle_ms)
        document.dispatch(element, "click")
        return self._done(question, f'Selected "{option.label}" for "{question.question_text}"')
