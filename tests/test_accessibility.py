"""Tests for the accessibility audit."""

import pytest

from voice_operator.browser.accessibility import AccessibilityAuditor, contrast_ratio
from voice_operator.browser.actions import ActionExecutor
from voice_operator.browser.dom import Document


def _doc(body: str) -> Document:
    return Document(f"<html><head><title>Audit</title></head><body>{body}</body></html>", url="https://a.example.com/")


def _faint(text: str, size: int = 16, line_height: int = 24) -> str:
    return (
        f'<p data-color="rgb(200, 200, 200)" data-bg="rgb(255, 255, 255)" '
        f'data-font-size="{size}" data-line-height="{line_height}">{text}</p>'
    )


class TestContrastRatio:
    def test_black_on_white(self):
        assert contrast_ratio("rgb(0, 0, 0)", "rgb(255, 255, 255)") == pytest.approx(21.0)

    def test_same_color(self):
        assert contrast_ratio("rgba(10, 20, 30, 1)", "rgb(10, 20, 30)") == pytest.approx(1.0)

    def test_unparseable(self):
        assert contrast_ratio("transparent", "rgb(0, 0, 0)") is None
        assert contrast_ratio(None, None) is None


class TestAudit:
    def setup_method(self):
        self.auditor = AccessibilityAuditor()

    def test_clean_page(self):
        audit = self.auditor.audit(_doc('<h1>Welcome</h1><img src="a.png" alt="Logo"><label>Name <input></label>'))
        assert audit.score == 100
        assert audit.issues == []
        assert audit.summary == "Accessibility score: 100/100 (Good). Found 0 error(s), 0 warning(s), 0 suggestion(s)."

    def test_missing_alt_and_labels(self):
        audit = self.auditor.audit(_doc(
            '<img src="a.png"><img src="b.png" alt="  ">'
            '<label for="e">Email</label><input id="e">'
            '<input type="text" name="q"><input type="hidden" name="t"><input aria-label="Search">'
        ))

        assert [issue.problem for issue in audit.issues] == [
            "2 image(s) missing alt text",
            "1 form input(s) have no accessible label",
        ]
        assert audit.score == 70
        assert "(Needs improvement)" in audit.summary

    def test_low_contrast_and_tiny_text(self):
        audit = self.auditor.audit(_doc(_faint("Faint print", size=10)))
        assert [(issue.type, issue.element) for issue in audit.issues] == [
            ("error", "1 elements"),
            ("warning", "1 elements"),
        ]
        assert audit.score == 77

    def test_hidden_text_is_ignored(self):
        audit = self.auditor.audit(_doc(f'<div data-hidden="true">{_faint("Faint print", size=10)}</div>'))
        assert audit.score == 100

    def test_tight_spacing_needs_several_blocks(self):
        tight = '<p data-font-size="16" data-line-height="18">Dense text</p>'
        assert self.auditor.audit(_doc(tight * 3)).issues == []

        audit = self.auditor.audit(_doc(tight * 4))
        assert audit.issues[0].problem == "4 text block(s) have tight line spacing (below 1.3x)"

    def test_moving_content_and_sidebars(self):
        audit = self.auditor.audit(_doc(
            '<div class="hero-carousel">Slides</div><aside>Links</aside><div class="sidebar">More</div>'
        ))
        assert [issue.type for issue in audit.issues] == ["info", "info"]
        assert audit.issues[1].problem == "Page is complex (3 elements, 2 sidebars) which may be overwhelming"
        assert audit.score == 94

    def test_poor_rating(self):
        audit = self.auditor.audit(_doc(
            '<img src="a.png"><input>' + _faint("Small", size=9) + '<video autoplay></video>'
        ))
        assert audit.score == 44
        assert "(Poor)" in audit.summary


class TestAuditTool:
    async def test_dispatch(self):
        doc = _doc('<img src="a.png"><button>Go</button>')
        result = await ActionExecutor().execute_tool(doc, "audit_accessibility", {})

        assert result.success
        assert result.message.startswith("Accessibility score: 85/100 (Good).")
        assert result.data == {
            "score": 85,
            "issueCount": 1,
            "issues": ["[ERROR] 1 image(s) missing alt text -> Add descriptive alt attributes to all images"],
        }
