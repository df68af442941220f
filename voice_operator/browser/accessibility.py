"""
Accessibility Audit.
Scores the live document for common accessibility problems, using the
style annotations written by the snapshot script.
"""

import logging
import re

from bs4 import Tag

from ..core.models import AccessibilityAudit, AuditIssue
from .dom import Document, label_control


logger = logging.getLogger(__name__)

TEXT_SELECTOR = "p, span, h1, h2, h3, h4, h5, h6, a, li, td, label"
ANIMATION_SELECTOR = '[class*="animate"], [class*="carousel"], [class*="slider"], video[autoplay], .gif'
SIDEBAR_SELECTOR = 'aside, [role="complementary"], [class*="sidebar"]'

MIN_CONTRAST = 3.0
MIN_FONT_PX = 12
MIN_LINE_HEIGHT_RATIO = 1.3
TIGHT_SPACING_LIMIT = 3
COMPLEX_ELEMENT_COUNT = 1500

ISSUE_PENALTY = {"error": 15, "warning": 8, "info": 3}

RGB_PATTERN = re.compile(r"rgba?\((\d+),\s*(\d+),\s*(\d+)")


def parse_rgb(color: str | None) -> tuple[int, int, int] | None:
    match = RGB_PATTERN.match(color or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def relative_luminance(rgb: tuple[int, int, int]) -> float:
    channels = []
    for value in rgb:
        c = value / 255
        channels.append(c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4)
    return 0.2126 * channels[0] + 0.7152 * channels[1] + 0.0722 * channels[2]


def contrast_ratio(foreground: str | None, background: str | None) -> float | None:
    """WCAG contrast ratio of two CSS rgb() colors, or None if either is unparseable."""
    fg, bg = parse_rgb(foreground), parse_rgb(background)
    if fg is None or bg is None:
        return None
    lighter, darker = sorted((relative_luminance(fg), relative_luminance(bg)), reverse=True)
    return (lighter + 0.05) / (darker + 0.05)


def _number(element: Tag, attr: str) -> float:
    try:
        return float(element.get(attr, 0))
    except (TypeError, ValueError):
        return 0.0


class AccessibilityAuditor:
    """
    Read-only accessibility audit of a Document.

    Checks missing image text, low contrast, tiny text, unlabeled inputs,
    moving content, layout complexity and line spacing. Each issue costs
    points from a score of 100 by severity.
    """

    def audit(self, document: Document) -> AccessibilityAudit:
        """
        Audit a document.

        Args:
            document: Snapshot of the live page

        Returns:
            Score, issues and a spoken summary
        """
        texts = [
            el for el in document.select(TEXT_SELECTOR)
            if not document.is_hidden(el) and document.text_content(el)
        ]
        issues = [
            issue
            for issue in (
                self._missing_alt(document),
                self._low_contrast(texts),
                self._tiny_text(texts),
                self._unlabeled_inputs(document),
                self._animations(document),
                self._complex_layout(document),
                self._tight_spacing(document),
            )
            if issue is not None
        ]

        score = 100 - sum(ISSUE_PENALTY[issue.type] for issue in issues)
        audit = AccessibilityAudit(score=max(0, min(100, score)), issues=issues)
        audit.summary = self._summarize(audit)
        logger.info("Accessibility audit of %s: %d/100, %d issues", document.url, audit.score, len(issues))
        return audit

    # =========================================================================
    # Checks
    # =========================================================================

    def _missing_alt(self, document: Document) -> AuditIssue | None:
        images = [img for img in document.select("img") if not (img.get("alt") or "").strip()]
        if not images:
            return None
        return AuditIssue(
            type="error",
            element=f"{len(images)} images",
            problem=f"{len(images)} image(s) missing alt text",
            suggestion="Add descriptive alt attributes to all images",
        )

    def _low_contrast(self, texts: list[Tag]) -> AuditIssue | None:
        count = 0
        for el in texts:
            ratio = contrast_ratio(el.get("data-color"), el.get("data-bg"))
            if ratio is not None and ratio < MIN_CONTRAST:
                count += 1
        if not count:
            return None
        return AuditIssue(
            type="error",
            element=f"{count} elements",
            problem=f"{count} text element(s) may have insufficient color contrast (below 3:1)",
            suggestion="Use a high contrast mode for better readability",
        )

    def _tiny_text(self, texts: list[Tag]) -> AuditIssue | None:
        count = sum(1 for el in texts if 0 < _number(el, "data-font-size") < MIN_FONT_PX)
        if not count:
            return None
        return AuditIssue(
            type="warning",
            element=f"{count} elements",
            problem=f"{count} text element(s) are smaller than {MIN_FONT_PX}px",
            suggestion="Increase the font size for better readability",
        )

    def _unlabeled_inputs(self, document: Document) -> AuditIssue | None:
        labelled = set()
        for label in document.select("label"):
            control = label_control(label, document)
            if control is not None:
                labelled.add(id(control))
        count = 0
        for field in document.select('input:not([type="hidden"]):not([aria-label]):not([aria-labelledby])'):
            if id(field) in labelled or document.closest(field, "label") is not None:
                continue
            count += 1
        if not count:
            return None
        return AuditIssue(
            type="error",
            element=f"{count} inputs",
            problem=f"{count} form input(s) have no accessible label",
            suggestion="Add label elements or aria-label attributes to form inputs",
        )

    def _animations(self, document: Document) -> AuditIssue | None:
        moving = document.select(ANIMATION_SELECTOR)
        if not moving:
            return None
        return AuditIssue(
            type="info",
            element=f"{len(moving)} elements",
            problem="Page contains animations or auto-playing media that may cause discomfort",
            suggestion="Pause motion and auto-playing media",
        )

    def _complex_layout(self, document: Document) -> AuditIssue | None:
        total = len(document.body.find_all(True))
        sidebars = len(document.select(SIDEBAR_SELECTOR))
        if total <= COMPLEX_ELEMENT_COUNT and sidebars < 2:
            return None
        detail = f"{total} elements" + (f", {sidebars} sidebars" if sidebars else "")
        return AuditIssue(
            type="info",
            element="page layout",
            problem=f"Page is complex ({detail}) which may be overwhelming",
            suggestion="Focus on the main content or use reading sections",
        )

    def _tight_spacing(self, document: Document) -> AuditIssue | None:
        count = 0
        for el in document.select("p, li"):
            size, line_height = _number(el, "data-font-size"), _number(el, "data-line-height")
            if size > 0 and line_height > 0 and line_height / size < MIN_LINE_HEIGHT_RATIO:
                count += 1
        if count <= TIGHT_SPACING_LIMIT:
            return None
        return AuditIssue(
            type="warning",
            element=f"{count} paragraphs",
            problem=f"{count} text block(s) have tight line spacing (below 1.3x)",
            suggestion="Increase line spacing for easier reading",
        )

    @staticmethod
    def _summarize(audit: AccessibilityAudit) -> str:
        if audit.score >= 80:
            rating = "Good"
        elif audit.score >= 50:
            rating = "Needs improvement"
        else:
            rating = "Poor"
        return (
            f"Accessibility score: {audit.score}/100 ({rating}). "
            f"Found {audit.count('error')} error(s), {audit.count('warning')} warning(s), "
            f"{audit.count('info')} suggestion(s)."
        )
