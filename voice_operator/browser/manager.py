"""
Playwright Browser Manager.
Manages the browser lifecycle, snapshots the live page into a Document and
replays the Document's recorded events on the real page.
"""

import logging
from dataclasses import dataclass, field

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
)

from ..core.config import settings
from .dom import Document, DomEvent


logger = logging.getLogger(__name__)

# Writes geometry, computed visibility and live form state into attributes
# so the serialized markup carries what the extractor needs.
ANNOTATE_SCRIPT = """
() => {
  const sx = window.scrollX, sy = window.scrollY;
  document.querySelectorAll('[data-focused]').forEach(el => el.removeAttribute('data-focused'));
  for (const el of document.body.querySelectorAll('*')) {
    const r = el.getBoundingClientRect();
    el.setAttribute('data-rect', `${r.left + sx},${r.top + sy},${r.width},${r.height}`);
    const cs = getComputedStyle(el);
    if (cs.display === 'none' || cs.visibility === 'hidden' || cs.opacity === '0') {
      el.setAttribute('data-hidden', 'true');
    } else {
      el.removeAttribute('data-hidden');
    }
    if (el.matches('p, span, h1, h2, h3, h4, h5, h6, a, li, td, label')) {
      el.setAttribute('data-font-size', parseFloat(cs.fontSize) || 0);
      el.setAttribute('data-line-height', parseFloat(cs.lineHeight) || 0);
      el.setAttribute('data-color', cs.color);
      if (cs.backgroundColor !== 'rgba(0, 0, 0, 0)') el.setAttribute('data-bg', cs.backgroundColor);
      else el.removeAttribute('data-bg');
    }
    if (el instanceof HTMLInputElement) {
      if (el.type === 'checkbox' || el.type === 'radio') el.toggleAttribute('checked', el.checked);
      else if (el.type !== 'file' && el.type !== 'password') el.setAttribute('value', el.value);
    } else if (el instanceof HTMLTextAreaElement) {
      el.textContent = el.value;
    } else if (el instanceof HTMLOptionElement) {
      el.toggleAttribute('selected', el.selected);
    }
  }
  const active = document.activeElement;
  if (active && active !== document.body) active.setAttribute('data-focused', 'true');
  return {
    html: document.documentElement.outerHTML,
    url: location.href,
    scrollX: sx,
    scrollY: sy,
    width: window.innerWidth,
    height: window.innerHeight,
    scrollHeight: document.body.scrollHeight,
    historyLength: history.length,
  };
}
"""

HIGHLIGHT_SCRIPT = """
(selector) => {
  document.querySelectorAll('[data-voice-highlight]').forEach(el => {
    el.style.outline = '';
    el.style.outlineOffset = '';
    el.removeAttribute('data-voice-highlight');
  });
  if (!selector) return;
  const el = document.querySelector(selector);
  if (!el) return;
  el.style.outline = '4px solid #00FF00';
  el.style.outlineOffset = '2px';
  el.setAttribute('data-voice-highlight', 'true');
}
"""

# Events that are part of a sequence Playwright performs as a whole
SKIPPED_EVENTS = {
    "pointerdown", "mousedown", "pointerup", "mouseup", "input", "keyup", "blur",
}


@dataclass
class ReplayReport:
    """Outcome of replaying a Document's events on the live page."""
    applied: int = 0
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def error_summary(error: Exception) -> str:
    # Playwright messages carry a multi-line call log after the summary
    message = str(error).strip()
    return message.splitlines()[0] if message else type(error).__name__


class BrowserManager:
    """
    Manages a Playwright browser for the page-side runtime.

    The page-side components never talk to Playwright directly: they work on
    a Document taken with snapshot(), and replay() applies what they did.
    """

    def __init__(self, headless: bool | None = None):
        """
        Initialize browser manager.

        Args:
            headless: Run in headless mode (defaults to config)
        """
        self.headless = headless if headless is not None else settings.headless

        self.playwright: Playwright | None = None
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None
        self.page: Page | None = None

    async def start(self) -> Page:
        """
        Start browser and return page.

        Returns:
            Playwright Page object
        """
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(headless=self.headless)
        self.context = await self.browser.new_context(viewport={"width": 1280, "height": 800})
        self.page = await self.context.new_page()
        self.page.set_default_timeout(settings.browser_timeout)
        logger.info("Browser started (headless=%s)", self.headless)
        return self.page

    async def stop(self) -> None:
        """Stop browser and cleanup."""
        if self.page:
            await self.page.close()
            self.page = None

        if self.context:
            await self.context.close()
            self.context = None

        if self.browser:
            await self.browser.close()
            self.browser = None

        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

    def _require_page(self) -> Page:
        if not self.page:
            raise RuntimeError("Browser not started")
        return self.page

    # =========================================================================
    # Navigation
    # =========================================================================

    async def navigate(self, url: str) -> None:
        """
        Navigate to a URL.

        Args:
            url: URL to navigate to
        """
        page = self._require_page()
        try:
            await page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as e:
            logger.warning("Navigation warning for %s: %s", url, e)

    async def get_current_url(self) -> str:
        if not self.page:
            return ""
        return self.page.url

    # =========================================================================
    # Snapshot & Replay
    # =========================================================================

    async def snapshot(self) -> Document:
        """
        Capture the live page as a Document.

        Returns:
            Document with geometry, visibility and form state annotated
        """
        page = self._require_page()
        data = await page.evaluate(ANNOTATE_SCRIPT)
        return Document(
            data["html"],
            url=data["url"],
            viewport=(data["width"], data["height"]),
            scroll=(data["scrollX"], data["scrollY"]),
            history_length=data["historyLength"],
            scroll_height=data["scrollHeight"],
        )

    async def replay(self, document: Document) -> ReplayReport:
        """
        Apply a Document's recorded events to the live page.

        A failing event is recorded and the rest are still applied.

        Args:
            document: Document the page-side components worked on

        Returns:
            Applied count and failures
        """
        report = ReplayReport()
        for event in document.drain_events():
            if event.type in SKIPPED_EVENTS or event.detail.get("default_action"):
                continue
            try:
                if await self._apply(event):
                    report.applied += 1
            except PlaywrightError as e:
                logger.warning("Replay of %s on %s failed: %s", event.type, event.selector, e)
                report.failures.append(f"{event.type} on {event.selector or 'page'}: {error_summary(e)}")
        return report

    async def _apply(self, event: DomEvent) -> bool:
        page = self._require_page()

        if event.type == "navigate":
            await page.goto(event.detail["url"], wait_until="domcontentloaded")
        elif event.type == "history_back":
            await page.go_back(wait_until="domcontentloaded")
        elif event.type == "scroll":
            await page.evaluate("(y) => window.scrollTo(0, y)", event.detail["y"])
        elif event.type == "highlight":
            await page.evaluate(HIGHLIGHT_SCRIPT, event.selector)
        elif not event.selector:
            return False
        elif event.type == "click":
            await page.locator(event.selector).first.click()
        elif event.type == "focus":
            await page.locator(event.selector).first.focus()
        elif event.type == "scrollintoview":
            await page.locator(event.selector).first.scroll_into_view_if_needed()
        elif event.type == "change" and "value" in event.detail:
            locator = page.locator(event.selector).first
            if event.target is not None and event.target.name == "select":
                await locator.select_option(event.detail["value"])
            else:
                await locator.fill(event.detail["value"])
        else:
            return False
        return True
