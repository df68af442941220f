"""Tests for snapshot and replay against a mocked Playwright page."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from voice_operator.browser.dom import Document
from voice_operator.browser.manager import BrowserManager


PAGE = """
<html><head><title>Settings</title></head><body>
  <button id="save">Save</button>
  <input id="agree" type="checkbox">
  <input id="name" type="text" value="">
  <select id="country"><option value="fr">France</option><option value="de">Germany</option></select>
</body></html>
"""


def make_page() -> MagicMock:
    page = MagicMock()
    page.goto = AsyncMock()
    page.go_back = AsyncMock()
    page.evaluate = AsyncMock()
    locator = MagicMock()
    locator.first.click = AsyncMock()
    locator.first.focus = AsyncMock()
    locator.first.fill = AsyncMock()
    locator.first.select_option = AsyncMock()
    locator.first.scroll_into_view_if_needed = AsyncMock()
    page.locator = MagicMock(return_value=locator)
    return page


class TestReplay:
    def setup_method(self):
        self.manager = BrowserManager(headless=True)
        self.page = make_page()
        self.manager.page = self.page
        self.doc = Document(PAGE, url="https://app.example.com/settings", history_length=2)
        self.locator = self.page.locator.return_value.first

    async def test_click_skips_pointer_sequence(self):
        button = self.doc.select_one("#save")
        for event_type in ("pointerdown", "mousedown", "pointerup", "mouseup", "click"):
            self.doc.dispatch(button, event_type)

        assert (await self.manager.replay(self.doc)).applied == 1
        self.page.locator.assert_called_with("#save")
        self.locator.click.assert_awaited_once()
        assert self.doc.events == []

    async def test_default_action_events_are_not_replayed(self):
        self.doc.dispatch(self.doc.select_one("#agree"), "click")

        assert (await self.manager.replay(self.doc)).applied == 1
        self.locator.fill.assert_not_awaited()

    async def test_text_change_fills(self):
        field = self.doc.select_one("#name")
        self.doc.set_value(field, "Ada")
        self.doc.dispatch(field, "input")
        self.doc.dispatch(field, "change", value="Ada")

        assert (await self.manager.replay(self.doc)).applied == 1
        self.locator.fill.assert_awaited_once_with("Ada")

    async def test_select_change_selects(self):
        self.doc.dispatch(self.doc.select_one("#country"), "change", value="de")

        await self.manager.replay(self.doc)
        self.locator.select_option.assert_awaited_once_with("de")

    async def test_navigation_and_scroll(self):
        self.doc.navigate("https://app.example.com/help")
        self.doc.go_back()
        self.doc.scroll_to(0)

        assert (await self.manager.replay(self.doc)).applied == 3
        self.page.goto.assert_awaited_once_with("https://app.example.com/help", wait_until="domcontentloaded")
        self.page.go_back.assert_awaited_once()
        self.page.evaluate.assert_awaited_once()

    async def test_failed_event_is_skipped(self):
        self.locator.click.side_effect = PlaywrightError("element detached")
        self.doc.dispatch(self.doc.select_one("#save"), "click")
        self.doc.focus(self.doc.select_one("#name"))

        report = await self.manager.replay(self.doc)

        assert report.applied == 1
        assert not report.ok
        assert report.failures == ["click on #save: element detached"]
        self.locator.focus.assert_awaited_once()


class TestSnapshot:
    async def test_document_from_page(self):
        manager = BrowserManager(headless=True)
        manager.page = make_page()
        manager.page.evaluate.return_value = {
            "html": PAGE.replace('id="save"', 'id="save" data-focused="true"'),
            "url": "https://app.example.com/settings",
            "scrollX": 0,
            "scrollY": 120,
            "width": 1024,
            "height": 700,
            "scrollHeight": 2400,
            "historyLength": 3,
        }

        doc = await manager.snapshot()

        assert doc.url == "https://app.example.com/settings"
        assert doc.title == "Settings"
        assert (doc.viewport_width, doc.viewport_height) == (1024, 700)
        assert doc.scroll_y == 120
        assert doc.history_length == 3
        assert doc.active_element is doc.select_one("#save")

    async def test_requires_started_browser(self):
        with pytest.raises(RuntimeError):
            await BrowserManager(headless=True).snapshot()
