"""Playwright-powered browser driver."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from playwright.sync_api import Browser, BrowserContext, Dialog, Page, Playwright, sync_playwright

from .base import (
    DEFAULT_VIEWPORT,
    MAXIMIZED_VIEWPORT,
    BrowserDriver,
    BrowserHandle,
    BrowserKind,
    SessionOptions,
    Viewport,
)

LOGGER = logging.getLogger(__name__)

_CHROMIUM_ARGS = [
    "--disable-notifications",
    "--disable-popup-blocking",
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]

_FIREFOX_PREFS = {
    "dom.webnotifications.enabled": False,
    "dom.push.enabled": False,
    "dom.disable_beforeunload": True,
}

_CHANNELS = {BrowserKind.EDGE: "msedge"}


class PlaywrightBrowserHandle(BrowserHandle):
    """Browser handle backed by a dedicated Playwright instance."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        context: BrowserContext,
        page: Page,
    ) -> None:
        self._playwright: Optional[Playwright] = playwright
        self._browser: Optional[Browser] = browser
        self._context: Optional[BrowserContext] = context
        self._page: Optional[Page] = page

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Browser handle has been closed")
        return self._page

    def set_implicit_wait(self, seconds: float) -> None:
        if not self._context:
            raise RuntimeError("Browser handle has been closed")
        self._context.set_default_timeout(seconds * 1000)

    def maximize(self) -> Viewport:
        self.page.set_viewport_size(
            {"width": MAXIMIZED_VIEWPORT.width, "height": MAXIMIZED_VIEWPORT.height}
        )
        return MAXIMIZED_VIEWPORT

    def open(self, url: str) -> None:
        self.page.goto(url, wait_until="load")

    def screenshot(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        self.page.screenshot(path=str(path), full_page=True)
        return path

    def quit(self) -> None:
        LOGGER.debug("Stopping Playwright browser")
        try:
            if self._context:
                self._context.close()
        finally:
            try:
                if self._browser:
                    self._browser.close()
            finally:
                if self._playwright:
                    self._playwright.stop()
                self._context = None
                self._browser = None
                self._playwright = None
                self._page = None


class PlaywrightDriver(BrowserDriver):
    """Launch chrome, firefox or edge through Playwright's sync API.

    The sync API binds a Playwright instance to the thread that started it,
    so every launch starts its own instance and the resulting handle must be
    used and closed on that thread.
    """

    def launch(self, options: SessionOptions) -> PlaywrightBrowserHandle:
        LOGGER.debug(
            "Launching %s (headless=%s)", options.browser.value, options.headless
        )
        playwright = sync_playwright().start()
        try:
            browser_type, launch_kwargs = self._launch_arguments(playwright, options)
            browser = browser_type.launch(**launch_kwargs)
            context = browser.new_context(
                viewport={"width": DEFAULT_VIEWPORT.width, "height": DEFAULT_VIEWPORT.height},
                permissions=[],
            )
            page = context.new_page()
        except Exception:
            playwright.stop()
            raise
        if options.disable_notifications:
            page.on("dialog", _dismiss_dialog)
        return PlaywrightBrowserHandle(playwright, browser, context, page)

    @staticmethod
    def _launch_arguments(
        playwright: Playwright, options: SessionOptions
    ) -> tuple[Any, dict[str, Any]]:
        kwargs: dict[str, Any] = {"headless": options.headless}
        if options.browser == BrowserKind.FIREFOX:
            if options.disable_notifications:
                kwargs["firefox_user_prefs"] = dict(_FIREFOX_PREFS)
            return playwright.firefox, kwargs
        args = list(_CHROMIUM_ARGS) if options.disable_notifications else []
        if options.headless:
            args.append("--disable-gpu")
        kwargs["args"] = args
        channel = _CHANNELS.get(options.browser)
        if channel:
            kwargs["channel"] = channel
        return playwright.chromium, kwargs


def _dismiss_dialog(dialog: Dialog) -> None:
    LOGGER.info("Dismissing unexpected %s dialog: %s", dialog.type, dialog.message)
    dialog.dismiss()
