"""Per-test orchestration of sessions and reporting."""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from .browser.base import BrowserKind, Session
from .config import ConfigResolver
from .errors import ConfigurationError, NoActiveSessionError
from .reporting.models import StepKind, StepStatus
from .reporting.sink import ReportSink
from .sessions import BrowserName, SessionManager

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ExecutionContext:
    """Acquire a session for each test case and report its outcome."""

    def __init__(
        self,
        config: ConfigResolver,
        sessions: SessionManager,
        reporter: ReportSink,
        *,
        screenshot_dir: Optional[Path] = None,
        open_base_url: bool = True,
    ) -> None:
        self._config = config
        self._sessions = sessions
        self._reporter = reporter
        self._screenshot_dir = screenshot_dir
        self._open_base_url = open_base_url

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def reporter(self) -> ReportSink:
        return self._reporter

    @property
    def screenshot_dir(self) -> Path:
        if self._screenshot_dir is None:
            self._screenshot_dir = Path(self._config.resolve("screenshotPath"))
        return self._screenshot_dir

    def resolve_browser(self, browser: BrowserName = None) -> str:
        if isinstance(browser, BrowserKind):
            return browser.value
        if browser is not None and browser.strip():
            return browser
        try:
            return self._config.resolve("browser")
        except ConfigurationError:
            return BrowserKind.CHROME.value

    def begin_test(
        self,
        name: str,
        *,
        browser: BrowserName = None,
        description: Optional[str] = None,
    ) -> Session:
        """Open the TEST step and acquire a session for the calling context.

        If setup fails the step is finished as failed before the error
        propagates. Only a session created here is destroyed; a session the
        context already owned (a conflict) is left untouched.
        """

        self._reporter.start_step(name, description, StepKind.TEST)
        created = False
        try:
            browser_name = self.resolve_browser(browser)
            self._reporter.info(f"Setting up test with browser: {browser_name}")
            session = self._sessions.create(browser_name)
            created = True
            self._open_start_page(session)
        except BaseException as exc:
            self._reporter.error("Critical error in test setup", exc)
            self.end_test(name, exc, release=created)
            raise
        self._reporter.info(
            f"Test environment initialized successfully with browser: {session.kind.value}"
        )
        return session

    def end_test(
        self,
        name: str,
        error: Optional[BaseException] = None,
        *,
        outcome: Optional[StepStatus] = None,
        message: Optional[str] = None,
        release: bool = True,
    ) -> None:
        """Finish the TEST step and release the session unless told not to."""

        try:
            if isinstance(error, Exception):
                self._report_failure(
                    name, f"Test execution failed: {error}", error, screenshot=release
                )
            elif error is not None:
                self._reporter.finish_step(StepStatus.INTERRUPTED, "Test execution interrupted")
            elif outcome == StepStatus.FAILED:
                self._report_failure(name, message or "Test execution failed", screenshot=release)
            else:
                self._reporter.finish_step(outcome or StepStatus.PASSED, message)
        finally:
            if release and self._sessions.destroy():
                self._reporter.info("Test environment cleaned up")

    @contextmanager
    def test_case(
        self,
        name: str,
        *,
        browser: BrowserName = None,
        description: Optional[str] = None,
    ) -> Iterator[Session]:
        """Run a block as a test case with its own session and TEST step."""

        session = self.begin_test(name, browser=browser, description=description)
        try:
            yield session
        except BaseException as exc:
            self.end_test(name, exc)
            raise
        self.end_test(name)

    def run(
        self,
        name: str,
        body: Callable[[Session], T],
        *,
        browser: BrowserName = None,
        description: Optional[str] = None,
    ) -> T:
        with self.test_case(name, browser=browser, description=description) as session:
            return body(session)

    def skip(self, name: str, reason: str) -> None:
        """Report a test case that was skipped without acquiring a session."""

        self._reporter.start_step(name, kind=StepKind.TEST)
        self._reporter.finish_step(StepStatus.SKIPPED, reason)

    def capture_screenshot(self, name: str) -> Optional[Path]:
        """Save a screenshot of the current session, or return ``None``."""

        try:
            session = self._sessions.current()
        except NoActiveSessionError:
            LOGGER.info("No browser session available; skipping screenshot for %s", name)
            return None
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        safe_name = _UNSAFE_CHARS.sub("_", name).strip("_") or "screenshot"
        try:
            path = self.screenshot_dir / f"{safe_name}_{timestamp}.png"
            return session.handle.screenshot(path)
        except Exception as exc:
            LOGGER.warning("Failed to capture screenshot for %s: %s", name, exc)
            return None

    def close_suite(self) -> int:
        """Drain open report steps and surface teardown failures."""

        failures = self._sessions.teardown_failures
        if failures:
            self._reporter.warn(f"{failures} browser session(s) failed to shut down cleanly")
        drained = self._reporter.drain()
        self._reporter.info("Test suite execution completed")
        return drained

    def _open_start_page(self, session: Session) -> None:
        if not self._open_base_url:
            return
        try:
            base_url = self._config.resolve("baseUrl")
        except ConfigurationError:
            return
        session.handle.open(base_url)
        self._reporter.info(f"Navigated to: {base_url}")

    def _report_failure(
        self,
        name: str,
        message: str,
        exc: Optional[BaseException] = None,
        *,
        screenshot: bool = True,
    ) -> None:
        self._reporter.error(f"Test failed: {name}", exc)
        path = self.capture_screenshot(f"{name}_FAILED") if screenshot else None
        if path is not None:
            self._reporter.attach_screenshot(path, "Failure screenshot")
        self._reporter.finish_step(StepStatus.FAILED, message)
