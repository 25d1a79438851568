"""Per-context browser session lifecycle management."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional, Union

from .browser.base import (
    DEFAULT_VIEWPORT,
    BrowserDriver,
    BrowserHandle,
    BrowserKind,
    Session,
    SessionOptions,
    Viewport,
    ViewportPolicy,
)
from .config import ConfigResolver
from .errors import (
    ConfigurationError,
    NoActiveSessionError,
    SessionConflictError,
    SessionCreationError,
    SessionError,
    UnsupportedBrowserError,
)
from .ownership import ContextKey, ContextRegistry

LOGGER = logging.getLogger(__name__)

DEFAULT_IMPLICIT_WAIT = 10.0

BrowserName = Union[str, BrowserKind, None]


def parse_browser_kind(name: BrowserName) -> BrowserKind:
    """Normalise a browser name, rejecting anything outside the supported set."""

    if isinstance(name, BrowserKind):
        return name
    if name is None or not str(name).strip():
        raise UnsupportedBrowserError(name, BrowserKind.supported())
    try:
        return BrowserKind(str(name).strip().lower())
    except ValueError:
        raise UnsupportedBrowserError(name, BrowserKind.supported()) from None


class SessionManager:
    """Own at most one browser session per execution context.

    Sessions are keyed by the identity returned from ``context_key`` (the
    calling thread by default). No method fetches or releases another
    context's session.
    """

    def __init__(
        self,
        config: ConfigResolver,
        driver: BrowserDriver,
        *,
        context_key: Optional[ContextKey] = None,
    ) -> None:
        self._config = config
        self._driver = driver
        self._sessions: ContextRegistry[Session] = ContextRegistry(
            context_key, on_orphan=self._release_orphan
        )
        self._failures_lock = threading.Lock()
        self._teardown_failures = 0

    @property
    def teardown_failures(self) -> int:
        """Number of sessions whose driver failed to quit cleanly."""

        with self._failures_lock:
            return self._teardown_failures

    def build_options(self, browser: BrowserName) -> SessionOptions:
        """Resolve launch options for ``browser`` from configuration."""

        kind = parse_browser_kind(browser)
        headless = self._config.resolve_bool("headless")
        try:
            implicit_wait = float(self._config.resolve_int("timeout"))
        except ConfigurationError as exc:
            LOGGER.warning(
                "Invalid timeout configuration (%s); using %s seconds",
                exc,
                DEFAULT_IMPLICIT_WAIT,
            )
            implicit_wait = DEFAULT_IMPLICIT_WAIT
        return SessionOptions(browser=kind, headless=headless, implicit_wait=implicit_wait)

    def create(
        self,
        browser: BrowserName,
        *,
        options: Optional[SessionOptions] = None,
    ) -> Session:
        """Launch a session for the calling context."""

        kind = parse_browser_kind(browser)
        existing = self._sessions.get()
        if existing is not None:
            raise SessionConflictError(kind.value, existing.kind.value)
        if options is None:
            options = self.build_options(kind)
        elif options.browser != kind:
            options = options.model_copy(update={"browser": kind})

        LOGGER.info("Initializing browser session for: %s", kind.value)
        try:
            handle = self._driver.launch(options)
        except SessionError:
            raise
        except Exception as exc:
            raise SessionCreationError(
                f"Failed to initialize browser session for browser: {kind.value}",
                browser=kind.value,
                operation="initialization",
            ) from exc

        implicit_wait, viewport = self._configure(handle, options)
        session = Session(
            id=uuid.uuid4().hex,
            kind=kind,
            headless=options.headless,
            implicit_wait=implicit_wait,
            handle=handle,
            owner=self._sessions.owner(),
            viewport=viewport,
        )
        self._sessions.set(session)
        LOGGER.info("Browser session %s initialized for: %s", session.id, kind.value)
        return session

    def current(self) -> Session:
        session = self._sessions.get()
        if session is None:
            raise NoActiveSessionError()
        return session

    def is_active(self) -> bool:
        return self._sessions.get() is not None

    def active_count(self) -> int:
        """Number of contexts currently holding a session."""

        return len(self._sessions)

    def destroy(self) -> bool:
        """Terminate the calling context's session, if any.

        Returns ``True`` when a session existed. Driver failures are logged
        and counted, never raised, and the context always ends up without a
        session.
        """

        session = self._sessions.pop()
        if session is None:
            return False
        self._quit(session)
        return True

    @contextmanager
    def session(
        self,
        browser: BrowserName,
        *,
        options: Optional[SessionOptions] = None,
    ) -> Iterator[Session]:
        """Create a session for the block and always destroy it afterwards."""

        session = self.create(browser, options=options)
        try:
            yield session
        finally:
            self.destroy()

    def _configure(
        self, handle: BrowserHandle, options: SessionOptions
    ) -> tuple[float, Optional[Viewport]]:
        try:
            handle.set_implicit_wait(options.implicit_wait)
            if options.viewport_policy == ViewportPolicy.MAXIMIZED:
                viewport = handle.maximize()
            else:
                viewport = DEFAULT_VIEWPORT
            LOGGER.debug("Session configured with timeout: %s seconds", options.implicit_wait)
            return options.implicit_wait, viewport
        except Exception as exc:
            LOGGER.warning("Failed to configure session settings: %s; using defaults", exc)
        try:
            handle.set_implicit_wait(DEFAULT_IMPLICIT_WAIT)
        except Exception as exc:
            LOGGER.warning("Failed to apply default implicit wait: %s", exc)
        return DEFAULT_IMPLICIT_WAIT, DEFAULT_VIEWPORT

    def _quit(self, session: Session) -> None:
        try:
            session.handle.quit()
            LOGGER.debug("Browser session %s quit successfully", session.id)
        except Exception as exc:
            with self._failures_lock:
                self._teardown_failures += 1
            LOGGER.warning("Error while quitting browser session %s: %s", session.id, exc)

    def _release_orphan(self, session: Session) -> None:
        LOGGER.warning(
            "Browser session %s outlived its execution context %s; quitting it",
            session.id,
            session.owner,
        )
        self._quit(session)
