"""Exception hierarchy shared by the runtime components."""

from __future__ import annotations

from typing import Iterable, Optional


class RuntimeFrameworkError(RuntimeError):
    """Base error carrying the failing component and diagnostic details."""

    def __init__(
        self,
        message: str,
        *,
        component: str,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.component = component
        self.details = details

    def __str__(self) -> str:
        text = f"[{self.component}] {self.message}"
        if self.details:
            text = f"{text} ({self.details})"
        return text


class ConfigurationError(RuntimeFrameworkError):
    """Raised when a configuration value cannot be produced."""

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            component="ConfigResolver",
            details=f"key: {key}, source: {source}",
        )
        self.key = key
        self.source = source


class MissingKeyError(ConfigurationError):
    """No configuration source yielded a value for the key."""

    def __init__(self, key: str) -> None:
        super().__init__(
            f"Property '{key}' not found in any configuration source",
            key=key,
            source="all sources",
        )


class InvalidFormatError(ConfigurationError):
    """A resolved value could not be converted to the requested type."""

    def __init__(self, key: str, value: str, expected: str) -> None:
        super().__init__(
            f"Property '{key}' value '{value}' is not a valid {expected}",
            key=key,
            source="value parsing",
        )
        self.value = value
        self.expected = expected


class SessionError(RuntimeFrameworkError):
    """Raised when a browser session cannot be created or used."""

    def __init__(
        self,
        message: str,
        *,
        browser: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            component="SessionManager",
            details=f"browser: {browser}, operation: {operation}",
        )
        self.browser = browser
        self.operation = operation


class SessionConflictError(SessionError):
    """The calling context already owns an active session."""

    def __init__(self, browser: str, active_browser: str) -> None:
        super().__init__(
            f"A {active_browser} session is already active for this execution context; "
            "call destroy() before creating another",
            browser=browser,
            operation="create",
        )
        self.active_browser = active_browser


class NoActiveSessionError(SessionError):
    """The calling context has no session."""

    def __init__(self) -> None:
        super().__init__(
            "No browser session initialized for the current execution context. "
            "Call create() first.",
            operation="session retrieval",
        )


class UnsupportedBrowserError(SessionError):
    """The requested browser kind is not one of the supported kinds."""

    def __init__(self, browser: Optional[str], supported: Iterable[str]) -> None:
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported browser: {browser!r}. "
            f"Supported browsers: {', '.join(self.supported)}",
            browser=browser,
            operation="browser validation",
        )


class SessionCreationError(SessionError):
    """The underlying driver failed to launch a session."""


class ReportingError(RuntimeFrameworkError):
    """Raised by reporting backends; always absorbed by the report sink."""

    def __init__(self, message: str, *, details: Optional[str] = None) -> None:
        super().__init__(message, component="ReportSink", details=details)
