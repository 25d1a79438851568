"""Factories for constructing runtime components from settings."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

from .browser.base import BrowserDriver
from .browser.playwright_session import PlaywrightDriver
from .config import ConfigResolver, RuntimeSettings
from .errors import ConfigurationError
from .execution import ExecutionContext
from .reporting.backends import (
    ConsoleBackend,
    HttpReportingBackend,
    InMemoryBackend,
    ReportingBackend,
)
from .reporting.sink import ReportSink
from .sessions import SessionManager


def build_resolver(
    settings: RuntimeSettings,
    overrides: Optional[Mapping[str, str]] = None,
) -> ConfigResolver:
    return ConfigResolver.from_settings(settings, overrides=overrides)


def build_driver() -> BrowserDriver:
    return PlaywrightDriver()


def build_backend(settings: RuntimeSettings) -> ReportingBackend:
    kind = settings.report_backend.lower()
    if kind == "console":
        return ConsoleBackend()
    if kind == "memory":
        return InMemoryBackend()
    if kind == "http":
        if not settings.report_endpoint:
            raise ConfigurationError(
                "HTTP reporting requires a report endpoint",
                key="report_endpoint",
                source="settings",
            )
        return HttpReportingBackend(
            settings.report_endpoint,
            project=settings.report_project,
            token=settings.report_token,
            timeout=settings.report_timeout,
        )
    raise ValueError(f"Unsupported reporting backend: {settings.report_backend}")


def build_runtime(
    settings: Optional[RuntimeSettings] = None,
    *,
    overrides: Optional[Mapping[str, str]] = None,
    driver: Optional[BrowserDriver] = None,
    backend: Optional[ReportingBackend] = None,
) -> ExecutionContext:
    """Wire a resolver, session manager and report sink together."""

    settings = settings or RuntimeSettings()
    config = build_resolver(settings, overrides)
    sessions = SessionManager(config, driver or build_driver())
    reporter = ReportSink(backend or build_backend(settings))
    return ExecutionContext(config, sessions, reporter)
