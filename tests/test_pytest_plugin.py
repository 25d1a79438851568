from __future__ import annotations

import pytest

CONFTEST = """
from pathlib import Path

import pytest

from browser_test_runtime.browser.base import (
    MAXIMIZED_VIEWPORT,
    BrowserDriver,
    BrowserHandle,
)
from browser_test_runtime.reporting.backends import InMemoryBackend

pytest_plugins = ["browser_test_runtime.pytest_plugin"]


class FakeHandle(BrowserHandle):
    def set_implicit_wait(self, seconds):
        pass

    def maximize(self):
        return MAXIMIZED_VIEWPORT

    def open(self, url):
        pass

    def screenshot(self, path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"png")
        return path

    def quit(self):
        pass


class FakeDriver(BrowserDriver):
    def __init__(self):
        self.launched = []

    def launch(self, options):
        self.launched.append(options.browser.value)
        return FakeHandle()


@pytest.fixture(scope="session")
def browser_driver():
    return FakeDriver()


@pytest.fixture(scope="session")
def report_backend():
    return InMemoryBackend()
"""


def test_browser_session_fixture_reports_outcomes(pytester: pytest.Pytester) -> None:
    pytester.makeconftest(CONFTEST)
    pytester.makepyfile(
        """
        from browser_test_runtime.reporting.models import EventType, StepKind, StepStatus


        def test_passes(browser_session):
            assert browser_session.kind.value == "firefox"


        def test_fails(browser_session):
            assert 1 == 2


        def test_reports_previous_outcomes(report_backend, browser_driver, session_manager):
            finished = [
                (event.step_name, event.step_kind, event.status)
                for event in report_backend.of_type(EventType.STEP_FINISHED)
            ]
            assert finished == [
                ("test_passes", StepKind.TEST, StepStatus.PASSED),
                ("test_fails", StepKind.TEST, StepStatus.FAILED),
            ]
            attachments = report_backend.of_type(EventType.ATTACHMENT)
            assert [event.step_name for event in attachments] == ["test_fails"]
            assert browser_driver.launched == ["firefox", "firefox"]
            assert not session_manager.is_active()
        """
    )

    result = pytester.runpytest("--runtime-browser", "firefox")

    result.assert_outcomes(passed=2, failed=1)


def test_runtime_set_option_overrides_configuration(pytester: pytest.Pytester) -> None:
    pytester.makeconftest(CONFTEST)
    pytester.makepyfile(
        """
        def test_override(runtime_config):
            assert runtime_config.resolve("baseUrl") == "https://staging.example.com"
            assert runtime_config.resolve_value("baseUrl").source.value == "override"
        """
    )

    result = pytester.runpytest("--runtime-set", "baseUrl=https://staging.example.com")

    result.assert_outcomes(passed=1)


def test_malformed_runtime_set_is_reported(pytester: pytest.Pytester) -> None:
    pytester.makeconftest(CONFTEST)
    pytester.makepyfile(
        """
        def test_uses_config(runtime_config):
            pass
        """
    )

    result = pytester.runpytest("--runtime-set", "baseUrl")

    assert result.ret != 0
