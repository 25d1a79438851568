"""pytest integration exposing runtime components as fixtures.

Enable it from a ``conftest.py`` with::

    pytest_plugins = ["browser_test_runtime.pytest_plugin"]
"""

from __future__ import annotations

from typing import Iterator

import pytest

from .browser.base import BrowserDriver, Session
from .config import ConfigResolver, RuntimeSettings, parse_assignments
from .errors import ConfigurationError
from .execution import ExecutionContext
from .factory import build_backend, build_driver, build_resolver
from .reporting.backends import ReportingBackend
from .reporting.models import StepStatus
from .reporting.sink import ReportSink
from .sessions import SessionManager


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("browser-runtime", "browser test runtime")
    group.addoption(
        "--runtime-browser",
        action="store",
        default=None,
        help="Browser used for browser_session fixtures (chrome, firefox, edge).",
    )
    group.addoption(
        "--runtime-set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a runtime configuration key. Repeatable.",
    )


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo) -> Iterator[None]:
    """Store each phase report so fixtures can see the test outcome."""

    outcome = yield
    report = outcome.get_result()
    setattr(item, f"runtime_rep_{report.when}", report)


@pytest.fixture(scope="session")
def runtime_settings() -> RuntimeSettings:
    return RuntimeSettings()


@pytest.fixture(scope="session")
def runtime_config(
    pytestconfig: pytest.Config, runtime_settings: RuntimeSettings
) -> ConfigResolver:
    try:
        overrides = parse_assignments(pytestconfig.getoption("runtime_set"))
    except ConfigurationError as exc:
        raise pytest.UsageError(exc.message) from exc
    browser = pytestconfig.getoption("runtime_browser")
    if browser:
        overrides["browser"] = browser
    return build_resolver(runtime_settings, overrides)


@pytest.fixture(scope="session")
def browser_driver() -> BrowserDriver:
    return build_driver()


@pytest.fixture(scope="session")
def report_backend(runtime_settings: RuntimeSettings) -> ReportingBackend:
    return build_backend(runtime_settings)


@pytest.fixture(scope="session")
def report_sink(report_backend: ReportingBackend) -> Iterator[ReportSink]:
    sink = ReportSink(report_backend)
    yield sink
    sink.close()


@pytest.fixture(scope="session")
def session_manager(
    runtime_config: ConfigResolver, browser_driver: BrowserDriver
) -> SessionManager:
    return SessionManager(runtime_config, browser_driver)


@pytest.fixture(scope="session")
def execution_context(
    runtime_config: ConfigResolver,
    session_manager: SessionManager,
    report_sink: ReportSink,
) -> Iterator[ExecutionContext]:
    context = ExecutionContext(runtime_config, session_manager, report_sink)
    yield context
    context.close_suite()


@pytest.fixture
def browser_session(
    request: pytest.FixtureRequest, execution_context: ExecutionContext
) -> Iterator[Session]:
    """A session owned by the current test, reported as a TEST step."""

    name = request.node.name
    session = execution_context.begin_test(name, description=request.node.nodeid)
    yield session
    report = getattr(request.node, "runtime_rep_call", None)
    if report is None:
        execution_context.end_test(
            name, outcome=StepStatus.INTERRUPTED, message="Test body did not run"
        )
    elif report.failed:
        message = report.longreprtext.strip().splitlines()[-1:] or ["Test failed"]
        execution_context.end_test(name, outcome=StepStatus.FAILED, message=message[0])
    elif report.skipped:
        execution_context.end_test(name, outcome=StepStatus.SKIPPED)
    else:
        execution_context.end_test(name)
