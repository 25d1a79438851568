from __future__ import annotations

import pytest

from browser_test_runtime.config import RuntimeSettings
from browser_test_runtime.errors import ConfigurationError
from browser_test_runtime.factory import build_backend
from browser_test_runtime.reporting.backends import (
    ConsoleBackend,
    HttpReportingBackend,
    InMemoryBackend,
)


def _settings(**values: object) -> RuntimeSettings:
    return RuntimeSettings(_env_file=None, **values)


def test_build_backend_defaults_to_console(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BROWSER_RUNTIME_REPORT_BACKEND", raising=False)
    assert isinstance(build_backend(_settings()), ConsoleBackend)


def test_build_backend_memory_is_case_insensitive() -> None:
    assert isinstance(build_backend(_settings(report_backend="Memory")), InMemoryBackend)


def test_build_backend_http_requires_endpoint() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        build_backend(_settings(report_backend="http"))

    assert excinfo.value.key == "report_endpoint"


def test_build_backend_http() -> None:
    backend = build_backend(
        _settings(report_backend="http", report_endpoint="https://reports.example.com")
    )

    assert isinstance(backend, HttpReportingBackend)
    backend.close()


def test_build_backend_rejects_unknown_kind() -> None:
    with pytest.raises(ValueError):
        build_backend(_settings(report_backend="carrier-pigeon"))
