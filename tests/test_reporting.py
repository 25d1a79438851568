from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

import httpx
import pytest

from browser_test_runtime.errors import ReportingError
from browser_test_runtime.reporting.backends import (
    CompositeBackend,
    HttpReportingBackend,
    InMemoryBackend,
    ReportingBackend,
)
from browser_test_runtime.reporting.models import (
    AttachmentKind,
    EventType,
    LogEvent,
    LogLevel,
    StepKind,
    StepStatus,
)
from browser_test_runtime.reporting.sink import INTERRUPTED_MESSAGE, ReportSink


class FailingBackend(ReportingBackend):
    def __init__(self) -> None:
        self.attempts = 0

    def emit(self, event: LogEvent) -> None:
        self.attempts += 1
        raise ConnectionError("analytics service unreachable")


def build_sink() -> tuple[ReportSink, InMemoryBackend]:
    backend = InMemoryBackend()
    return ReportSink(backend), backend


def finished_names(backend: InMemoryBackend) -> list[str]:
    return [event.step_name for event in backend.of_type(EventType.STEP_FINISHED)]


def test_steps_finish_in_lifo_order() -> None:
    sink, backend = build_sink()
    sink.start_step("A")
    sink.start_step("B")
    sink.start_step("C")

    for _ in range(3):
        assert sink.finish_step(StepStatus.PASSED).ok

    assert finished_names(backend) == ["C", "B", "A"]
    assert sink.depth() == 0


def test_nested_steps_record_depth() -> None:
    sink, backend = build_sink()
    outer = sink.start_step("Login", kind=StepKind.SCENARIO)
    inner = sink.start_step("Submit form", "click the submit button")

    assert outer.depth == 0
    assert inner.depth == 1
    assert sink.current_step() is inner
    started = backend.of_type(EventType.STEP_STARTED)
    assert [event.step_kind for event in started] == [StepKind.SCENARIO, StepKind.STEP]
    assert started[1].description == "click the submit button"


def test_finish_with_empty_stack_emits_single_warning() -> None:
    sink, backend = build_sink()

    outcome = sink.finish_step(StepStatus.PASSED)

    assert not outcome.ok
    warnings = [event for event in backend.events if event.level == LogLevel.WARN]
    assert len(warnings) == 1
    assert warnings[0].message == "No active step to finish"
    assert backend.of_type(EventType.STEP_FINISHED) == []


def test_finishing_two_of_two_steps_then_a_third_warns() -> None:
    sink, backend = build_sink()
    sink.start_step("A")
    sink.start_step("B")

    sink.finish_step(StepStatus.PASSED)
    sink.finish_step(StepStatus.PASSED)
    outcome = sink.finish_step(StepStatus.PASSED)

    assert finished_names(backend) == ["B", "A"]
    assert not outcome.ok


def test_drain_interrupts_every_open_step() -> None:
    sink, backend = build_sink()
    for name in ["suite", "test", "step"]:
        sink.start_step(name)

    drained = sink.drain()

    assert drained == 3
    assert sink.depth() == 0
    finished = backend.of_type(EventType.STEP_FINISHED)
    assert [event.step_name for event in finished] == ["step", "test", "suite"]
    assert all(event.status == StepStatus.INTERRUPTED for event in finished)
    assert all(event.detail == INTERRUPTED_MESSAGE for event in finished)


def test_drain_without_open_steps_is_noop() -> None:
    sink, backend = build_sink()

    assert sink.drain() == 0
    assert backend.events == []


def test_log_events_are_tagged_with_current_step() -> None:
    sink, backend = build_sink()
    sink.info("before any step")
    frame = sink.start_step("Checkout")
    sink.debug("inside checkout")
    sink.finish_step(StepStatus.PASSED)

    logs = backend.of_type(EventType.LOG)
    assert logs[0].step_id is None
    assert logs[0].depth == 0
    assert logs[1].step_id == frame.id
    assert logs[1].step_name == "Checkout"
    assert logs[1].level == LogLevel.DEBUG
    assert logs[1].depth == 1


def test_error_records_exception_description() -> None:
    sink, backend = build_sink()

    sink.error("Checkout failed", ValueError("cart is empty"))

    event = backend.events[0]
    assert event.level == LogLevel.ERROR
    assert event.exception == "ValueError: cart is empty"


def test_backend_failure_is_absorbed(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="browser_test_runtime.reporting.sink")
    backend = FailingBackend()
    sink = ReportSink(backend)

    sink.start_step("A")
    sink.info("message")
    outcome = sink.finish_step(StepStatus.PASSED)

    assert outcome.ok
    assert backend.attempts == 3
    assert sink.delivery_failures == 3
    assert sink.depth() == 0
    assert "Failed to send report event to backend" in caplog.text


def test_events_reach_fallback_logger(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="browser_test_runtime.reporting.sink")
    sink, _ = build_sink()

    sink.start_step("Search", "query the catalog")
    sink.finish_step(StepStatus.FAILED, "no results")

    assert "Report step started: Search (query the catalog)" in caplog.text
    assert "Report step finished with status FAILED: Search - no results" in caplog.text


def test_attach_missing_file_warns(tmp_path: Path) -> None:
    sink, backend = build_sink()

    outcome = sink.attach_screenshot(tmp_path / "missing.png", "Failure screenshot")

    assert not outcome.ok
    assert backend.of_type(EventType.ATTACHMENT) == []
    assert backend.events[0].level == LogLevel.WARN
    assert "Screenshot file not found" in backend.events[0].message


def test_attach_existing_file_binds_to_current_step(tmp_path: Path) -> None:
    sink, backend = build_sink()
    log_file = tmp_path / "server.log"
    log_file.write_text("started")
    frame = sink.start_step("Collect logs")

    outcome = sink.attach_file(log_file, "Server log")

    assert outcome.ok
    attachment = backend.of_type(EventType.ATTACHMENT)[0]
    assert attachment.step_id == frame.id
    assert attachment.attachment.kind == AttachmentKind.FILE
    assert attachment.attachment.path == log_file
    assert attachment.message == "Server log"


def test_step_context_manager_reports_failure_and_reraises() -> None:
    sink, backend = build_sink()

    with pytest.raises(RuntimeError):
        with sink.step("Pay"):
            raise RuntimeError("card declined")

    finished = backend.of_type(EventType.STEP_FINISHED)[0]
    assert finished.status == StepStatus.FAILED
    assert "card declined" in finished.detail
    assert sink.depth() == 0


def test_scenario_context_manager_passes() -> None:
    sink, backend = build_sink()

    with sink.scenario("Guest checkout") as frame:
        with sink.step("Add to cart"):
            sink.log_ui_action("click", "Add to cart")

    assert frame.kind == StepKind.SCENARIO
    assert finished_names(backend) == ["Add to cart", "Guest checkout"]
    messages = [event.message for event in backend.of_type(EventType.LOG)]
    assert "Starting scenario: Guest checkout" in messages
    assert "UI Action: click on 'Add to cart'" in messages


def test_api_and_verification_helpers() -> None:
    sink, backend = build_sink()

    sink.log_api_request("post", "/orders", '{"sku": 1}')
    sink.log_api_response(201, 42.4)
    sink.log_ui_verification("title is shown", False)

    messages = [(event.level, event.message) for event in backend.events]
    assert messages == [
        (LogLevel.INFO, "API Request: POST /orders"),
        (LogLevel.DEBUG, 'Request Body: {"sku": 1}'),
        (LogLevel.INFO, "API Response: Status 201 | Time: 42ms"),
        (LogLevel.WARN, "UI Verification: title is shown - FAILED"),
    ]


def test_step_stacks_are_isolated_per_thread() -> None:
    backend = InMemoryBackend()
    sink = ReportSink(backend)
    barrier = threading.Barrier(2)
    depths: dict[str, int] = {}

    def worker(prefix: str) -> None:
        sink.start_step(f"{prefix}-outer")
        sink.start_step(f"{prefix}-inner")
        barrier.wait(timeout=5)
        depths[prefix] = sink.depth()
        sink.finish_step(StepStatus.PASSED)
        sink.finish_step(StepStatus.PASSED)

    threads = [threading.Thread(target=worker, args=(prefix,)) for prefix in ["t1", "t2"]]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert depths == {"t1": 2, "t2": 2}
    for prefix in ["t1", "t2"]:
        names = [name for name in finished_names(backend) if name.startswith(prefix)]
        assert names == [f"{prefix}-inner", f"{prefix}-outer"]
    assert sink.depth() == 0


def test_log_levels_are_ordered() -> None:
    assert LogLevel.TRACE < LogLevel.DEBUG < LogLevel.INFO < LogLevel.WARN
    assert LogLevel.WARN < LogLevel.ERROR < LogLevel.FATAL
    assert max([LogLevel.INFO, LogLevel.FATAL, LogLevel.DEBUG]) is LogLevel.FATAL
    assert LogLevel.WARN.logging_level == logging.WARNING


def test_composite_backend_delivers_to_every_member() -> None:
    memory = InMemoryBackend()
    failing = FailingBackend()
    composite = CompositeBackend([failing, memory])

    with pytest.raises(ConnectionError):
        composite.emit(LogEvent(message="hello"))

    assert len(memory.events) == 1
    assert failing.attempts == 1


def test_http_backend_posts_event_payload() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    client = httpx.Client(
        base_url="https://reports.example.com/api",
        transport=httpx.MockTransport(handler),
    )
    backend = HttpReportingBackend(
        "https://reports.example.com/api", project="shop", client=client
    )
    sink = ReportSink(backend)

    sink.start_step("Checkout")
    sink.finish_step(StepStatus.PASSED)

    assert len(requests) == 2
    assert requests[0].url.path == "/api/events"
    payload = json.loads(requests[1].content)
    assert payload["project"] == "shop"
    assert payload["type"] == "step_finished"
    assert payload["status"] == "PASSED"
    assert payload["step_name"] == "Checkout"
    assert sink.delivery_failures == 0
    backend.close()


def test_http_backend_error_becomes_reporting_error() -> None:
    client = httpx.Client(
        base_url="https://reports.example.com",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    backend = HttpReportingBackend("https://reports.example.com", client=client)

    with pytest.raises(ReportingError):
        backend.emit(LogEvent(message="hello"))

    sink = ReportSink(backend)
    sink.start_step("A")
    assert sink.finish_step(StepStatus.PASSED).ok
    assert sink.delivery_failures == 2


def test_new_thread_does_not_inherit_open_steps_of_exited_thread() -> None:
    sink, backend = build_sink()
    depths: list[int] = []

    def leave_step_open() -> None:
        sink.start_step("abandoned")

    def start_fresh() -> None:
        depths.append(sink.depth())
        depths.append(sink.start_step("fresh").depth)
        sink.finish_step(StepStatus.PASSED)

    for _ in range(10):
        for target in (leave_step_open, start_fresh):
            thread = threading.Thread(target=target)
            thread.start()
            thread.join()

    assert depths == [0, 0] * 10
    assert finished_names(backend) == ["fresh"] * 10
