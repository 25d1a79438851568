"""Step-stack based structured reporting."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union

from ..ownership import ContextKey, ContextRegistry
from .backends import ConsoleBackend, ReportingBackend
from .models import (
    Attachment,
    AttachmentKind,
    EventType,
    LogEvent,
    LogLevel,
    ReportOutcome,
    StepFrame,
    StepKind,
    StepStatus,
)

LOGGER = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Step cleanup - test ended unexpectedly"


class ReportSink:
    """Narrate test execution as nested steps and leveled log events.

    Each execution context owns its own LIFO stack of open steps. Every event
    is written to the fallback logger first and then forwarded to the
    backend; backend failures are logged and absorbed so reporting problems
    never fail a test.
    """

    def __init__(
        self,
        backend: Optional[ReportingBackend] = None,
        *,
        context_key: Optional[ContextKey] = None,
        fallback: Optional[logging.Logger] = None,
    ) -> None:
        self._backend = backend or ConsoleBackend()
        self._stacks: ContextRegistry[List[StepFrame]] = ContextRegistry(context_key)
        self._fallback = fallback or LOGGER
        self._failures_lock = threading.Lock()
        self._delivery_failures = 0

    @property
    def backend(self) -> ReportingBackend:
        return self._backend

    @property
    def delivery_failures(self) -> int:
        with self._failures_lock:
            return self._delivery_failures

    # Steps ---------------------------------------------------------------------

    def start_step(
        self,
        name: str,
        description: Optional[str] = None,
        kind: StepKind = StepKind.STEP,
    ) -> StepFrame:
        stack = self._stacks.setdefault(list)
        frame = StepFrame(
            id=uuid.uuid4().hex,
            name=name,
            kind=kind,
            description=description,
            depth=len(stack),
        )
        stack.append(frame)
        self._emit(
            LogEvent(
                type=EventType.STEP_STARTED,
                message=name,
                step_id=frame.id,
                step_name=frame.name,
                step_kind=frame.kind,
                depth=frame.depth,
                description=description,
            )
        )
        return frame

    def finish_step(self, status: StepStatus, message: Optional[str] = None) -> ReportOutcome:
        """Finish the most recently started step of the calling context."""

        stack = self._stacks.get()
        if not stack:
            self.warn("No active step to finish")
            return ReportOutcome.soft_failure("No active step to finish")
        frame = stack.pop()
        if not stack:
            self._stacks.pop()
        self._emit(
            LogEvent(
                type=EventType.STEP_FINISHED,
                message=frame.name,
                step_id=frame.id,
                step_name=frame.name,
                step_kind=frame.kind,
                depth=frame.depth,
                status=status,
                detail=message,
            )
        )
        return ReportOutcome.success(frame)

    def drain(self) -> int:
        """Finish every open step as interrupted and return how many were open."""

        drained = 0
        while self.depth():
            self.finish_step(StepStatus.INTERRUPTED, INTERRUPTED_MESSAGE)
            drained += 1
        self._stacks.pop()
        if drained:
            LOGGER.debug("Drained %d open report steps", drained)
        return drained

    def current_step(self) -> Optional[StepFrame]:
        stack = self._stacks.get()
        return stack[-1] if stack else None

    def depth(self) -> int:
        stack = self._stacks.get()
        return len(stack) if stack else 0

    @contextmanager
    def step(
        self,
        name: str,
        description: Optional[str] = None,
        kind: StepKind = StepKind.STEP,
    ) -> Iterator[StepFrame]:
        """Run a block as a step, finishing it as passed or failed."""

        frame = self.start_step(name, description, kind)
        try:
            yield frame
        except Exception as exc:
            self.error(f"Step failed: {name}", exc)
            self.finish_step(StepStatus.FAILED, f"Step execution failed: {exc}")
            raise
        self.finish_step(StepStatus.PASSED)

    @contextmanager
    def scenario(self, name: str, description: Optional[str] = None) -> Iterator[StepFrame]:
        frame = self.start_step(name, description, StepKind.SCENARIO)
        self.info(f"Starting scenario: {name}")
        try:
            yield frame
        except Exception as exc:
            self.error(f"Scenario failed: {name}", exc)
            self.finish_step(StepStatus.FAILED, f"Scenario execution failed: {exc}")
            raise
        self.info("Scenario completed successfully")
        self.finish_step(StepStatus.PASSED)

    # Logging -------------------------------------------------------------------

    def log(self, level: LogLevel, message: str, exc: Optional[BaseException] = None) -> None:
        self._emit(
            LogEvent(
                level=level,
                message=message,
                exception=_describe(exc) if exc is not None else None,
                **self._step_context(),
            )
        )

    def trace(self, message: str) -> None:
        self.log(LogLevel.TRACE, message)

    def debug(self, message: str) -> None:
        self.log(LogLevel.DEBUG, message)

    def info(self, message: str) -> None:
        self.log(LogLevel.INFO, message)

    def warn(self, message: str) -> None:
        self.log(LogLevel.WARN, message)

    def error(self, message: str, exc: Optional[BaseException] = None) -> None:
        self.log(LogLevel.ERROR, message, exc)

    def fatal(self, message: str, exc: Optional[BaseException] = None) -> None:
        self.log(LogLevel.FATAL, message, exc)

    def log_api_request(self, method: str, endpoint: str, body: Optional[str] = None) -> None:
        self.info(f"API Request: {method.upper()} {endpoint}")
        if body:
            self.debug(f"Request Body: {body}")

    def log_api_response(
        self, status_code: int, elapsed_ms: float, body: Optional[str] = None
    ) -> None:
        self.info(f"API Response: Status {status_code} | Time: {elapsed_ms:.0f}ms")
        if body:
            self.debug(f"Response Body: {body}")

    def log_ui_action(self, action: str, element: str) -> None:
        self.info(f"UI Action: {action} on '{element}'")

    def log_ui_verification(self, verification: str, result: bool) -> None:
        outcome = "PASSED" if result else "FAILED"
        self.log(
            LogLevel.INFO if result else LogLevel.WARN,
            f"UI Verification: {verification} - {outcome}",
        )

    def log_test_data(self, description: str, data: Any) -> None:
        self.info(f"Test Data: {description}")
        self.debug(f"Data Details: {data!r}")

    # Attachments ---------------------------------------------------------------

    def attach(
        self,
        kind: AttachmentKind,
        path: Union[str, Path],
        description: str,
    ) -> ReportOutcome:
        """Bind a file to the current step; missing files only warn."""

        file_path = Path(path)
        if not file_path.is_file():
            message = f"{kind.value.capitalize()} file not found: {file_path}"
            self.warn(message)
            return ReportOutcome.soft_failure(message)
        self._emit(
            LogEvent(
                type=EventType.ATTACHMENT,
                message=description,
                attachment=Attachment(kind=kind, path=file_path, description=description),
                **self._step_context(),
            )
        )
        return ReportOutcome.success(self.current_step())

    def attach_screenshot(self, path: Union[str, Path], description: str) -> ReportOutcome:
        return self.attach(AttachmentKind.SCREENSHOT, path, description)

    def attach_file(self, path: Union[str, Path], description: str) -> ReportOutcome:
        return self.attach(AttachmentKind.FILE, path, description)

    def close(self) -> None:
        try:
            self._backend.close()
        except Exception:
            LOGGER.exception("Failed to close reporting backend")

    # Internal helpers ----------------------------------------------------------

    def _step_context(self) -> dict[str, Any]:
        frame = self.current_step()
        if frame is None:
            return {}
        return {
            "step_id": frame.id,
            "step_name": frame.name,
            "step_kind": frame.kind,
            "depth": frame.depth + 1,
        }

    def _emit(self, event: LogEvent) -> None:
        self._fallback.log(event.level.logging_level, "%s", _render(event))
        try:
            self._backend.emit(event)
        except Exception as exc:
            with self._failures_lock:
                self._delivery_failures += 1
            self._fallback.error("Failed to send report event to backend: %s", exc)


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def _render(event: LogEvent) -> str:
    if event.type == EventType.STEP_STARTED:
        text = f"Report step started: {event.message}"
        if event.description:
            text = f"{text} ({event.description})"
        return text
    if event.type == EventType.STEP_FINISHED:
        status = event.status.value if event.status else "UNKNOWN"
        text = f"Report step finished with status {status}: {event.message}"
        if event.detail:
            text = f"{text} - {event.detail}"
        return text
    if event.type == EventType.ATTACHMENT and event.attachment:
        return f"Attached {event.attachment.kind.value} {event.attachment.path}: {event.message}"
    if event.exception:
        return f"{event.message} [{event.exception}]"
    return event.message
