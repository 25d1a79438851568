"""Reporting backends that receive structured report events."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import httpx
from rich.console import Console

from ..errors import ReportingError
from .models import EventType, LogEvent, LogLevel

LOGGER = logging.getLogger(__name__)


class ReportingBackend(ABC):
    """Interface for an external analytics sink.

    Implementations must accept concurrent ``emit`` calls from many threads
    and keep each event a complete record.
    """

    @abstractmethod
    def emit(self, event: LogEvent) -> None:
        """Deliver a report event."""

    def close(self) -> None:
        """Release backend resources."""


class InMemoryBackend(ReportingBackend):
    """Collect events in memory, useful for tests and local inspection."""

    def __init__(self) -> None:
        self._events: List[LogEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: LogEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[LogEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: EventType) -> List[LogEvent]:
        return [event for event in self.events if event.type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class ConsoleBackend(ReportingBackend):
    """Render report events to the terminal using Rich."""

    _STYLES = {
        LogLevel.TRACE: "dim",
        LogLevel.DEBUG: "dim",
        LogLevel.INFO: "cyan",
        LogLevel.WARN: "yellow",
        LogLevel.ERROR: "red",
        LogLevel.FATAL: "bold red",
    }

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console or Console(stderr=True)
        self._lock = threading.Lock()

    def emit(self, event: LogEvent) -> None:
        indent = "  " * event.depth
        if event.type == EventType.STEP_STARTED:
            line = f"{indent}> {event.step_kind.value if event.step_kind else 'STEP'} {event.message}"
            style = "bold"
        elif event.type == EventType.STEP_FINISHED:
            status = event.status.value if event.status else "UNKNOWN"
            line = f"{indent}< [{status}] {event.message}"
            style = "green" if status == "PASSED" else "yellow"
        else:
            line = f"{indent}[{event.level.value}] {event.message}"
            style = self._STYLES.get(event.level, "white")
        with self._lock:
            self._console.print(line, style=style, markup=False, highlight=False)
            if event.attachment:
                self._console.print(
                    f"{indent}  attachment: {event.attachment.path}", style="dim", markup=False
                )


class HttpReportingBackend(ReportingBackend):
    """POST events as JSON to a reporting service endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        project: str = "default",
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._project = project
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
        )
        self._lock = threading.Lock()

    def emit(self, event: LogEvent) -> None:
        payload = {"project": self._project, **event.model_dump(mode="json")}
        try:
            with self._lock:
                response = self._client.post("/events", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ReportingError(
                "Failed to deliver report event", details=f"{type(exc).__name__}: {exc}"
            ) from exc

    def close(self) -> None:
        self._client.close()


class CompositeBackend(ReportingBackend):
    """Fan-out backend that forwards events to several backends.

    A failing member does not prevent delivery to the others; the first
    failure is re-raised once every member has been tried.
    """

    def __init__(self, backends: Iterable[ReportingBackend]) -> None:
        self._backends = list(backends)

    def emit(self, event: LogEvent) -> None:
        failure: Optional[Exception] = None
        for backend in self._backends:
            try:
                backend.emit(event)
            except Exception as exc:
                failure = failure or exc
        if failure is not None:
            raise failure

    def close(self) -> None:
        for backend in self._backends:
            try:
                backend.close()
            except Exception:
                LOGGER.exception("Failed to close reporting backend %s", backend)
