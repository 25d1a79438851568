"""Event and step models emitted by the report sink."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class LogLevel(str, enum.Enum):
    """Severity of report events, ordered from TRACE to FATAL."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @property
    def logging_level(self) -> int:
        return _LOGGING_LEVELS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.severity >= other.severity


_SEVERITY = {level: index for index, level in enumerate(LogLevel)}

_LOGGING_LEVELS = {
    LogLevel.TRACE: TRACE,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.FATAL: logging.CRITICAL,
}


class StepKind(str, enum.Enum):
    """Kinds of reporting steps, including lifecycle phases."""

    SUITE = "SUITE"
    STORY = "STORY"
    TEST = "TEST"
    SCENARIO = "SCENARIO"
    STEP = "STEP"
    BEFORE_CLASS = "BEFORE_CLASS"
    BEFORE_METHOD = "BEFORE_METHOD"
    AFTER_METHOD = "AFTER_METHOD"
    AFTER_CLASS = "AFTER_CLASS"


class StepStatus(str, enum.Enum):
    """Terminal status of a finished step."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    INTERRUPTED = "INTERRUPTED"
    CANCELLED = "CANCELLED"


class EventType(str, enum.Enum):
    LOG = "log"
    STEP_STARTED = "step_started"
    STEP_FINISHED = "step_finished"
    ATTACHMENT = "attachment"


class AttachmentKind(str, enum.Enum):
    SCREENSHOT = "screenshot"
    FILE = "file"


@dataclass(frozen=True)
class StepFrame:
    """An open step on an execution context's stack."""

    id: str
    name: str
    kind: StepKind = StepKind.STEP
    description: Optional[str] = None
    depth: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Attachment(BaseModel):
    """File artifact bound to a step."""

    kind: AttachmentKind
    path: Path
    description: str


class LogEvent(BaseModel):
    """A single report record forwarded to the backend."""

    type: EventType = EventType.LOG
    level: LogLevel = LogLevel.INFO
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    step_id: Optional[str] = None
    step_name: Optional[str] = None
    step_kind: Optional[StepKind] = None
    depth: int = 0
    status: Optional[StepStatus] = None
    description: Optional[str] = None
    detail: Optional[str] = None
    exception: Optional[str] = None
    attachment: Optional[Attachment] = None


class OutcomeStatus(str, enum.Enum):
    OK = "ok"
    SOFT_FAILURE = "soft_failure"


@dataclass(frozen=True)
class ReportOutcome:
    """Result of a report operation that may fail without raising."""

    status: OutcomeStatus
    message: Optional[str] = None
    frame: Optional[StepFrame] = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @classmethod
    def success(cls, frame: Optional[StepFrame] = None) -> "ReportOutcome":
        return cls(status=OutcomeStatus.OK, frame=frame)

    @classmethod
    def soft_failure(cls, message: str) -> "ReportOutcome":
        return cls(status=OutcomeStatus.SOFT_FAILURE, message=message)
