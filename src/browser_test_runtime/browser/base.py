"""Browser driver abstractions used by the session manager."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Hashable, Optional

from pydantic import BaseModel, ConfigDict, Field


class BrowserKind(str, enum.Enum):
    """Supported browser families."""

    CHROME = "chrome"
    FIREFOX = "firefox"
    EDGE = "edge"

    @classmethod
    def supported(cls) -> tuple[str, ...]:
        return tuple(kind.value for kind in cls)


class ViewportPolicy(str, enum.Enum):
    """How the session window is sized after launch."""

    MAXIMIZED = "maximized"
    DEFAULT = "default"


@dataclass(frozen=True)
class Viewport:
    """Size of the page viewport."""

    width: int
    height: int


DEFAULT_VIEWPORT = Viewport(width=1280, height=720)
MAXIMIZED_VIEWPORT = Viewport(width=1920, height=1080)


class SessionOptions(BaseModel):
    """Immutable launch configuration for a single session."""

    model_config = ConfigDict(frozen=True)

    browser: BrowserKind
    headless: bool = False
    implicit_wait: float = Field(default=10.0, description="Default wait in seconds")
    viewport_policy: ViewportPolicy = ViewportPolicy.MAXIMIZED
    disable_notifications: bool = True


class BrowserHandle(ABC):
    """A launched browser instance owned by one session."""

    @abstractmethod
    def set_implicit_wait(self, seconds: float) -> None:
        """Apply the default wait used by element lookups."""

    @abstractmethod
    def maximize(self) -> Viewport:
        """Grow the viewport to the maximised size and return it."""

    @abstractmethod
    def open(self, url: str) -> None:
        """Navigate to ``url``."""

    @abstractmethod
    def screenshot(self, path: Path) -> Path:
        """Write a PNG screenshot to ``path``."""

    @abstractmethod
    def quit(self) -> None:
        """Terminate the browser process."""


class BrowserDriver(ABC):
    """Factory launching browser handles."""

    @abstractmethod
    def launch(self, options: SessionOptions) -> BrowserHandle:
        """Start a browser for ``options`` and return its handle."""


@dataclass
class Session:
    """One live browser automation instance."""

    id: str
    kind: BrowserKind
    headless: bool
    implicit_wait: float
    handle: BrowserHandle
    owner: Hashable
    viewport: Optional[Viewport] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
