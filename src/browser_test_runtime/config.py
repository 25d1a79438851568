"""Layered configuration resolution for the test runtime."""

from __future__ import annotations

import enum
import logging
import os
import re
import threading
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError, InvalidFormatError, MissingKeyError

LOGGER = logging.getLogger(__name__)

DEFAULT_VALUES: Mapping[str, str] = MappingProxyType(
    {
        "browser": "chrome",
        "headless": "false",
        "timeout": "10",
        "baseUrl": "https://example.com",
        "apiTimeout": "30000",
        "apiRetryCount": "3",
        "reportPath": "target/reports/",
        "screenshotPath": "screenshots/",
    }
)

_TRUE_VALUES = {"true", "1", "yes", "on"}

_INTEGER = re.compile(r"[+-]?[0-9]+")


class ConfigSource(str, enum.Enum):
    """Where a resolved value came from, highest priority first."""

    OVERRIDE = "override"
    ENVIRONMENT = "environment"
    FILE = "file"
    DEFAULTS = "defaults"


class ConfigValue(BaseModel):
    """A resolved configuration entry."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str
    source: ConfigSource


class RuntimeSettings(BaseSettings):
    """Process-level settings used to wire the runtime together."""

    model_config = SettingsConfigDict(
        env_prefix="BROWSER_RUNTIME_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_file: Optional[Path] = Field(
        default=Path("config.properties"),
        description="Key/value file consulted after overrides and environment.",
    )
    report_backend: str = Field(default="console")
    report_endpoint: Optional[str] = None
    report_project: str = Field(default="default")
    report_token: Optional[str] = None
    report_timeout: float = Field(default=10.0)


def load_key_value_file(path: Path) -> dict[str, str]:
    """Read ``key=value`` lines from ``path``.

    Missing or unreadable files yield an empty mapping and a warning; they
    never abort startup.
    """

    if not path.is_file():
        LOGGER.warning("Configuration file not found: %s; using remaining sources", path)
        return {}
    try:
        raw = dotenv_values(path, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("Failed to load configuration file %s: %s", path, exc)
        return {}
    values = {key: value for key, value in raw.items() if value is not None}
    LOGGER.debug("Loaded %d properties from %s", len(values), path)
    return values


class ConfigResolver:
    """Resolve string keys from overrides, environment, file and defaults.

    The file and default tables are frozen at construction. The override
    store is the only mutable table and is guarded by a lock.
    """

    def __init__(
        self,
        *,
        file_values: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        defaults: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._file_values = MappingProxyType(dict(file_values or {}))
        self._defaults = MappingProxyType(dict(DEFAULT_VALUES if defaults is None else defaults))
        self._environ = environ
        self._overrides: dict[str, str] = dict(overrides or {})
        self._lock = threading.Lock()

    @classmethod
    def from_file(
        cls,
        path: Optional[Path],
        *,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> "ConfigResolver":
        file_values = load_key_value_file(path) if path is not None else {}
        return cls(file_values=file_values, environ=environ, overrides=overrides)

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        *,
        overrides: Optional[Mapping[str, str]] = None,
    ) -> "ConfigResolver":
        return cls.from_file(settings.config_file, overrides=overrides)

    # Override store ------------------------------------------------------------

    def set_override(self, key: str, value: str) -> None:
        _validate_key(key)
        with self._lock:
            self._overrides[key] = value

    def clear_override(self, key: str) -> None:
        with self._lock:
            self._overrides.pop(key, None)

    def overrides(self) -> dict[str, str]:
        with self._lock:
            return dict(self._overrides)

    # Resolution ----------------------------------------------------------------

    def resolve_value(self, key: str) -> ConfigValue:
        """Return the highest-priority non-blank value for ``key``."""

        _validate_key(key)
        with self._lock:
            override = self._overrides.get(key)
        environ = os.environ if self._environ is None else self._environ
        chain = (
            (ConfigSource.OVERRIDE, override),
            (ConfigSource.ENVIRONMENT, environ.get(key)),
            (ConfigSource.FILE, self._file_values.get(key)),
            (ConfigSource.DEFAULTS, self._defaults.get(key)),
        )
        for source, candidate in chain:
            if candidate is None or not str(candidate).strip():
                continue
            LOGGER.debug("Property '%s' found in %s", key, source.value)
            return ConfigValue(key=key, value=str(candidate).strip(), source=source)
        raise MissingKeyError(key)

    def resolve(self, key: str) -> str:
        return self.resolve_value(key).value

    def resolve_bool(self, key: str) -> bool:
        return self.resolve(key).lower() in _TRUE_VALUES

    def resolve_int(self, key: str) -> int:
        value = self.resolve(key)
        if not _INTEGER.fullmatch(value):
            raise InvalidFormatError(key, value, "integer")
        return int(value)

    def has_key(self, key: str) -> bool:
        try:
            self.resolve_value(key)
        except ConfigurationError:
            return False
        return True

    def snapshot(self) -> dict[str, str]:
        """Defaults merged with file values, for debugging output."""

        merged = dict(self._defaults)
        merged.update(self._file_values)
        return merged


def parse_assignments(items: list[str]) -> dict[str, str]:
    """Turn ``key=value`` strings into an override mapping."""

    overrides: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(
                f"Override '{item}' must use the form key=value",
                key=key or None,
                source="override",
            )
        overrides[key.strip()] = value
    return overrides


def _validate_key(key: Optional[str]) -> None:
    if key is None or not key.strip():
        raise ConfigurationError(
            "Property key cannot be null or empty",
            key=key,
            source="input validation",
        )
