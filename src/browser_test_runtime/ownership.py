"""State partitioned by execution-context identity."""

from __future__ import annotations

import logging
import threading
import weakref
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

ContextKey = Callable[[], Hashable]


def current_thread_key() -> Hashable:
    """Identify the calling thread by its ``Thread`` object.

    Thread idents are recycled once a thread exits, the ``Thread`` object is
    not, so state keyed by it can never be inherited by a later thread.
    """

    return threading.current_thread()


def owner_id(key: Hashable) -> Hashable:
    """Printable identity for ``key`` that does not keep a thread alive."""

    if isinstance(key, threading.Thread):
        return key.ident
    return key


class ContextRegistry(Generic[T]):
    """Map from execution-context identity to a value owned by that context.

    Keys that support weak references (``Thread`` objects, asyncio tasks) are
    held weakly: when the owning context is garbage collected its entry is
    dropped and handed to ``on_orphan``. Other keys are held strongly.

    The lock only protects the mapping itself. Values are expected to be
    mutated by their owning context alone, so callers never need to hold the
    lock while using them.
    """

    def __init__(
        self,
        key: Optional[ContextKey] = None,
        *,
        on_orphan: Optional[Callable[[T], None]] = None,
    ) -> None:
        self._key = key or current_thread_key
        self._on_orphan = on_orphan
        self._values: Dict[Any, T] = {}
        self._lock = threading.RLock()

    def owner(self) -> Hashable:
        return owner_id(self._key())

    def get(self) -> Optional[T]:
        slot = self._slot(self._key())
        with self._lock:
            return self._values.get(slot)

    def set(self, value: T) -> None:
        slot = self._slot(self._key(), track=True)
        with self._lock:
            self._values.pop(slot, None)
            self._values[slot] = value

    def setdefault(self, factory: Callable[[], T]) -> T:
        key = self._key()
        with self._lock:
            value = self._values.get(self._slot(key))
            if value is None:
                value = factory()
                self._values[self._slot(key, track=True)] = value
            return value

    def pop(self) -> Optional[T]:
        slot = self._slot(self._key())
        with self._lock:
            return self._values.pop(slot, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    # Internal helpers ----------------------------------------------------------

    def _slot(self, key: Hashable, *, track: bool = False) -> Any:
        try:
            if track:
                return weakref.ref(key, self._discard)
            return weakref.ref(key)
        except TypeError:
            return key

    def _discard(self, slot: weakref.ref) -> None:
        with self._lock:
            value = self._values.pop(slot, None)
        if value is None or self._on_orphan is None:
            return
        try:
            self._on_orphan(value)
        except Exception:
            LOGGER.exception("Failed to release state of an exited execution context")
