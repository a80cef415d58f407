"""Configuration sources: where flat key/value settings come from."""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from typing import Any


class _ChangeSignal:
    """A notification channel that tells watchers a source has changed.

    Notifications that arrive while one is already pending are merged into it,
    so a slow watcher never blocks the source that notifies.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = False
        self._closed = False
        self._listeners: list[Callable[[], None]] = []

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def notify(self) -> None:
        """Signal a change; does nothing once the signal is closed."""
        with self._cond:
            if self._closed:
                return
            self._pending = True
            listeners = list(self._listeners)
            self._cond.notify_all()
        for listener in listeners:
            listener()

    def add_listener(self, listener: Callable[[], None]) -> None:
        """Call ``listener`` on every future notification."""
        with self._cond:
            self._listeners.append(listener)

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for a change; True if one arrived, False on timeout or close."""
        with self._cond:
            self._cond.wait_for(lambda: self._pending or self._closed, timeout)
            if self._pending:
                self._pending = False
                return True
            return False

    def close(self) -> None:
        """Close the signal and wake every waiter."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[None]:
        while self.wait():
            yield None


class Source(ABC):
    """A place configuration values are read from."""

    @abstractmethod
    def read(self) -> dict[str, Any]:
        """Return the current configuration as a flat dict."""

    @abstractmethod
    def watch(self) -> _ChangeSignal | None:
        """Return a change signal, or None when the source never changes."""

    @abstractmethod
    def close(self) -> None:
        """Release whatever the source holds."""


class CompositeSource(Source):
    """Combines several sources; later sources override earlier ones."""

    def __init__(self, *sources: Source) -> None:
        self._sources = list(sources)

    def read(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for source in self._sources:
            result.update(source.read())
        return result

    def watch(self) -> _ChangeSignal:
        signal = _ChangeSignal()
        for source in self._sources:
            child = source.watch()
            if child is not None:
                child.add_listener(signal.notify)
        return signal

    def close(self) -> None:
        for source in self._sources:
            source.close()


class MemorySource(Source):
    """Keeps configuration in memory and signals every change."""

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})
        self._lock = threading.RLock()
        self._signal = _ChangeSignal()

    def read(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def watch(self) -> _ChangeSignal:
        return self._signal

    def close(self) -> None:
        pass

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` and notify watchers."""
        with self._lock:
            self._values[key] = value
        self._signal.notify()

    def delete(self, key: str) -> None:
        """Remove ``key`` if present and notify watchers."""
        with self._lock:
            self._values.pop(key, None)
        self._signal.notify()


class EnvSource(Source):
    """Reads environment variables, optionally only those with a prefix.

    The prefix is removed, the name lower-cased and underscores become dots,
    so ``APP_DB_HOST`` with prefix ``APP_`` becomes ``db.host``.
    """

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix

    def read(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in os.environ.items():
            if self._prefix:
                if not key.startswith(self._prefix):
                    continue
                key = key[len(self._prefix):]
            result[key.lower().replace("_", ".")] = value
        return result

    def watch(self) -> None:
        return None

    def close(self) -> None:
        pass