"""Typed access to configuration values loaded from a source."""

from __future__ import annotations

import threading
from typing import Any

from .sources import Source, _ChangeSignal


class ConfigError(Exception):
    """Base class for configuration errors."""


class KeyNotFoundError(ConfigError, LookupError):
    """The key is not present in the configuration."""

    def __init__(self, key: str = "") -> None:
        super().__init__("key not found in config")
        self.key = key


class InvalidTypeError(ConfigError, TypeError):
    """The stored value is not of the requested type."""

    def __init__(self, key: str = "") -> None:
        super().__init__("invalid type assertion")
        self.key = key


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Config:
    """Configuration values read from a source, with typed accessors."""

    def __init__(self, source: Source) -> None:
        self._source = source
        self._values: dict[str, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Any:
        with self._lock:
            try:
                return self._values[key]
            except KeyError:
                raise KeyNotFoundError(key) from None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def get_string(self, key: str) -> str:
        value = self.get(key)
        if isinstance(value, str):
            return value
        raise InvalidTypeError(key)

    def get_int(self, key: str) -> int:
        """Return an integer; floats are truncated toward zero."""
        value = self.get(key)
        if _is_number(value):
            return int(value)
        raise InvalidTypeError(key)

    def get_bool(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, bool):
            return value
        raise InvalidTypeError(key)

    def get_float(self, key: str) -> float:
        value = self.get(key)
        if _is_number(value):
            return float(value)
        raise InvalidTypeError(key)

    def get_string_map(self, key: str) -> dict[str, Any]:
        value = self.get(key)
        if isinstance(value, dict):
            return value
        raise InvalidTypeError(key)

    def get_string_slice(self, key: str) -> list[str]:
        value = self.get(key)
        if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
            return list(value)
        raise InvalidTypeError(key)

    def get_string_map_string(self, key: str) -> dict[str, str]:
        value = self.get(key)
        if isinstance(value, dict) and all(isinstance(v, str) for v in value.values()):
            return dict(value)
        raise InvalidTypeError(key)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._values

    def load(self) -> None:
        """Replace all values with what the source currently holds."""
        with self._lock:
            self._values = self._source.read()

    def watch(self) -> _ChangeSignal | None:
        return self._source.watch()

    def close(self) -> None:
        self._source.close()