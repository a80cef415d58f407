"""A named collection of configurations, with a process-wide instance."""

from __future__ import annotations

import threading

from .config import Config


class Manager:
    """Holds configurations by name and loads or closes them together."""

    def __init__(self) -> None:
        self._configs: dict[str, Config] = {}
        self._lock = threading.RLock()

    def register(self, name: str, config: Config) -> None:
        with self._lock:
            self._configs[name] = config

    def get(self, name: str) -> Config | None:
        """Return the configuration registered as ``name``, or None."""
        with self._lock:
            return self._configs.get(name)

    def load_all(self) -> None:
        """Load every configuration; the first failure is raised."""
        with self._lock:
            for config in self._configs.values():
                config.load()

    def close_all(self) -> None:
        """Close every configuration; the first failure is raised."""
        with self._lock:
            for config in self._configs.values():
                config.close()


_global: Manager | None = None
_global_lock = threading.Lock()


def global_manager() -> Manager:
    """Return the process-wide manager, creating it on first use."""
    global _global
    with _global_lock:
        if _global is None:
            _global = Manager()
        return _global