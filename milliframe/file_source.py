"""A configuration source backed by a JSON, YAML or TOML file."""

from __future__ import annotations

import json
import os
import threading
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .sources import Source, _ChangeSignal

DEFAULT_WATCH_INTERVAL = 5.0


def format_from_path(path: str | os.PathLike[str]) -> str:
    """Return the lower-cased file extension without its dot, or ""."""
    suffix = Path(path).suffix.lower()
    return suffix[1:] if suffix else ""


def flatten_map(data: Mapping[Any, Any] | None, prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings into one dict with dot-separated keys.

    Nested keys that are not strings are skipped; everything that is not a
    mapping, lists included, is kept as a leaf value.
    """
    result: dict[str, Any] = {}
    for key, value in (data or {}).items():
        if not isinstance(key, str):
            continue
        new_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, Mapping):
            result.update(flatten_map(value, new_key))
        else:
            result[new_key] = value
    return result


def _parse(data: bytes, fmt: str) -> Any:
    match fmt:
        case "json":
            return json.loads(data)
        case "yaml" | "yml":
            return yaml.safe_load(data)
        case "toml":
            return tomllib.loads(data.decode("utf-8"))
        case _:
            raise ValueError(f"unsupported format: {fmt}")


class FileSource(Source):
    """Reads a configuration file and polls it for modifications.

    The format is taken from ``format`` or, when that is not given, from the
    file extension. Nested tables are flattened into dotted keys.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        format: str | None = None,
        watch_interval: float = DEFAULT_WATCH_INTERVAL,
    ) -> None:
        self._path = Path(path)
        self._format = format or format_from_path(path)
        self._watch_interval = watch_interval
        self._lock = threading.Lock()
        self._watching = False
        self._stop: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def format(self) -> str:
        return self._format

    def read(self) -> dict[str, Any]:
        """Read and parse the file; raises OSError or a parse error."""
        nested = _parse(self._path.read_bytes(), self._format)
        if nested is None:
            return {}
        if not isinstance(nested, Mapping):
            raise ValueError(f"cannot read a {self._format} document that is not a mapping")
        return flatten_map(nested)

    def watch(self) -> _ChangeSignal:
        """Start polling the file's modification time.

        The first poll always signals. Raises RuntimeError if already
        watching and OSError if the file does not exist.
        """
        with self._lock:
            if self._watching:
                raise RuntimeError("already watching")
            os.stat(self._path)
            signal = _ChangeSignal()
            stop = threading.Event()
            thread = threading.Thread(
                target=self._poll, args=(signal, stop), name="file-source-watch", daemon=True
            )
            self._stop = stop
            self._thread = thread
            self._watching = True
            thread.start()
            return signal

    def close(self) -> None:
        """Stop watching, if a watch is running."""
        with self._lock:
            if not self._watching:
                return
            self._watching = False
            stop, thread = self._stop, self._thread
            self._stop = self._thread = None
        if stop is not None:
            stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _poll(self, signal: _ChangeSignal, stop: threading.Event) -> None:
        last_mtime: int | None = None
        try:
            while not stop.wait(self._watch_interval):
                try:
                    mtime = os.stat(self._path).st_mtime_ns
                except OSError:
                    continue
                if last_mtime is None or mtime > last_mtime:
                    last_mtime = mtime
                    signal.notify()
        finally:
            signal.close()