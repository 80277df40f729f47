"""Structured JSON logging module for pgscale."""

import json
import math
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from filelock import FileLock

DEFAULT_LOG_PATH = "data/logs/pgscale.jsonl"

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)
_band_id: ContextVar[int | None] = ContextVar("band_id", default=None)
_log_path: Path = Path(DEFAULT_LOG_PATH)


def generate_id() -> str:
    """New scaling run identifier (random UUID4 string)."""
    return str(uuid.uuid4())


def set_run_id(run_id: str | None) -> None:
    """Set the scaling run ID for the current context.

    Example:
        >>> set_run_id("abc123")
        >>> get_run_id()
        'abc123'
    """
    _run_id.set(run_id)


def get_run_id() -> str | None:
    return _run_id.get()


def set_band_id(band_id: int | None) -> None:
    """Set the band currently executing in this context (None to clear)."""
    _band_id.set(band_id)


def get_band_id() -> int | None:
    return _band_id.get()


class JSONLogger:
    """Logger that writes JSON Lines to a file with run and band metadata."""

    def __init__(self, name: str, log_path: str | Path | None = None):
        self.name = name
        self.log_path = log_path if log_path is not None else _log_path

    @property
    def log_path(self) -> Path:
        """Get the log file path."""
        return self._log_path

    @log_path.setter
    def log_path(self, value: str | Path) -> None:
        """Set the log file path."""
        self._log_path = Path(value)
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock_path = self._log_path.with_suffix(self._log_path.suffix + ".lock")

    def _serialize_value(self, value: Any) -> Any:
        """Convert a metadata value to strict JSON.

        Enums log their value and non-finite floats log as null, so a NaN
        metric never produces an unparseable line.
        """
        if isinstance(value, Enum):
            return self._serialize_value(value.value)
        if isinstance(value, float):
            return value if math.isfinite(value) else None
        if isinstance(value, (str, int, bool, type(None))):
            return value
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self._serialize_value(v) for v in value]
        if isinstance(value, dict):
            return {str(k): self._serialize_value(v) for k, v in value.items()}
        return str(value)

    def _log(self, level: str, message: str, metadata: dict[str, Any] | None = None) -> None:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "level": level,
            "logger": self.name,
            "message": message,
        }

        run_id = get_run_id()
        if run_id:
            entry["run_id"] = run_id

        band_id = get_band_id()
        if band_id is not None:
            entry["band_id"] = band_id

        if metadata:
            entry["metadata"] = self._serialize_value(metadata)

        json_line = json.dumps(entry, ensure_ascii=False, allow_nan=False)

        with FileLock(self._lock_path):
            with self._log_path.open("a", encoding="utf-8") as f:
                f.write(json_line + "\n")

    def info(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self._log("info", message, metadata)

    def error(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self._log("error", message, metadata)

    def warning(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self._log("warning", message, metadata)

    def debug(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        self._log("debug", message, metadata)


_loggers: dict[str, JSONLogger] = {}


def get_logger(name: str) -> JSONLogger:
    """Get or create a logger with the given name.

    Args:
        name: Logger name (typically module name, e.g., "scaling.engine")

    Returns:
        JSONLogger instance
    """
    if name not in _loggers:
        _loggers[name] = JSONLogger(name)
    return _loggers[name]


def configure_log_path(path: str | Path) -> None:
    """Redirect every logger, existing and future, to a new file.

    Args:
        path: Path of the JSONL log file
    """
    global _log_path

    _log_path = Path(path)
    for existing in _loggers.values():
        existing.log_path = _log_path
