"""Structured NDJSON events for a report run.

Every event carries ``run_id``, ``phase``, ``status`` and ``message`` plus any
extra fields. Events go to stdout and, when ``JSON_LOG_FILE`` is set, are
mirrored to that file. ``bind()`` returns a child logger that adds fixed
context (for example ``component``) and writes through the same sink.
"""
from __future__ import annotations

import json
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, TextIO

__all__ = ["JsonLogger", "get_logger", "log_event", "timed_event", "new_run_id"]


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S%f")


class _EventSink:
    """Output shared by a logger and every logger bound from it."""

    def __init__(self, stream: TextIO, log_file_path: str | None) -> None:
        self.stream = stream
        self.log_file_path = log_file_path
        self.file_handle = open(log_file_path, "a", encoding="utf-8") if log_file_path else None
        self.closed = False

    def write(self, line: str) -> None:
        if self.closed:
            return
        self.stream.write(line + "\n")
        self.stream.flush()
        if self.file_handle:
            self.file_handle.write(line + "\n")
            self.file_handle.flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None


def _resolve_log_path(raw_path: str | None) -> str | None:
    if not raw_path:
        return None
    path = Path(raw_path).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return str(path)


class JsonLogger:
    def __init__(
        self,
        run_id: Optional[str] = None,
        stream: TextIO | None = None,
        *,
        log_file_path: str | None = None,
        _sink: _EventSink | None = None,
        _context: Dict[str, Any] | None = None,
    ):
        self.run_id = run_id or new_run_id()
        self._sink = _sink or _EventSink(stream or sys.stdout, _resolve_log_path(log_file_path))
        self._owns_sink = _sink is None
        self.context: Dict[str, Any] = {"run_id": self.run_id, **(_context or {})}

    @property
    def log_file_path(self) -> str | None:
        return self._sink.log_file_path

    @property
    def closed(self) -> bool:
        return self._sink.closed

    def bind(self, **fields: Any) -> "JsonLogger":
        return JsonLogger(run_id=self.run_id, _sink=self._sink, _context={**self.context, **fields})

    def info(self, *, phase: str, status: str = "ok", message: str = "", **fields: Any) -> None:
        event = {**self.context, "phase": phase, "status": status, "message": message, **fields}
        event.setdefault("ts", datetime.now(timezone.utc).isoformat())
        self._sink.write(json.dumps(event, default=str, ensure_ascii=False))

    def warn(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="warn", message=message, **fields)

    def error(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="error", message=message, **fields)

    def close(self) -> None:
        # bound children never close the shared sink
        if self._owns_sink:
            self._sink.close()


def get_logger(run_id: Optional[str] = None, *, log_file_path: str | None = None) -> JsonLogger:
    return JsonLogger(run_id=run_id, log_file_path=log_file_path)


def log_event(*, logger: JsonLogger, phase: str, status: str = "ok", message: str = "", **extras: Any) -> None:
    logger.info(phase=phase, status=status, message=message, **extras)


@contextmanager
def timed_event(*, logger: JsonLogger, phase: str, message: str = "", **fields: Any) -> Iterator[None]:
    """Log ``message`` with its duration once the block finishes, or the failure if it raises."""

    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        logger.error(
            phase=phase,
            message=f"{message} failed: {exc}",
            duration_ms=int((time.perf_counter() - start) * 1000),
            exception=repr(exc),
            **fields,
        )
        raise
    logger.info(
        phase=phase,
        message=message,
        duration_ms=int((time.perf_counter() - start) * 1000),
        **fields,
    )
