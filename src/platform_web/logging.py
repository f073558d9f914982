from __future__ import annotations

import logging
import os
import socket
import sys
import time
from types import TracebackType
from typing import Literal, Protocol

from platform_web.json_utils import JSONValue, dump_json_str
from platform_web.request_context import request_id_var

LogFormat = Literal["json", "text"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_LogRecordValue = (
    JSONValue
    | tuple[
        type[BaseException] | BaseException | None,
        BaseException | None,
        TracebackType | None,
    ]
    | tuple[str | int | float | bool | None, ...]
    | logging.LogRecord
    | logging.Logger
)

# Fields emitted by the exception middleware and telemetry publishers.
_STRUCTURED_FIELDS: tuple[str, ...] = (
    "event_type",
    "exception_type",
    "error_message",
    "status_code",
    "method",
    "path",
    "reason",
)


class _LogRecordMapping(Protocol):
    """Minimal mapping interface for LogRecord.__dict__ without Any leakage."""

    def __contains__(self, key: str) -> bool: ...

    def __getitem__(self, key: str) -> _LogRecordValue: ...


class _MissingValue:
    """Sentinel for absent or invalid LogRecord attributes."""

    __slots__ = ()


_MISSING = _MissingValue()


def _get_json_record_value(record: logging.LogRecord, field_name: str) -> JSONValue | _MissingValue:
    """Fetch a record attribute and validate it is JSON-compatible."""
    record_mapping: _LogRecordMapping = record.__dict__
    if field_name not in record_mapping:
        return _MISSING
    raw_value = record_mapping[field_name]
    if isinstance(raw_value, (dict, list, str, int, float, bool)) or raw_value is None:
        return raw_value
    return _MISSING


class JsonFormatter(logging.Formatter):
    """JSON formatter producing one structured object per record.

    Every record carries timestamp (UTC), level, logger and message, plus the
    static fields, the current request id, any configured extra fields and the
    telemetry fields set by the exception middleware.
    """

    def __init__(
        self,
        *,
        static_fields: dict[str, str],
        extra_field_names: list[str],
    ) -> None:
        super().__init__()
        self._static = static_fields
        self._extra_fields = extra_field_names

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, JSONValue] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._static:
            payload[key] = self._static[key]

        rid = request_id_var.get()
        if isinstance(rid, str) and rid != "":
            payload["request_id"] = rid

        for field_name in (*self._extra_fields, *_STRUCTURED_FIELDS):
            if field_name in payload:
                continue
            field_value = _get_json_record_value(record, field_name)
            if isinstance(field_value, _MissingValue):
                continue
            payload[field_name] = field_value

        if record.exc_info is not None:
            payload["exc_info"] = self.formatException(record.exc_info)

        return dump_json_str(payload, compact=False)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development.

    Format: [timestamp] [LEVEL] [logger] [extra_fields] message
    """

    def __init__(self, *, extra_fields: list[str]) -> None:
        super().__init__()
        self._extra_fields = extra_fields

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        parts: list[str] = [
            f"[{timestamp}]",
            f"[{record.levelname}]",
            f"[{record.name}]",
        ]

        for field_name in self._extra_fields:
            if hasattr(record, field_name):
                attr_value: str | int | float | bool | None = getattr(record, field_name)
                parts.append(f"{field_name}={attr_value}")

        parts.append(record.getMessage())
        line = " ".join(parts)

        if record.exc_info is not None:
            line = line + "\n" + self.formatException(record.exc_info)

        return line


def _compute_instance_id() -> str:
    """Generate a stable instance ID from hostname and PID."""
    host = socket.gethostname().split(".")[0]
    return f"{host}-{os.getpid()}"


def _level_to_int(level: LogLevel) -> int:
    level_map: dict[LogLevel, int] = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map[level]


def setup_logging(
    *,
    level: LogLevel,
    format_mode: LogFormat,
    service_name: str,
    instance_id: str | None,
    extra_fields: list[str] | None,
) -> logging.Logger:
    """Configure the root logger with JSON or text output on stdout.

    Existing root handlers are cleared so repeated calls leave exactly one
    handler installed.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_mode: Output format ("json" for production, "text" for dev)
        service_name: Service name to include in all logs
        instance_id: Instance ID (auto-generated if None)
        extra_fields: Extra record attributes to emit (empty list if None)

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(_level_to_int(level))

    computed_instance_id = instance_id if instance_id is not None else _compute_instance_id()
    static_fields: dict[str, str] = {
        "service": service_name,
        "instance_id": computed_instance_id,
    }
    extra_field_names = extra_fields if extra_fields is not None else []

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    if format_mode == "json":
        handler.setFormatter(
            JsonFormatter(static_fields=static_fields, extra_field_names=extra_field_names)
        )
    else:
        handler.setFormatter(TextFormatter(extra_fields=extra_field_names))
    root.addHandler(handler)

    logging.getLogger("redis").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance by name (typically __name__)."""
    return logging.getLogger(name)


__all__ = [
    "JsonFormatter",
    "LogFormat",
    "LogLevel",
    "TextFormatter",
    "get_logger",
    "setup_logging",
]
