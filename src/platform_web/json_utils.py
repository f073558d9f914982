"""Typed JSON helpers shared by the telemetry codec and the log formatter."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from json import JSONDecodeError
from typing import Final, Protocol

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response

JSONValue = dict[str, "JSONValue"] | list["JSONValue"] | str | int | float | bool | None
JSONObject = dict[str, JSONValue]

# TypedDict events and log payloads are accepted through Mapping.
_Encodable = str | int | float | bool | None | Mapping[str, object] | Sequence[object]

_COMPACT_SEPARATORS: Final[tuple[str, str]] = (",", ":")


class InvalidJsonError(ValueError):
    """Raised when a payload is not valid JSON."""


class JSONTypeError(TypeError):
    """Raised when decoded JSON does not have the expected shape."""


class _JsonModule(Protocol):
    def loads(self, s: str) -> JSONValue: ...

    def dumps(self, obj: _Encodable, *, separators: tuple[str, str] | None) -> str: ...


def _json() -> _JsonModule:
    return __import__("json")


def dump_json_str(value: _Encodable, *, compact: bool = True) -> str:
    """Encode ``value``; ``compact`` drops the whitespace after separators."""
    return _json().dumps(value, separators=_COMPACT_SEPARATORS if compact else None)


def load_json_str(raw: str) -> JSONValue:
    """Decode ``raw``, raising InvalidJsonError on malformed input."""
    try:
        return _json().loads(raw)
    except JSONDecodeError as exc:
        raise InvalidJsonError("Invalid JSON payload") from exc


def narrow_json_to_dict(value: JSONValue) -> JSONObject:
    if isinstance(value, dict):
        return value
    raise JSONTypeError(f"Expected JSON object, got {type(value).__name__}")


def require_str(obj: JSONObject, key: str) -> str:
    """String field ``key`` of ``obj``; empty strings are allowed."""
    value = obj.get(key)
    if value is None:
        raise JSONTypeError(f"Missing required field '{key}'")
    if isinstance(value, str):
        return value
    raise JSONTypeError(f"Field '{key}' must be a string, got {type(value).__name__}")


def register_json_error_handler(app: FastAPI, *, detail: str = "Invalid JSON body") -> None:
    """Surface JSON decoding failures raised by route code as BadRequestError.

    The handler re-raises instead of rendering, so the exception middleware
    produces the 400 body and publishes telemetry for it.
    """
    from platform_web.errors import BadRequestError

    def _reraise_as_bad_request(_: Request, exc: Exception) -> Response:
        raise BadRequestError(detail, {"body": str(exc)}) from exc

    app.add_exception_handler(InvalidJsonError, _reraise_as_bad_request)
    app.add_exception_handler(JSONDecodeError, _reraise_as_bad_request)


__all__ = [
    "InvalidJsonError",
    "JSONObject",
    "JSONTypeError",
    "JSONValue",
    "dump_json_str",
    "load_json_str",
    "narrow_json_to_dict",
    "register_json_error_handler",
    "require_str",
]
