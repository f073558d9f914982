"""Exception telemetry events and the publishers that ship them.

Events are versioned JSON objects. Publishers implement the single-method
``TelemetryPublisher`` protocol, so services can route events to logs, to a
redis pub/sub channel, or both.
"""

from __future__ import annotations

import traceback
from typing import Final, Literal, Protocol, TypedDict, TypeGuard, runtime_checkable

from platform_web.json_utils import (
    JSONObject,
    JSONTypeError,
    dump_json_str,
    load_json_str,
    narrow_json_to_dict,
    require_str,
)
from platform_web.logging import get_logger
from platform_web.type_names import describe_type, get_type_display_name

EXCEPTION_EVENT_TYPE: Final[str] = "web.exception.v1"
RESPONSE_STARTED_EVENT_TYPE: Final[str] = "web.exception.response_started.v1"
DEFAULT_TELEMETRY_CHANNEL: Final[str] = "web:telemetry"

RESPONSE_STARTED_REASON: Final[str] = (
    "This exception was thrown after the response had already started, so the "
    "TelemetryExceptionMiddleware returned immediately and didn't attempt to "
    "populate the response"
)


class ExceptionEventV1(TypedDict):
    """An unhandled exception caught by the exception middleware."""

    type: Literal["web.exception.v1"]
    exception_type: str
    message: str
    stack_trace: str
    request_id: str
    method: str
    path: str


class ResponseAlreadyStartedEventV1(TypedDict):
    """An exception raised after response headers had already been sent."""

    type: Literal["web.exception.response_started.v1"]
    exception_type: str
    message: str
    stack_trace: str
    request_id: str
    method: str
    path: str
    reason: str


TelemetryEventV1 = ExceptionEventV1 | ResponseAlreadyStartedEventV1


def exception_type_name(exc: BaseException) -> str:
    """Fully qualified display name of the exception's class."""
    return get_type_display_name(describe_type(type(exc)))


def format_stack_trace(exc: BaseException) -> str:
    """Traceback frames of ``exc`` without the trailing exception line."""
    return "".join(traceback.format_tb(exc.__traceback__))


def make_exception_event(
    exc: BaseException, *, request_id: str, method: str, path: str
) -> ExceptionEventV1:
    return {
        "type": "web.exception.v1",
        "exception_type": exception_type_name(exc),
        "message": str(exc),
        "stack_trace": format_stack_trace(exc),
        "request_id": request_id,
        "method": method,
        "path": path,
    }


def make_response_started_event(
    exc: BaseException, *, request_id: str, method: str, path: str
) -> ResponseAlreadyStartedEventV1:
    return {
        "type": "web.exception.response_started.v1",
        "exception_type": exception_type_name(exc),
        "message": str(exc),
        "stack_trace": format_stack_trace(exc),
        "request_id": request_id,
        "method": method,
        "path": path,
        "reason": RESPONSE_STARTED_REASON,
    }


def encode_telemetry_event(event: TelemetryEventV1) -> str:
    """Serialize an event to a compact JSON string."""
    return dump_json_str(event)


def is_response_started_event(event: TelemetryEventV1) -> TypeGuard[ResponseAlreadyStartedEventV1]:
    return event["type"] == RESPONSE_STARTED_EVENT_TYPE


def decode_telemetry_event(raw: str) -> TelemetryEventV1:
    """Parse and validate an encoded event.

    Raises:
        InvalidJsonError: ``raw`` is not JSON.
        JSONTypeError: The JSON is not a known event shape.
    """
    obj: JSONObject = narrow_json_to_dict(load_json_str(raw))
    event_type = require_str(obj, "type")
    exception_type = require_str(obj, "exception_type")
    message = require_str(obj, "message")
    stack_trace = require_str(obj, "stack_trace")
    request_id = require_str(obj, "request_id")
    method = require_str(obj, "method")
    path = require_str(obj, "path")

    if event_type == EXCEPTION_EVENT_TYPE:
        return {
            "type": "web.exception.v1",
            "exception_type": exception_type,
            "message": message,
            "stack_trace": stack_trace,
            "request_id": request_id,
            "method": method,
            "path": path,
        }
    if event_type == RESPONSE_STARTED_EVENT_TYPE:
        return {
            "type": "web.exception.response_started.v1",
            "exception_type": exception_type,
            "message": message,
            "stack_trace": stack_trace,
            "request_id": request_id,
            "method": method,
            "path": path,
            "reason": require_str(obj, "reason"),
        }
    raise JSONTypeError(f"Unknown telemetry event type '{event_type}'")


# ---------------------------------------------------------------------------
# Publishers
# ---------------------------------------------------------------------------


@runtime_checkable
class TelemetryPublisher(Protocol):
    """Sink for telemetry events."""

    def publish(self, event: TelemetryEventV1) -> None: ...


class LoggingTelemetryPublisher:
    """Writes each event to a logger at ERROR level with structured fields."""

    def __init__(self, logger_name: str = "platform_web.telemetry") -> None:
        self._logger = get_logger(logger_name)

    def publish(self, event: TelemetryEventV1) -> None:
        extra: dict[str, str] = {
            "event_type": event["type"],
            "exception_type": event["exception_type"],
            "error_message": event["message"],
            "method": event["method"],
            "path": event["path"],
        }
        if is_response_started_event(event):
            extra["reason"] = event["reason"]
        self._logger.error("telemetry_event", extra=extra)


class RedisPublishProto(Protocol):
    """The part of a redis client used for pub/sub publishing."""

    def publish(self, channel: str, message: str) -> int: ...

    def close(self) -> None: ...


class _RedisStrModule(Protocol):
    def from_url(
        self,
        url: str,
        *,
        encoding: str,
        decode_responses: bool,
        socket_connect_timeout: float,
        socket_timeout: float,
        retry_on_timeout: bool,
    ) -> RedisPublishProto: ...


def _load_redis_str_module() -> _RedisStrModule:
    return __import__("redis")


def redis_for_publish(url: str) -> RedisPublishProto:
    """String-decoding redis client for publishing telemetry."""
    redis_mod = _load_redis_str_module()
    return redis_mod.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=1.0,
        socket_timeout=1.0,
        retry_on_timeout=True,
    )


class RedisTelemetryPublisher:
    """Publishes encoded events to a redis pub/sub channel."""

    def __init__(self, client: RedisPublishProto, channel: str = DEFAULT_TELEMETRY_CHANNEL) -> None:
        self._client = client
        self._channel = channel

    @property
    def channel(self) -> str:
        return self._channel

    def publish(self, event: TelemetryEventV1) -> None:
        self._client.publish(self._channel, encode_telemetry_event(event))


class CompositeTelemetryPublisher:
    """Fans each event out to every wrapped publisher, in order."""

    def __init__(self, *publishers: TelemetryPublisher) -> None:
        self._publishers: tuple[TelemetryPublisher, ...] = publishers

    def publish(self, event: TelemetryEventV1) -> None:
        for publisher in self._publishers:
            publisher.publish(event)


__all__ = [
    "DEFAULT_TELEMETRY_CHANNEL",
    "EXCEPTION_EVENT_TYPE",
    "RESPONSE_STARTED_EVENT_TYPE",
    "RESPONSE_STARTED_REASON",
    "CompositeTelemetryPublisher",
    "ExceptionEventV1",
    "LoggingTelemetryPublisher",
    "RedisPublishProto",
    "RedisTelemetryPublisher",
    "ResponseAlreadyStartedEventV1",
    "TelemetryEventV1",
    "TelemetryPublisher",
    "decode_telemetry_event",
    "encode_telemetry_event",
    "exception_type_name",
    "format_stack_trace",
    "is_response_started_event",
    "make_exception_event",
    "make_response_started_event",
    "redis_for_publish",
]
