from __future__ import annotations

import logging

import pytest

from platform_web import telemetry as telemetry_mod
from platform_web.json_utils import InvalidJsonError, JSONTypeError, dump_json_str, load_json_str
from platform_web.telemetry import (
    DEFAULT_TELEMETRY_CHANNEL,
    RESPONSE_STARTED_REASON,
    CompositeTelemetryPublisher,
    ExceptionEventV1,
    LoggingTelemetryPublisher,
    RedisPublishProto,
    RedisTelemetryPublisher,
    TelemetryPublisher,
    decode_telemetry_event,
    encode_telemetry_event,
    exception_type_name,
    format_stack_trace,
    is_response_started_event,
    make_exception_event,
    make_response_started_event,
    redis_for_publish,
)
from platform_web.testing import (
    FailingTelemetryPublisher,
    FakeRedisPublisher,
    FakeTelemetryPublisher,
    Published,
)


class PaymentDeclinedError(Exception):
    pass


def _raised(exc: Exception) -> Exception:
    try:
        raise exc
    except Exception as caught:
        return caught


def _sample_event() -> ExceptionEventV1:
    return {
        "type": "web.exception.v1",
        "exception_type": "RuntimeError",
        "message": "boom",
        "stack_trace": "",
        "request_id": "req-1",
        "method": "GET",
        "path": "/orders",
    }


def test_exception_type_name_is_fully_qualified() -> None:
    assert exception_type_name(ValueError("x")) == "ValueError"
    assert exception_type_name(PaymentDeclinedError("x")) == f"{__name__}.PaymentDeclinedError"


def test_format_stack_trace() -> None:
    assert format_stack_trace(RuntimeError("never raised")) == ""
    trace = format_stack_trace(_raised(RuntimeError("boom")))
    assert "_raised" in trace
    assert "RuntimeError" not in trace


def test_make_exception_event() -> None:
    exc = _raised(PaymentDeclinedError("card declined"))
    event = make_exception_event(exc, request_id="req-9", method="POST", path="/pay")
    assert event["type"] == "web.exception.v1"
    assert event["exception_type"] == f"{__name__}.PaymentDeclinedError"
    assert event["message"] == "card declined"
    assert "_raised" in event["stack_trace"]
    assert event["request_id"] == "req-9"
    assert event["method"] == "POST"
    assert event["path"] == "/pay"
    assert not is_response_started_event(event)


def test_make_response_started_event() -> None:
    event = make_response_started_event(
        RuntimeError("late"), request_id="", method="GET", path="/stream"
    )
    assert event["type"] == "web.exception.response_started.v1"
    assert event["reason"] == RESPONSE_STARTED_REASON
    assert event["message"] == "late"
    assert is_response_started_event(event)


def test_encode_decode_exception_event() -> None:
    event = _sample_event()
    encoded = encode_telemetry_event(event)
    assert " " not in encoded
    assert decode_telemetry_event(encoded) == event


def test_decode_response_started_event() -> None:
    event = make_response_started_event(
        RuntimeError("late"), request_id="req-2", method="GET", path="/stream"
    )
    decoded = decode_telemetry_event(encode_telemetry_event(event))
    assert decoded == event
    assert is_response_started_event(decoded)


def test_decode_rejects_unknown_type() -> None:
    raw = dump_json_str({**_sample_event(), "type": "web.other.v1"})
    with pytest.raises(JSONTypeError, match="Unknown telemetry event type"):
        decode_telemetry_event(raw)


def test_decode_rejects_missing_field() -> None:
    obj = load_json_str(encode_telemetry_event(_sample_event()))
    assert isinstance(obj, dict)
    del obj["path"]
    with pytest.raises(JSONTypeError, match="path"):
        decode_telemetry_event(dump_json_str(obj))


def test_decode_rejects_started_event_without_reason() -> None:
    raw = dump_json_str({**_sample_event(), "type": "web.exception.response_started.v1"})
    with pytest.raises(JSONTypeError, match="reason"):
        decode_telemetry_event(raw)


def test_decode_rejects_non_object_and_invalid_json() -> None:
    with pytest.raises(JSONTypeError):
        decode_telemetry_event("[1, 2]")
    with pytest.raises(InvalidJsonError):
        decode_telemetry_event("{not json")


def test_publishers_satisfy_protocol() -> None:
    publishers: list[object] = [
        LoggingTelemetryPublisher(),
        RedisTelemetryPublisher(FakeRedisPublisher()),
        CompositeTelemetryPublisher(),
        FakeTelemetryPublisher(),
        FailingTelemetryPublisher(),
    ]
    for publisher in publishers:
        assert isinstance(publisher, TelemetryPublisher)


def test_logging_publisher_logs_structured_fields(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="platform_web.telemetry")
    LoggingTelemetryPublisher().publish(_sample_event())

    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert record.levelname == "ERROR"
    assert record.name == "platform_web.telemetry"
    assert record.getMessage() == "telemetry_event"
    assert getattr(record, "event_type") == "web.exception.v1"
    assert getattr(record, "exception_type") == "RuntimeError"
    assert getattr(record, "error_message") == "boom"
    assert getattr(record, "path") == "/orders"
    assert not hasattr(record, "reason")


def test_logging_publisher_includes_reason(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="orders.telemetry")
    event = make_response_started_event(
        RuntimeError("late"), request_id="", method="GET", path="/stream"
    )
    LoggingTelemetryPublisher("orders.telemetry").publish(event)

    assert len(caplog.records) == 1
    assert caplog.records[0].name == "orders.telemetry"
    assert getattr(caplog.records[0], "reason") == RESPONSE_STARTED_REASON


def test_redis_publisher_publishes_encoded_event() -> None:
    client = FakeRedisPublisher()
    publisher = RedisTelemetryPublisher(client)
    assert publisher.channel == DEFAULT_TELEMETRY_CHANNEL

    publisher.publish(_sample_event())

    assert client.published == [
        Published(DEFAULT_TELEMETRY_CHANNEL, encode_telemetry_event(_sample_event()))
    ]
    assert decode_telemetry_event(client.published[0].payload) == _sample_event()


def test_redis_publisher_custom_channel() -> None:
    client = FakeRedisPublisher()
    RedisTelemetryPublisher(client, "orders:errors").publish(_sample_event())
    assert client.published[0].channel == "orders:errors"


def test_composite_publisher_fans_out_in_order() -> None:
    first = FakeTelemetryPublisher()
    second = FakeTelemetryPublisher()
    CompositeTelemetryPublisher(first, second).publish(_sample_event())
    assert first.events == [_sample_event()]
    assert second.events == [_sample_event()]


def test_composite_publisher_propagates_failures() -> None:
    failing = FailingTelemetryPublisher()
    after = FakeTelemetryPublisher()
    with pytest.raises(RuntimeError, match="telemetry sink unavailable"):
        CompositeTelemetryPublisher(failing, after).publish(_sample_event())
    assert failing.attempts == 1
    assert after.events == []


def test_redis_for_publish_uses_string_client(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, str | bool | float] = {}
    fake = FakeRedisPublisher()

    class _FakeRedisModule:
        def from_url(
            self,
            url: str,
            *,
            encoding: str,
            decode_responses: bool,
            socket_connect_timeout: float,
            socket_timeout: float,
            retry_on_timeout: bool,
        ) -> RedisPublishProto:
            captured["url"] = url
            captured["encoding"] = encoding
            captured["decode_responses"] = decode_responses
            return fake

    monkeypatch.setattr(telemetry_mod, "_load_redis_str_module", _FakeRedisModule)

    assert redis_for_publish("redis://cache:6379/0") is fake
    assert captured == {
        "url": "redis://cache:6379/0",
        "encoding": "utf-8",
        "decode_responses": True,
    }
