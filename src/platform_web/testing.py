"""Testing utilities for platform_web.

Typed in-memory stand-ins for the telemetry publisher and the redis client,
for services that want to assert on what their exception middleware emits.
"""

from __future__ import annotations

from typing import NamedTuple

from platform_web.telemetry import RedisPublishProto, TelemetryEventV1


class Published(NamedTuple):
    """Record of a published redis message."""

    channel: str
    payload: str


class FakeTelemetryPublisher:
    """Records every published event in ``events``."""

    def __init__(self) -> None:
        self.events: list[TelemetryEventV1] = []

    def publish(self, event: TelemetryEventV1) -> None:
        self.events.append(event)


class FailingTelemetryPublisher:
    """Raises ``error`` on every publish."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error if error is not None else RuntimeError("telemetry sink unavailable")
        self.attempts = 0

    def publish(self, event: TelemetryEventV1) -> None:
        self.attempts += 1
        raise self.error


class FakeRedisPublisher(RedisPublishProto):
    """In-memory redis client supporting publish/close."""

    def __init__(self) -> None:
        self.published: list[Published] = []
        self.closed = False

    def publish(self, channel: str, message: str) -> int:
        self.published.append(Published(channel, message))
        return 1

    def close(self) -> None:
        self.closed = True


__all__ = [
    "FailingTelemetryPublisher",
    "FakeRedisPublisher",
    "FakeTelemetryPublisher",
    "Published",
]
