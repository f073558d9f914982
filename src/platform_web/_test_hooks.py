"""Test hooks for platform_web - allows injecting test dependencies."""

from __future__ import annotations

import os
from collections.abc import Callable

from platform_web.telemetry import RedisPublishProto, redis_for_publish


def _default_get_env(key: str) -> str | None:
    """Production implementation - reads from os.environ."""
    return os.getenv(key)


# Hook for environment variable access. Tests can override to provide fake values.
get_env: Callable[[str], str | None] = _default_get_env

# Hook for building the telemetry redis client. Tests can override with a fake.
redis_factory: Callable[[str], RedisPublishProto] = redis_for_publish

__all__ = ["get_env", "redis_factory"]
