from __future__ import annotations

from typing import Final, TypedDict

from fastapi import FastAPI

from platform_web import _test_hooks
from platform_web.json_utils import register_json_error_handler
from platform_web.logging import LogFormat, LogLevel, setup_logging
from platform_web.middleware import install_exception_middleware
from platform_web.request_context import install_request_id_middleware
from platform_web.telemetry import (
    DEFAULT_TELEMETRY_CHANNEL,
    CompositeTelemetryPublisher,
    LoggingTelemetryPublisher,
    RedisTelemetryPublisher,
    TelemetryPublisher,
)

DEFAULT_EXCEPTION_STATUS_CODE: Final[int] = 500


class ConfigError(RuntimeError):
    """Raised when an environment variable holds an invalid value."""


class WebSettings(TypedDict):
    exception_status_code: int
    include_exception_details: bool
    telemetry_redis_url: str | None
    telemetry_channel: str
    log_level: LogLevel
    log_format: LogFormat


def _optional_env_str(key: str) -> str | None:
    value = _test_hooks.get_env(key)
    if value is None:
        return None
    trimmed = value.strip()
    if trimmed == "":
        return None
    return trimmed


def _parse_str(key: str, default: str) -> str:
    val = _optional_env_str(key)
    return val if val is not None else default


def _parse_status_code(key: str, default: int) -> int:
    val = _optional_env_str(key)
    if val is None:
        return default
    try:
        code = int(val)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer value for {key}: {val!r}") from exc
    if not 400 <= code <= 599:
        raise ConfigError(f"{key} must be an HTTP error status (400-599), got {code}")
    return code


def _parse_bool(key: str, default: bool) -> bool:
    val = _optional_env_str(key)
    if val is None:
        return default
    normalized = val.lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    raise ConfigError(f"Invalid boolean value for {key}: {val!r}")


def _parse_log_level(key: str, default: LogLevel) -> LogLevel:
    val = _optional_env_str(key)
    if val is None:
        return default
    upper_val = val.upper()
    if upper_val == "DEBUG":
        return "DEBUG"
    if upper_val == "INFO":
        return "INFO"
    if upper_val == "WARNING":
        return "WARNING"
    if upper_val == "ERROR":
        return "ERROR"
    if upper_val == "CRITICAL":
        return "CRITICAL"
    raise ConfigError(f"Invalid log level for {key}: {val!r}")


def _parse_log_format(key: str, default: LogFormat) -> LogFormat:
    val = _optional_env_str(key)
    if val is None:
        return default
    lower_val = val.lower()
    if lower_val == "json":
        return "json"
    if lower_val == "text":
        return "text"
    raise ConfigError(f"Invalid log format for {key}: {val!r}")


def load_web_settings() -> WebSettings:
    """Read exception-middleware and telemetry settings from the environment."""
    return {
        "exception_status_code": _parse_status_code(
            "WEB_EXCEPTION_STATUS_CODE", DEFAULT_EXCEPTION_STATUS_CODE
        ),
        "include_exception_details": _parse_bool("WEB_INCLUDE_EXCEPTION_DETAILS", False),
        "telemetry_redis_url": _optional_env_str("WEB_TELEMETRY_REDIS_URL"),
        "telemetry_channel": _parse_str("WEB_TELEMETRY_CHANNEL", DEFAULT_TELEMETRY_CHANNEL),
        "log_level": _parse_log_level("WEB_LOG_LEVEL", "INFO"),
        "log_format": _parse_log_format("WEB_LOG_FORMAT", "json"),
    }


def build_publisher(settings: WebSettings) -> TelemetryPublisher:
    """Logging publisher, fanned out to redis when a URL is configured."""
    logging_publisher = LoggingTelemetryPublisher()
    redis_url = settings["telemetry_redis_url"]
    if redis_url is None:
        return logging_publisher
    redis_publisher = RedisTelemetryPublisher(
        _test_hooks.redis_factory(redis_url), settings["telemetry_channel"]
    )
    return CompositeTelemetryPublisher(logging_publisher, redis_publisher)


def install_from_env(app: FastAPI, *, service_name: str) -> WebSettings:
    """Configure logging and install the request-id and exception middleware.

    The request-id middleware wraps the exception middleware, so telemetry
    events carry the request id and error responses echo the header.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> settings = install_from_env(app, service_name="orders-api")
    """
    settings = load_web_settings()
    setup_logging(
        level=settings["log_level"],
        format_mode=settings["log_format"],
        service_name=service_name,
        instance_id=None,
        extra_fields=["request_id"],
    )
    register_json_error_handler(app)
    install_exception_middleware(
        app,
        publisher=build_publisher(settings),
        status_code_on_exception=settings["exception_status_code"],
        include_exception_details=settings["include_exception_details"],
    )
    install_request_id_middleware(app)
    return settings


__all__ = [
    "DEFAULT_EXCEPTION_STATUS_CODE",
    "ConfigError",
    "WebSettings",
    "build_publisher",
    "install_from_env",
    "load_web_settings",
]
