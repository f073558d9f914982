from __future__ import annotations

from .errors import GENERIC_ERROR_MESSAGE, BadRequestError, ErrorResponse, error_body
from .middleware import (
    TelemetryExceptionMiddleware,
    install_exception_middleware,
    unwrap_exception_group,
)
from .telemetry import (
    CompositeTelemetryPublisher,
    ExceptionEventV1,
    LoggingTelemetryPublisher,
    RedisTelemetryPublisher,
    ResponseAlreadyStartedEventV1,
    TelemetryPublisher,
)
from .type_names import (
    TypeDescriptor,
    array_of,
    describe_type,
    generic_parameter,
    get_object_type_display_name,
    get_type_display_name,
    make_generic,
)

__all__ = [
    "GENERIC_ERROR_MESSAGE",
    "BadRequestError",
    "CompositeTelemetryPublisher",
    "ErrorResponse",
    "ExceptionEventV1",
    "LoggingTelemetryPublisher",
    "RedisTelemetryPublisher",
    "ResponseAlreadyStartedEventV1",
    "TelemetryExceptionMiddleware",
    "TelemetryPublisher",
    "TypeDescriptor",
    "array_of",
    "describe_type",
    "error_body",
    "generic_parameter",
    "get_object_type_display_name",
    "get_type_display_name",
    "install_exception_middleware",
    "make_generic",
    "unwrap_exception_group",
]
