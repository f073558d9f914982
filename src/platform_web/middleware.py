from __future__ import annotations

from starlette.applications import Starlette
from starlette.responses import JSONResponse

from platform_web.errors import (
    GENERIC_ERROR_MESSAGE,
    BadRequestError,
    BadRequestResponse,
    ErrorResponse,
    error_body,
)
from platform_web.logging import get_logger
from platform_web.request_context import (
    _AppProto,
    _ASGIScope,
    _ReceiveProto,
    _ResponseMessage,
    _SendProto,
    request_id_var,
)
from platform_web.telemetry import (
    EXCEPTION_EVENT_TYPE,
    RESPONSE_STARTED_EVENT_TYPE,
    TelemetryEventV1,
    TelemetryPublisher,
    format_stack_trace,
    make_exception_event,
    make_response_started_event,
)

_logger = get_logger(__name__)


def unwrap_exception_group(exc: BaseException) -> BaseException:
    """Follow the first inner exception of nested exception groups.

    An empty group is returned as is.
    """
    while isinstance(exc, BaseExceptionGroup) and len(exc.exceptions) > 0:
        exc = exc.exceptions[0]
    return exc


def _scope_str(scope: _ASGIScope, key: str) -> str:
    value = scope.get(key)
    return value if isinstance(value, str) else ""


class TelemetryExceptionMiddleware:
    """ASGI middleware that turns unhandled exceptions into JSON error responses.

    Every handled exception is published to the telemetry publisher.
    BadRequestError becomes a 400 carrying its parameters; anything else
    becomes ``status_code_on_exception`` with an ``ErrorResponse`` body.
    Exception details (message and stack trace) are only exposed when
    ``include_exception_details`` is set. When the response has already
    started, the middleware only publishes a response-started event and
    leaves the response alone.
    """

    def __init__(
        self,
        app: _AppProto,
        *,
        publisher: TelemetryPublisher | None,
        status_code_on_exception: int = 500,
        include_exception_details: bool = False,
    ) -> None:
        if publisher is None:
            raise ValueError("TelemetryExceptionMiddleware requires a telemetry publisher")
        if not 100 <= status_code_on_exception <= 599:
            raise ValueError(f"Invalid HTTP status code: {status_code_on_exception}")
        self._app = app
        self._publisher = publisher
        self._status_code = status_code_on_exception
        self._include_details = include_exception_details

    @property
    def publisher(self) -> TelemetryPublisher:
        return self._publisher

    @property
    def status_code_on_exception(self) -> int:
        return self._status_code

    async def __call__(self, scope: _ASGIScope, receive: _ReceiveProto, send: _SendProto) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        response_started = False

        async def send_tracking_start(message: _ResponseMessage) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self._app(scope, receive, send_tracking_start)
        except Exception as exc:
            await self.handle_exception(
                scope, receive, send, exc, response_started=response_started
            )

    async def handle_exception(
        self,
        scope: _ASGIScope,
        receive: _ReceiveProto,
        send: _SendProto,
        exc: BaseException,
        *,
        response_started: bool,
    ) -> None:
        """Populate the response for ``exc`` and publish it as telemetry."""
        request_id = request_id_var.get()
        method = _scope_str(scope, "method")
        path = _scope_str(scope, "path")

        if response_started:
            self._publish(
                exc, request_id=request_id, method=method, path=path, response_started=True
            )
            return

        exc = unwrap_exception_group(exc)

        body: BadRequestResponse | ErrorResponse
        if isinstance(exc, BadRequestError):
            body = exc.to_response()
            status_code = 400
            _logger.info(
                "bad_request",
                extra={
                    "exception_type": type(exc).__qualname__,
                    "error_message": exc.message,
                    "status_code": status_code,
                    "method": method,
                    "path": path,
                },
            )
        else:
            if self._include_details:
                body = error_body(str(exc), format_stack_trace(exc))
            else:
                body = error_body(GENERIC_ERROR_MESSAGE)
            status_code = self._status_code

        self._publish(
            exc, request_id=request_id, method=method, path=path, response_started=False
        )

        response = JSONResponse(content=body, status_code=status_code)
        await response(scope, receive, send)

    def _publish(
        self,
        exc: BaseException,
        *,
        request_id: str,
        method: str,
        path: str,
        response_started: bool,
    ) -> None:
        """Build and publish the event; failures are logged, never raised."""
        event_type = RESPONSE_STARTED_EVENT_TYPE if response_started else EXCEPTION_EVENT_TYPE
        try:
            event: TelemetryEventV1
            if response_started:
                event = make_response_started_event(
                    exc, request_id=request_id, method=method, path=path
                )
            else:
                event = make_exception_event(exc, request_id=request_id, method=method, path=path)
            self._publisher.publish(event)
        except Exception:
            _logger.exception(
                "telemetry_publish_failed",
                extra={
                    "event_type": event_type,
                    "exception_type": type(exc).__qualname__,
                },
            )


def install_exception_middleware(
    app: Starlette,
    *,
    publisher: TelemetryPublisher,
    status_code_on_exception: int = 500,
    include_exception_details: bool = False,
) -> None:
    """Register TelemetryExceptionMiddleware on a FastAPI/Starlette app.

    Example:
        >>> from fastapi import FastAPI
        >>> from platform_web.telemetry import LoggingTelemetryPublisher
        >>> app = FastAPI()
        >>> install_exception_middleware(app, publisher=LoggingTelemetryPublisher())
    """
    app.add_middleware(
        TelemetryExceptionMiddleware,
        publisher=publisher,
        status_code_on_exception=status_code_on_exception,
        include_exception_details=include_exception_details,
    )


__all__ = [
    "TelemetryExceptionMiddleware",
    "install_exception_middleware",
    "unwrap_exception_group",
]
