from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Protocol, TypedDict, runtime_checkable

# Context variable for request ID tracking across async boundaries.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "x-request-id"


class _ResponseMessage(TypedDict, total=False):
    type: str
    status: int
    headers: list[tuple[bytes, bytes]] | str
    body: bytes
    more_body: bool


@runtime_checkable
class _ASGIScope(Protocol):
    """Minimal ASGI scope for HTTP requests."""

    def __getitem__(self, key: str) -> str | list[tuple[bytes, bytes]] | None: ...

    def get(
        self, key: str, default: str | list[tuple[bytes, bytes]] | None = None
    ) -> str | list[tuple[bytes, bytes]] | None: ...


@runtime_checkable
class _ReceiveProto(Protocol):
    """Protocol for ASGI receive callable."""

    async def __call__(self) -> _ResponseMessage: ...


@runtime_checkable
class _SendProto(Protocol):
    """Protocol for ASGI send callable."""

    async def __call__(self, message: _ResponseMessage) -> None: ...


@runtime_checkable
class _AppProto(Protocol):
    """Protocol for ASGI application."""

    async def __call__(
        self, scope: _ASGIScope, receive: _ReceiveProto, send: _SendProto
    ) -> None: ...


class _MiddlewareHost(Protocol):
    """FastAPI/Starlette app surface used to register ASGI middleware."""

    def add_middleware(self, middleware_class: type[RequestIdMiddleware]) -> None: ...


class RequestIdMiddleware:
    """ASGI middleware for request ID tracking and injection."""

    def __init__(self, app: _AppProto) -> None:
        self._app = app

    async def __call__(self, scope: _ASGIScope, receive: _ReceiveProto, send: _SendProto) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        rid = _decode_request_id(scope)
        token = request_id_var.set(rid)

        try:

            async def send_with_request_id(message: _ResponseMessage) -> None:
                if message["type"] == "http.response.start":
                    headers = _attach_headers(message)
                    headers.append((REQUEST_ID_HEADER.encode("latin1"), rid.encode("utf-8")))
                await send(message)

            await self._app(scope, receive, send_with_request_id)
        finally:
            request_id_var.reset(token)


def install_request_id_middleware(app: _MiddlewareHost) -> None:
    """Register RequestIdMiddleware on a FastAPI/Starlette app."""
    app.add_middleware(RequestIdMiddleware)


def _decode_request_id(scope: _ASGIScope) -> str:
    """Extract request ID from ASGI scope headers or generate new UUID."""
    headers_raw = scope.get("headers")
    if not isinstance(headers_raw, list):
        return str(uuid.uuid4())

    for header_name_bytes, header_value_bytes in headers_raw:
        header_name = header_name_bytes.decode("latin1").lower()
        if header_name == REQUEST_ID_HEADER:
            return header_value_bytes.decode("latin1")

    return str(uuid.uuid4())


def _attach_headers(message: _ResponseMessage) -> list[tuple[bytes, bytes]]:
    headers = message.get("headers")
    if not isinstance(headers, list):
        headers_list: list[tuple[bytes, bytes]] = []
        message["headers"] = headers_list
        return headers_list
    return headers


__all__ = [
    "REQUEST_ID_HEADER",
    "RequestIdMiddleware",
    "_ASGIScope",
    "_ReceiveProto",
    "_ResponseMessage",
    "_SendProto",
    "install_request_id_middleware",
    "request_id_var",
]
