from __future__ import annotations

from collections.abc import Mapping
from typing import Final, NotRequired, TypedDict

GENERIC_ERROR_MESSAGE: Final[str] = "Sorry, but something bad happened!"


class ErrorResponse(TypedDict):
    """JSON body returned for unhandled exceptions."""

    message: str
    stackTrace: NotRequired[str]


class BadRequestParameter(TypedDict):
    name: str
    description: str


class BadRequestResponse(TypedDict):
    """JSON body returned for BadRequestError."""

    message: str
    parameters: list[BadRequestParameter]


class BadRequestError(Exception):
    """Client error that the exception middleware turns into a 400 response.

    Attributes:
        message: Human-readable error message
        parameters: Offending input names mapped to a description of the problem

    Example:
        >>> raise BadRequestError("Invalid order", {"quantity": "must be positive"})
    """

    def __init__(self, message: str, parameters: Mapping[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.parameters: dict[str, str] = dict(parameters) if parameters is not None else {}

    def add_parameter(self, name: str, description: str) -> BadRequestError:
        """Record an offending parameter; returns self so calls can be chained."""
        self.parameters[name] = description
        return self

    def to_response(self) -> BadRequestResponse:
        return {
            "message": self.message,
            "parameters": [
                {"name": name, "description": description}
                for name, description in self.parameters.items()
            ],
        }


def error_body(message: str, stack_trace: str | None = None) -> ErrorResponse:
    """Standard error payload; ``stackTrace`` is omitted when not given."""
    body: ErrorResponse = {"message": message}
    if stack_trace is not None:
        body["stackTrace"] = stack_trace
    return body


__all__ = [
    "GENERIC_ERROR_MESSAGE",
    "BadRequestError",
    "BadRequestParameter",
    "BadRequestResponse",
    "ErrorResponse",
    "error_body",
]
