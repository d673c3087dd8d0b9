"""
Exception definitions and FastAPI handlers.

Usage:
- Raise subclasses of `BaseAPIException` from the memory adapter, services and routers.
- Register `unified_api_exception_handler` + `generic_exception_handler` in FastAPI.
- Tool adapters convert these into structured `{success: false}` results instead.
"""
from __future__ import annotations

import traceback
from typing import Any, Optional, Sequence

from fastapi import Request
from fastapi.responses import JSONResponse


class BaseAPIException(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Internal server error."
    detail: str = ""

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None) -> None:
        if message:
            self.message = message
        if detail:
            self.detail = detail
        super().__init__(self.message)


# Memory adapter errors
class ConfigurationError(BaseAPIException):
    status_code = 500
    code = "CONFIGURATION_ERROR"
    message = "Memory plugin configuration is invalid."


class InputValidationError(BaseAPIException):
    """Malformed caller input; `errors` holds one (path, message) pair per violation."""

    status_code = 422
    code = "VALIDATION_ERROR"
    message = "Invalid input."

    def __init__(self, errors: Sequence[tuple[str, str]], message: Optional[str] = None) -> None:
        self.errors: list[tuple[str, str]] = list(errors)
        details = "; ".join(f"{path}: {msg}" for path, msg in self.errors)
        super().__init__(message=message or f"Invalid input: {details}", detail=details)


class MemoryApiError(BaseAPIException):
    """The remote memory service answered with a non-2xx status."""

    status_code = 502
    code = "MEMORY_API_ERROR"
    message = "Memory service request failed."

    def __init__(self, message: str, status: int, body: Any, retryable: bool) -> None:
        self.status = status
        self.body = body
        self.retryable = retryable
        super().__init__(message=message, detail=f"HTTP {status}")


class TransportError(BaseAPIException):
    """No response was obtained: connection failure or attempt timeout."""

    status_code = 504
    code = "MEMORY_TRANSPORT_ERROR"
    message = "Memory service unreachable."
    retryable = True


# Host errors
class ToolNotFoundError(BaseAPIException):
    status_code = 404
    code = "TOOL_NOT_FOUND"
    message = "Tool or command not registered."


# FastAPI handlers
async def unified_api_exception_handler(request: Request, exc: BaseAPIException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "code": exc.code,
            "message": exc.message,
            "detail": getattr(exc, "detail", None),
        },
    )


async def generic_exception_handler(request: Request, exc: Exception):
    traceback.print_exc()
    return JSONResponse(
        status_code=500,
        content={
            "code": "INTERNAL_SERVER_ERROR",
            "message": "Server error.",
            "detail": str(exc),
        },
    )


__all__ = [
    "BaseAPIException",
    "ConfigurationError",
    "InputValidationError",
    "MemoryApiError",
    "TransportError",
    "ToolNotFoundError",
    "unified_api_exception_handler",
    "generic_exception_handler",
]
