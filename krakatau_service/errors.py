from __future__ import annotations

"""
HTTP-facing error hierarchy for the Krakatau service.

Every error carries:
  - ``status_code`` (int): HTTP status
  - ``code`` (str): stable machine code (e.g. "bad_request")
  - ``message`` (str): the human summary returned as ``{"error": ...}``
  - ``detail`` (str|None): extra text returned as ``{"message": ...}`` (500s)
  - ``headers`` (dict|None): response headers (e.g. WWW-Authenticate)

The exception handlers in :mod:`krakatau_service.middleware.errors` render these
as JSON. Engine failures (``krakatau_service.engine.errors``) are converted to
``EngineFailure`` at the service boundary.

Usage
-----
    from krakatau_service.errors import InputValidationError

    raise InputValidationError("Invalid class file format")
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


@dataclass
class ApiError(Exception):
    message: str
    status_code: int = 400
    code: str = "bad_request"
    detail: Optional[str] = None
    details: Optional[Mapping[str, Any]] = None
    headers: Optional[Dict[str, str]] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.detail:
            body["message"] = self.detail
        if self.details:
            body["details"] = dict(self.details)
        return body

    def to_response(self):
        """Return a Starlette JSONResponse for this error."""
        from starlette.responses import JSONResponse

        return JSONResponse(self.to_body(), status_code=self.status_code, headers=self.headers)

    @classmethod
    def from_unexpected(cls, err: BaseException) -> "ApiError":
        return ServerError(detail=str(err) or err.__class__.__name__)


# ------------------------------ Concrete types ------------------------------- #


class InputValidationError(ApiError):
    """Bad magic, wrong extension, empty body, missing multipart field."""

    def __init__(self, message: str = "Bad request", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=400, code="bad_request", details=details)


class PayloadTooLarge(ApiError):
    def __init__(self, limit: int):
        super().__init__(
            message=f"Uploaded file exceeds the {limit} byte limit",
            status_code=413,
            code="payload_too_large",
            details={"limit": limit},
        )


class AuthenticationError(ApiError):
    def __init__(self, message: str = "Authentication required", *, realm: Optional[str] = None):
        headers = {"WWW-Authenticate": f'Basic realm="{realm}"'} if realm else None
        super().__init__(message=message, status_code=401, code="unauthorized", headers=headers)


class RouteNotFound(ApiError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message=message, status_code=404, code="not_found")


class EngineFailure(ApiError):
    """An EngineError surfaced to the client as a 500."""

    def __init__(self, detail: str, *, kind: Optional[str] = None):
        super().__init__(
            message="Internal server error",
            status_code=500,
            code="engine_error",
            detail=detail,
        )
        self.kind = kind


class ServerError(ApiError):
    def __init__(self, message: str = "Internal server error", *, detail: Optional[str] = None):
        super().__init__(message=message, status_code=500, code="server_error", detail=detail)


__all__ = [
    "ApiError",
    "InputValidationError",
    "PayloadTooLarge",
    "AuthenticationError",
    "RouteNotFound",
    "EngineFailure",
    "ServerError",
]
