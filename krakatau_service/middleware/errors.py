from __future__ import annotations

"""
Exception → JSON mappers for FastAPI.

- Produces ``application/json`` bodies of the form ``{"error": ...}`` for:
    * ApiError subclasses (krakatau_service.errors)
    * EngineError subclasses that escaped the service layer (500)
    * Starlette/FastAPI HTTPException (405 on a known path is reported as 404)
    * RequestValidationError
    * Unhandled exceptions (500, with ``message``)
- Adds ``request_id`` when the request-id middleware assigned one.
- Never leaks stack traces in responses; logs them instead.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from krakatau_service.engine.errors import EngineError
from krakatau_service.errors import ApiError

log = structlog.get_logger(__name__)


def _with_request_id(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    rid = getattr(request.state, "request_id", "") or ""
    if rid:
        body.setdefault("request_id", rid)
    return body


def _json(
    request: Request,
    status: int,
    body: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(status_code=status, content=_with_request_id(request, body), headers=headers)


# --------------------------- Handlers ---------------------------


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    body = exc.to_body()
    fields = {"status": exc.status_code, "code": exc.code, "path": request.url.path, "error": exc.message}
    if exc.status_code >= 500:
        log.error("api_error", detail=exc.detail, **fields)
    else:
        log.warning("api_error", **fields)
    return _json(request, exc.status_code, body, headers=exc.headers)


async def _handle_engine_error(request: Request, exc: EngineError) -> JSONResponse:
    log.error("engine_error", kind=exc.kind, error=exc.message, path=request.url.path)
    return _json(request, 500, {"error": "Internal server error", "message": exc.message})


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status = int(exc.status_code)
    if status in (404, 405):
        # Only POST on the configured endpoints is routable.
        return _json(request, 404, {"error": "Not found"})
    detail = str(exc.detail) if getattr(exc, "detail", None) else "Error"
    (log.warning if status < 500 else log.error)("http_exception", status=status, error=detail)
    return _json(request, status, {"error": detail}, headers=getattr(exc, "headers", None))


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    log.warning("validation_error", path=request.url.path, errors=len(errors))
    return _json(
        request,
        422,
        {"error": "Request validation failed", "details": jsonable_errors(errors)},
    )


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled_exception", path=request.url.path)
    return _json(
        request,
        500,
        {"error": "Internal server error", "message": str(exc) or exc.__class__.__name__},
    )


def jsonable_errors(errors: Any) -> Any:
    from fastapi.encoders import jsonable_encoder

    return jsonable_encoder(errors)


# --------------------------- Installer ---------------------------


def install_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the given FastAPI app."""
    app.add_exception_handler(ApiError, _handle_api_error)  # type: ignore[arg-type]
    app.add_exception_handler(EngineError, _handle_engine_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected_error)


__all__ = ["install_error_handlers"]
