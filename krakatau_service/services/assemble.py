"""
Assemble service: turn an uploaded ``.j`` source into class files.

An assembly the engine rejects is not a transport failure: the engine's own
``{success: false, file_path, error}`` answer goes back to the client with
status 200.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import Request
from fastapi.responses import JSONResponse

from krakatau_service.engine.errors import EngineError, EngineReportedFailure
from krakatau_service.errors import EngineFailure, InputValidationError
from krakatau_service.services.dispatch import call_engine
from krakatau_service.services.payload import is_multipart, read_multipart

log = logging.getLogger(__name__)

SOURCE_SUFFIX = ".j"
DEFAULT_SOURCE_FILENAME = "input.j"


def decode_source(content: bytes) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        raise InputValidationError("Assembly source must be UTF-8 text")


def reported_failure_body(err: EngineReportedFailure, file_path: str) -> Dict[str, Any]:
    response = err.response
    body: Dict[str, Any] = dict(response.to_dict()) if response is not None else {}
    body["success"] = False
    body.setdefault("file_path", file_path)
    body.setdefault("error", err.message)
    return body


async def handle_assemble(request: Request, bridge) -> JSONResponse:
    cfg = request.app.state.config
    if not is_multipart(request):
        raise InputValidationError("No file uploaded")
    payload = await read_multipart(request, limit=cfg.max_upload_bytes, default_filename=DEFAULT_SOURCE_FILENAME)
    if not payload.filename.endswith(SOURCE_SUFFIX):
        raise InputValidationError("Assembly endpoint expects .j files")
    source = decode_source(payload.content)

    log.info("assembling %s (%d characters)", payload.filename, len(source))
    try:
        result = await call_engine(request, "assemble", bridge.assemble, payload.filename, source)
    except EngineReportedFailure as e:
        log.info("assembly of %s rejected by engine: %s", payload.filename, e.message)
        result = reported_failure_body(e, payload.filename)
    except EngineError as e:
        raise EngineFailure(f"Assembly failed: {e.message}", kind=e.kind) from e

    return JSONResponse(result, headers={"Access-Control-Allow-Origin": "*"})


__all__ = ["SOURCE_SUFFIX", "decode_source", "reported_failure_body", "handle_assemble"]
