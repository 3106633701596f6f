"""
Request payload extraction for the engine routes.

A payload is either the single multipart field ``file`` or, for decompilation,
the raw request body. Extraction enforces the upload cap before anything is
handed to validation or to the engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from starlette.datastructures import UploadFile

from krakatau_service.errors import InputValidationError, PayloadTooLarge

log = logging.getLogger(__name__)

FILE_FIELD = "file"
DEFAULT_RAW_FILENAME = "Unknown.class"


@dataclass(frozen=True)
class Payload:
    filename: str
    content: bytes
    multipart: bool

    @property
    def size(self) -> int:
        return len(self.content)


def is_multipart(request: Request) -> bool:
    ctype = request.headers.get("content-type", "")
    return ctype.lower().startswith("multipart/form-data")


def _check_declared_length(request: Request, limit: int) -> None:
    declared = request.headers.get("content-length")
    if not declared:
        return
    try:
        size = int(declared)
    except ValueError:
        raise InputValidationError("Invalid Content-Length header")
    # Multipart framing adds a little overhead on top of the file itself.
    if size > limit + 64 * 1024:
        raise PayloadTooLarge(limit)


async def _read_upload(upload: UploadFile, limit: int) -> bytes:
    data = await upload.read(limit + 1)
    if len(data) > limit:
        raise PayloadTooLarge(limit)
    return data


async def read_multipart(request: Request, *, limit: int, default_filename: str) -> Payload:
    """Return the ``file`` field of a multipart body."""
    _check_declared_length(request, limit)
    form = await request.form(max_files=1, max_fields=16)
    try:
        upload = form.get(FILE_FIELD)
        if not isinstance(upload, UploadFile):
            raise InputValidationError("No file uploaded")
        content = await _read_upload(upload, limit)
        return Payload(filename=upload.filename or default_filename, content=content, multipart=True)
    finally:
        await form.close()


async def read_raw_body(request: Request, *, limit: int, filename: Optional[str] = None) -> Payload:
    """Return the raw body, streamed so oversized uploads stop at the cap."""
    _check_declared_length(request, limit)
    chunks = []
    total = 0
    async for chunk in request.stream():
        total += len(chunk)
        if total > limit:
            raise PayloadTooLarge(limit)
        chunks.append(chunk)
    return Payload(filename=filename or DEFAULT_RAW_FILENAME, content=b"".join(chunks), multipart=False)


async def extract_payload(
    request: Request,
    *,
    limit: int,
    allow_raw: bool,
    default_filename: str,
) -> Payload:
    """
    Multipart requests yield their ``file`` field. Anything else is read as a
    raw body when ``allow_raw`` is set and rejected with "No file uploaded"
    otherwise.
    """
    if is_multipart(request):
        payload = await read_multipart(request, limit=limit, default_filename=default_filename)
    elif allow_raw:
        payload = await read_raw_body(request, limit=limit, filename=request.query_params.get("filename"))
    else:
        raise InputValidationError("No file uploaded")
    log.debug("payload extracted: filename=%s size=%d multipart=%s", payload.filename, payload.size, payload.multipart)
    return payload


__all__ = [
    "FILE_FIELD",
    "DEFAULT_RAW_FILENAME",
    "Payload",
    "is_multipart",
    "extract_payload",
    "read_multipart",
    "read_raw_body",
]
