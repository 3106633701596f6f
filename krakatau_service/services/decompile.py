"""
Decompile service: validate an uploaded class file and hand it to the engine.

Validation always happens before the bridge is touched:

1) multipart uploads must be named ``*.class``
2) raw bodies must not be empty
3) the first four bytes must be the class-file magic ``CA FE BA BE``

Options come from the query string and are enabled only by the literal
string ``"true"``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from fastapi import Request
from fastapi.responses import PlainTextResponse

from krakatau_service.engine.errors import EngineError
from krakatau_service.errors import EngineFailure, InputValidationError
from krakatau_service.services.dispatch import call_engine
from krakatau_service.services.payload import DEFAULT_RAW_FILENAME, Payload, extract_payload

log = logging.getLogger(__name__)

CLASS_MAGIC = b"\xca\xfe\xba\xbe"
CLASS_SUFFIX = ".class"

ROUNDTRIP_PARAMS = ("roundtrip",)
NO_SHORT_CODE_ATTR_PARAMS = ("no_shortcodeattr", "no_short_code_attr", "noShortCodeAttr")


@dataclass(frozen=True)
class DecompileOptions:
    roundtrip: bool = False
    no_short_code_attr: bool = False

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "DecompileOptions":
        return cls(
            roundtrip=flag_enabled(params, ROUNDTRIP_PARAMS),
            no_short_code_attr=flag_enabled(params, NO_SHORT_CODE_ATTR_PARAMS),
        )


def flag_enabled(params: Mapping[str, str], names) -> bool:
    return any(params.get(name) == "true" for name in names)


def has_class_magic(data: bytes) -> bool:
    return len(data) >= 4 and data[:4] == CLASS_MAGIC


def validate_class_payload(payload: Payload) -> None:
    if payload.multipart and not payload.filename.endswith(CLASS_SUFFIX):
        raise InputValidationError("Decompilation endpoint expects .class files")
    if not payload.content and not payload.multipart:
        raise InputValidationError("No class file data provided")
    if not has_class_magic(payload.content):
        raise InputValidationError("Invalid class file format")


async def handle_decompile(request: Request, bridge) -> PlainTextResponse:
    cfg = request.app.state.config
    payload = await extract_payload(
        request,
        limit=cfg.max_upload_bytes,
        allow_raw=cfg.allow_raw_body,
        default_filename=DEFAULT_RAW_FILENAME,
    )
    validate_class_payload(payload)
    options = DecompileOptions.from_query(request.query_params)

    log.info(
        "decompiling %s (%d bytes, roundtrip=%s, no_short_code_attr=%s)",
        payload.filename,
        payload.size,
        options.roundtrip,
        options.no_short_code_attr,
    )
    try:
        output = await call_engine(
            request,
            "decompile",
            bridge.decompile,
            payload.filename,
            payload.content,
            roundtrip=options.roundtrip,
            no_short_code_attr=options.no_short_code_attr,
        )
    except EngineError as e:
        raise EngineFailure(f"Decompilation failed: {e.message}", kind=e.kind) from e

    return PlainTextResponse(output, headers={"Access-Control-Allow-Origin": "*"})


__all__ = [
    "CLASS_MAGIC",
    "DecompileOptions",
    "flag_enabled",
    "has_class_magic",
    "validate_class_payload",
    "handle_decompile",
]
