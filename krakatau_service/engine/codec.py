"""
JSON envelopes exchanged with the engine module.

The engine speaks a tiny JSON protocol over its linear memory:

    decompile_json  <- {"file_path", "base64_content", "roundtrip", "no_short_code_attr"}
    assemble_json   <- {"file_path", "source_code"}
    (both)          -> {"success", "file_path", "output" | "class_files", "error"}

Field names are part of the module ABI and must change in lockstep with the
engine build. There is no version negotiation.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ResponseDecodeError

DECOMPILE_ENTRY = "decompile_json"
ASSEMBLE_ENTRY = "assemble_json"


@dataclass(frozen=True)
class DecompileRequest:
    file_path: str
    content: bytes
    roundtrip: bool = False
    no_short_code_attr: bool = False

    operation = "decompile"
    entry_point = DECOMPILE_ENTRY

    def to_json(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "base64_content": base64.b64encode(self.content).decode("ascii"),
            "roundtrip": bool(self.roundtrip),
            "no_short_code_attr": bool(self.no_short_code_attr),
        }


@dataclass(frozen=True)
class AssembleRequest:
    file_path: str
    source_code: str

    operation = "assemble"
    entry_point = ASSEMBLE_ENTRY

    def to_json(self) -> Dict[str, Any]:
        return {"file_path": self.file_path, "source_code": self.source_code}


OperationRequest = Union[DecompileRequest, AssembleRequest]


@dataclass(frozen=True)
class OperationResponse:
    """Decoded engine answer. Holds no reference into engine memory."""

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    file_path: Optional[str] = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.payload)


def encode_request(request: OperationRequest) -> bytes:
    """Serialize a request to the UTF-8 JSON bytes copied into engine memory."""
    return json.dumps(request.to_json(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_response(raw: bytes) -> OperationResponse:
    """
    Parse the bytes copied out of engine memory.

    Raises ResponseDecodeError when the bytes are not UTF-8, not JSON, or not a
    JSON object with a boolean ``success`` member.
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ResponseDecodeError(f"response is not valid UTF-8 ({e.reason} at byte {e.start})") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseDecodeError(f"response is not valid JSON ({e.msg} at char {e.pos})") from e
    if not isinstance(data, dict):
        raise ResponseDecodeError(f"expected a JSON object, got {type(data).__name__}")
    if "success" not in data:
        raise ResponseDecodeError("response has no 'success' member")
    if not isinstance(data["success"], bool):
        raise ResponseDecodeError(f"'success' must be a boolean, got {type(data['success']).__name__}")

    output = data.get("output")
    error = data.get("error")
    file_path = data.get("file_path")
    return OperationResponse(
        success=data["success"],
        output=output if isinstance(output, str) else None,
        error=error if isinstance(error, str) else (None if error is None else str(error)),
        file_path=file_path if isinstance(file_path, str) else None,
        payload=data,
    )


__all__ = [
    "DECOMPILE_ENTRY",
    "ASSEMBLE_ENTRY",
    "DecompileRequest",
    "AssembleRequest",
    "OperationRequest",
    "OperationResponse",
    "encode_request",
    "decode_response",
]
