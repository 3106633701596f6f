from __future__ import annotations

"""
Typed views of engine answers.

- ClassFile:      one assembled class (``name`` + base64 ``base64_content``)
- AssembleResult: the assemble_json answer ``{success, file_path, class_files, error}``

The HTTP route returns the engine's JSON untouched; these models are for
consumers that need to work with the result (the CLI writes class files from
them).
"""

import base64
import binascii
from pathlib import PurePosixPath
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClassFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, description="Internal class name, e.g. com/example/Hello")
    base64_content: str = Field(..., description="Standard-alphabet base64 of the class bytes")

    @field_validator("base64_content")
    @classmethod
    def _check_b64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"invalid base64: {e}") from e
        return v

    def content(self) -> bytes:
        return base64.b64decode(self.base64_content)

    def relative_path(self) -> PurePosixPath:
        """
        Output path for this class: ``<name>.class``. Names that would escape
        the output directory are rejected.
        """
        name = self.name if self.name.endswith(".class") else f"{self.name}.class"
        path = PurePosixPath(name)
        if path.is_absolute() or ".." in path.parts:
            raise ValueError(f"unsafe class file name: {self.name!r}")
        return path


class AssembleResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool
    file_path: Optional[str] = None
    class_files: List[ClassFile] = Field(default_factory=list)
    error: Optional[str] = None

    @field_validator("class_files", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @classmethod
    def from_engine(cls, data: Mapping[str, Any]) -> "AssembleResult":
        return cls.model_validate(dict(data))


__all__ = ["ClassFile", "AssembleResult"]
