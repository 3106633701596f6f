from __future__ import annotations

"""
Error taxonomy for the engine bridge.

Every failure that can happen while loading or driving the sandboxed module is
raised as a subclass of :class:`EngineError`. The service layer catches the base
class at its boundary and turns it into a JSON 500; the CLI turns it into a
message on stderr and exit code 1.

Hierarchy
---------
EngineError
├── EngineLoadError
│   ├── ModuleNotFound
│   ├── InstantiationFailed
│   ├── NoMemoryExport
│   └── MissingExport
├── AllocationFailed
├── EngineInvocationFailed
├── ResponseLengthError
├── ResponseAddressError
├── ResponseDecodeError
├── EngineReportedFailure
├── EngineTrap
│   └── EngineAborted
└── EngineBusy
"""

from pathlib import Path
from typing import Any, Optional, Union


class EngineError(Exception):
    """Base class for all engine bridge failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return self.__class__.__name__


# ------------------------------- load errors ---------------------------------


class EngineLoadError(EngineError):
    """The module could not be turned into a usable EngineHandle."""


class ModuleNotFound(EngineLoadError):
    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__(f"WASM file not found at {path}. Please build the project first.")
        self.path = str(path)


class InstantiationFailed(EngineLoadError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to compile or instantiate WASM module: {reason}")


class NoMemoryExport(EngineLoadError):
    def __init__(self) -> None:
        super().__init__("WASM module does not export memory")


class MissingExport(EngineLoadError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Required function {name} not found in WASM module")
        self.name = name


# ------------------------------- cycle errors --------------------------------


class AllocationFailed(EngineError):
    def __init__(self, size: int, reason: str = "allocator returned a null address") -> None:
        super().__init__(f"Failed to allocate WASM memory for input ({size} bytes): {reason}")
        self.size = size


class EngineInvocationFailed(EngineError):
    def __init__(self, entry_point: str, status: int) -> None:
        super().__init__(f"WASM {entry_point} function returned error (status {status})")
        self.entry_point = entry_point
        self.status = status


class ResponseLengthError(EngineError):
    def __init__(self, length: int) -> None:
        super().__init__(f"Failed to get response length from WASM (got {length})")
        self.length = length


class ResponseAddressError(EngineError):
    def __init__(self, reason: str = "response pointer is null") -> None:
        super().__init__(f"Failed to get response pointer from WASM: {reason}")


class ResponseDecodeError(EngineError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Malformed response from WASM: {reason}")


class EngineReportedFailure(EngineError):
    """The engine ran and answered ``success: false``."""

    def __init__(self, message: str, response: Optional[Any] = None) -> None:
        super().__init__(message)
        self.response = response


class EngineTrap(EngineError):
    """The module trapped (unreachable, out-of-bounds access, abort, ...)."""

    def __init__(self, entry_point: str, reason: str) -> None:
        super().__init__(f"WASM trap in {entry_point}: {reason}")
        self.entry_point = entry_point


class EngineAborted(EngineTrap):
    """Raised from the host ``env.abort`` import."""

    def __init__(self, *args: int) -> None:
        super().__init__("env.abort", f"WASM abort {tuple(args)!r}" if args else "WASM abort")
        self.abort_args = tuple(args)


class EngineBusy(EngineError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Engine busy: lock not acquired within {timeout:g}s")
        self.timeout = timeout


__all__ = [
    "EngineError",
    "EngineLoadError",
    "ModuleNotFound",
    "InstantiationFailed",
    "NoMemoryExport",
    "MissingExport",
    "AllocationFailed",
    "EngineInvocationFailed",
    "ResponseLengthError",
    "ResponseAddressError",
    "ResponseDecodeError",
    "EngineReportedFailure",
    "EngineTrap",
    "EngineAborted",
    "EngineBusy",
]
