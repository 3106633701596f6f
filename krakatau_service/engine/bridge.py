from __future__ import annotations

"""
Host bridge for the Krakatau WebAssembly engine.

The engine is a wasm32 module with a C-style ABI: raw ``(ptr, len)`` pairs and
a process-global bump allocator that is not re-entrant. This module owns the one
live instance and drives it through a full request cycle per call:

    allocate(10)            warm-up; the first allocation after instantiation
                            is unreliable and its result is discarded
    allocate(len)           real input buffer
    memory.write            copy the JSON request in
    <entry>(ptr, len)       decompile_json / assemble_json
    get_response_length()
    get_response_ptr()
    memory.read             copy the JSON response out (host-owned bytes)
    free_response()         always, once the entry point has been entered
    decode                  JSON -> OperationResponse

Only one cycle may be in flight at a time; :class:`EngineBridge` holds a mutex
for the whole sequence. Loading has its own lock so concurrent first callers
instantiate the module exactly once.

Usage
-----
    from krakatau_service.engine.bridge import EngineBridge

    bridge = EngineBridge("krak2.wasm")
    text = bridge.decompile("Hello.class", class_bytes)
    result = bridge.assemble("Hello.j", source)   # full decoded mapping
"""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import structlog
import wasmtime

from .codec import (
    ASSEMBLE_ENTRY,
    DECOMPILE_ENTRY,
    AssembleRequest,
    DecompileRequest,
    OperationRequest,
    OperationResponse,
    decode_response,
    encode_request,
)
from .errors import (
    AllocationFailed,
    EngineAborted,
    EngineBusy,
    EngineError,
    EngineInvocationFailed,
    EngineReportedFailure,
    EngineTrap,
    InstantiationFailed,
    MissingExport,
    ModuleNotFound,
    NoMemoryExport,
    ResponseAddressError,
    ResponseDecodeError,
    ResponseLengthError,
)

log = structlog.get_logger(__name__)

MEMORY_EXPORT = "memory"
ALLOCATE = "allocate_input_buffer"
GET_RESPONSE_LENGTH = "get_response_length"
GET_RESPONSE_PTR = "get_response_ptr"
FREE_RESPONSE = "free_response"

# Checked in this order; the first missing required name is reported.
CONTRACT_EXPORTS = (
    ALLOCATE,
    DECOMPILE_ENTRY,
    ASSEMBLE_ENTRY,
    GET_RESPONSE_LENGTH,
    GET_RESPONSE_PTR,
    FREE_RESPONSE,
)
OPTIONAL_EXPORTS = frozenset({ASSEMBLE_ENTRY})

WARMUP_ALLOCATION = 10


# ------------------------------- handle ---------------------------------------


@dataclass
class EngineHandle:
    """The compiled module, its live instance and the resolved exports."""

    path: Path
    store: wasmtime.Store
    module: wasmtime.Module
    instance: wasmtime.Instance
    memory: wasmtime.Memory
    exports: Dict[str, wasmtime.Func]
    loaded_at: float = field(default_factory=time.time)

    def has_export(self, name: str) -> bool:
        return name in self.exports

    def call(self, name: str, *args: int) -> Any:
        try:
            fn = self.exports[name]
        except KeyError:
            raise MissingExport(name) from None
        return fn(self.store, *args)

    def memory_size(self) -> int:
        # Re-read on every access: the module may grow its memory.
        return self.memory.data_len(self.store)

    def write(self, ptr: int, data: bytes) -> None:
        end = ptr + len(data)
        size = self.memory_size()
        if ptr < 0 or end > size:
            raise AllocationFailed(len(data), f"buffer [{ptr}, {end}) exceeds memory size {size}")
        self.memory.write(self.store, data, ptr)

    def read(self, ptr: int, length: int) -> bytes:
        end = ptr + length
        size = self.memory_size()
        if ptr < 0 or end > size:
            raise ResponseAddressError(f"region [{ptr}, {end}) exceeds memory size {size}")
        return bytes(self.memory.read(self.store, ptr, end))


def _abort(*args: int) -> None:
    raise EngineAborted(*args)


def _export(exports: Any, name: str) -> Any:
    try:
        return exports[name]
    except KeyError:
        return None


def load_engine(path: Union[str, Path]) -> EngineHandle:
    """
    Compile and instantiate the module at ``path`` and verify its exports.

    Raises ModuleNotFound, InstantiationFailed, NoMemoryExport or MissingExport.
    """
    path = Path(path)
    try:
        wasm_bytes = path.read_bytes()
    except FileNotFoundError:
        raise ModuleNotFound(path) from None
    except IsADirectoryError:
        raise ModuleNotFound(path) from None

    engine = wasmtime.Engine()
    store = wasmtime.Store(engine)
    try:
        module = wasmtime.Module(engine, wasm_bytes)
        linker = wasmtime.Linker(engine)
        for imp in module.imports:
            if imp.module == "env" and imp.name == "abort" and isinstance(imp.type, wasmtime.FuncType):
                linker.define_func("env", "abort", imp.type, _abort)
        instance = linker.instantiate(store, module)
    except (wasmtime.WasmtimeError, wasmtime.Trap) as e:
        raise InstantiationFailed(str(e)) from e

    exports = instance.exports(store)
    memory = _export(exports, MEMORY_EXPORT)
    if not isinstance(memory, wasmtime.Memory):
        raise NoMemoryExport()

    funcs: Dict[str, wasmtime.Func] = {}
    for name in CONTRACT_EXPORTS:
        item = _export(exports, name)
        if isinstance(item, wasmtime.Func):
            funcs[name] = item
        elif name not in OPTIONAL_EXPORTS:
            raise MissingExport(name)

    handle = EngineHandle(
        path=path,
        store=store,
        module=module,
        instance=instance,
        memory=memory,
        exports=funcs,
    )
    log.info(
        "engine_loaded",
        path=str(path),
        module_bytes=len(wasm_bytes),
        memory_bytes=handle.memory_size(),
        assemble=handle.has_export(ASSEMBLE_ENTRY),
    )
    return handle


# ------------------------------- bridge ---------------------------------------


@dataclass
class BridgeStats:
    calls: int = 0
    failures: int = 0
    last_error: Optional[str] = None
    last_duration_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "last_error": self.last_error,
            "last_duration_ms": self.last_duration_ms,
        }


class EngineBridge:
    """
    Owns the single engine instance and serializes request cycles onto it.

    Parameters
    ----------
    module_path:
        Path of the compiled ``.wasm`` module.
    lock_timeout:
        Seconds a caller may wait for the engine before failing with
        EngineBusy. ``None`` waits forever.
    """

    def __init__(self, module_path: Union[str, Path], *, lock_timeout: Optional[float] = None) -> None:
        self.module_path = Path(module_path)
        self.lock_timeout = lock_timeout
        self._handle: Optional[EngineHandle] = None
        self._init_lock = threading.Lock()
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self.stats = BridgeStats()

    # --- lifecycle --------------------------------------------------------- #

    @property
    def loaded(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> Optional[EngineHandle]:
        return self._handle

    def load(self) -> EngineHandle:
        """Load the module once; later calls return the same handle."""
        handle = self._handle
        if handle is not None:
            return handle
        with self._init_lock:
            if self._handle is None:
                self._handle = load_engine(self.module_path)
            return self._handle

    # --- request cycle ----------------------------------------------------- #

    def invoke(self, request: OperationRequest) -> OperationResponse:
        """
        Run one full request cycle under the engine lock.

        Returns the decoded response when the engine reports success; raises
        EngineReportedFailure (carrying the response) when it does not, and
        another EngineError subclass for any transport-level failure.
        """
        handle = self.load()

        wait_start = time.perf_counter()
        timeout = -1 if self.lock_timeout is None else max(0.0, self.lock_timeout)
        if not self._lock.acquire(timeout=timeout):
            raise EngineBusy(float(self.lock_timeout or 0.0))
        lock_wait_ms = (time.perf_counter() - wait_start) * 1e3

        start = time.perf_counter()
        try:
            self.stats.calls += 1
            try:
                raw = self._cycle(handle, request)
            except EngineError as e:
                self._record_failure(e)
                raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1e3
            self.stats.last_duration_ms = round(duration_ms, 3)
            self._lock.release()

        try:
            response = decode_response(raw)
        except ResponseDecodeError as e:
            self._record_failure(e)
            raise

        log.debug(
            "engine_cycle",
            operation=request.operation,
            file_path=request.file_path,
            response_bytes=len(raw),
            success=response.success,
            lock_wait_ms=round(lock_wait_ms, 3),
            duration_ms=round(duration_ms, 3),
        )
        if not response.success:
            err = EngineReportedFailure(
                response.error or f"Unknown {request.operation} error",
                response=response,
            )
            self._record_failure(err)
            raise err
        return response

    def _cycle(self, handle: EngineHandle, request: OperationRequest) -> bytes:
        """Steps from encode to the copied response bytes. Caller holds the lock."""
        entry = request.entry_point
        if not handle.has_export(entry):
            raise MissingExport(entry)
        payload = encode_request(request)

        try:
            handle.call(ALLOCATE, WARMUP_ALLOCATION)
            ptr = handle.call(ALLOCATE, len(payload))
            if not ptr:
                raise AllocationFailed(len(payload))
            handle.write(ptr, payload)

            try:
                status = handle.call(entry, ptr, len(payload))
                if status < 0:
                    raise EngineInvocationFailed(entry, status)

                length = handle.call(GET_RESPONSE_LENGTH)
                if length < 0:
                    raise ResponseLengthError(length)
                resp_ptr = handle.call(GET_RESPONSE_PTR)
                if not resp_ptr:
                    raise ResponseAddressError()
                return handle.read(resp_ptr, length)
            finally:
                handle.call(FREE_RESPONSE)
        except EngineTrap:
            raise
        except (wasmtime.Trap, wasmtime.WasmtimeError) as e:
            raise EngineTrap(entry, str(e)) from e

    def _record_failure(self, err: EngineError) -> None:
        # Also called after the engine lock is released.
        with self._stats_lock:
            self.stats.failures += 1
            self.stats.last_error = f"{err.kind}: {err.message}"
        log.warning("engine_cycle_failed", kind=err.kind, error=err.message)

    # --- convenience ------------------------------------------------------- #

    def decompile(
        self,
        file_path: str,
        content: bytes,
        *,
        roundtrip: bool = False,
        no_short_code_attr: bool = False,
    ) -> str:
        """Decompile class-file bytes; returns the assembler text."""
        response = self.invoke(
            DecompileRequest(
                file_path=file_path,
                content=content,
                roundtrip=roundtrip,
                no_short_code_attr=no_short_code_attr,
            )
        )
        if response.output is None:
            raise ResponseDecodeError("successful decompile response has no 'output'")
        return response.output

    def assemble(self, file_path: str, source_code: str) -> Dict[str, Any]:
        """Assemble ``.j`` source; returns the full decoded engine result."""
        response = self.invoke(AssembleRequest(file_path=file_path, source_code=source_code))
        return response.to_dict()

    def describe(self) -> Dict[str, Any]:
        handle = self._handle
        info: Dict[str, Any] = {
            "module_path": str(self.module_path),
            "loaded": handle is not None,
            "stats": self.stats.to_dict(),
        }
        if handle is not None:
            info["loaded_at"] = handle.loaded_at
            info["memory_bytes"] = handle.memory_size()
            info["exports"] = {name: handle.has_export(name) for name in CONTRACT_EXPORTS}
        return info


# ------------------------------ process singleton ------------------------------

_singleton: Optional[EngineBridge] = None
_singleton_lock = threading.Lock()


def get_engine_bridge(
    module_path: Union[str, Path, None] = None,
    *,
    lock_timeout: Optional[float] = None,
) -> EngineBridge:
    """
    Return the process-wide bridge, creating it on first call.

    Later calls ignore their arguments: there is one engine per process.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            if module_path is None:
                from krakatau_service.config import load_config

                cfg = load_config()
                module_path = cfg.wasm_path
                lock_timeout = cfg.engine_lock_timeout if lock_timeout is None else lock_timeout
            _singleton = EngineBridge(module_path, lock_timeout=lock_timeout)
        return _singleton


__all__ = [
    "EngineHandle",
    "EngineBridge",
    "BridgeStats",
    "load_engine",
    "get_engine_bridge",
    "CONTRACT_EXPORTS",
    "OPTIONAL_EXPORTS",
    "WARMUP_ALLOCATION",
]
