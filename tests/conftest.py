from __future__ import annotations

import struct
import threading
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from krakatau_service.app import create_app
from krakatau_service.config import Config
from krakatau_service.engine.bridge import EngineBridge

from .wat_engine import WatEngine


# ----------------------------
# Class file fixtures
# ----------------------------
def minimal_class_file(name: str = "Hello") -> bytes:
    """
    A valid, tiny Java 8 class: ``public class <name>`` with one
    ``public static void run()`` whose body is a single ``return``.
    """

    def utf8(s: str) -> bytes:
        raw = s.encode("utf-8")
        return b"\x01" + struct.pack(">H", len(raw)) + raw

    pool = [
        utf8(name),                         # 1
        b"\x07" + struct.pack(">H", 1),     # 2 Class name
        utf8("java/lang/Object"),           # 3
        b"\x07" + struct.pack(">H", 3),     # 4 Class java/lang/Object
        utf8("run"),                        # 5
        utf8("()V"),                        # 6
        utf8("Code"),                       # 7
    ]
    code = b"\xb1"  # return
    code_attr = struct.pack(">HHI", 1, 0, len(code)) + code + struct.pack(">HH", 0, 0)
    method = (
        struct.pack(">HHHH", 0x0009, 5, 6, 1)
        + struct.pack(">HI", 7, len(code_attr))
        + code_attr
    )
    return (
        b"\xca\xfe\xba\xbe"
        + struct.pack(">HH", 0, 52)
        + struct.pack(">H", len(pool) + 1)
        + b"".join(pool)
        + struct.pack(">HHH", 0x0021, 2, 4)
        + struct.pack(">H", 0)          # interfaces
        + struct.pack(">H", 0)          # fields
        + struct.pack(">H", 1) + method  # methods
        + struct.pack(">H", 0)          # attributes
    )


@pytest.fixture
def class_bytes() -> bytes:
    return minimal_class_file()


# ----------------------------
# WAT engines
# ----------------------------
@pytest.fixture
def make_engine(tmp_path: Path) -> Callable[..., Path]:
    """Build a WAT engine with the given options and return its module path."""

    def _make(**options: Any) -> Path:
        return WatEngine(**options).write(tmp_path)

    return _make


@pytest.fixture
def wasm_path(make_engine) -> Path:
    return make_engine()


@pytest.fixture
def bridge(wasm_path: Path) -> EngineBridge:
    return EngineBridge(wasm_path)


# ----------------------------
# Mock bridge for service tests
# ----------------------------
class MockBridge:
    """
    Stands in for EngineBridge in HTTP tests. ``behaviour`` may be a value to
    return or an exception instance to raise; every call is recorded.
    """

    def __init__(self, module_path: Optional[Path] = None) -> None:
        self.module_path = module_path or Path("missing-krak2.wasm")
        self.decompile_result: Any = ".class public Hello\n"
        self.assemble_result: Any = {
            "success": True,
            "file_path": "Hello.j",
            "class_files": [{"name": "Hello", "base64_content": "yv66vg=="}],
            "error": None,
        }
        self.calls: List[Dict[str, Any]] = []
        self.loaded = False
        self._lock = threading.Lock()

    def _answer(self, result: Any) -> Any:
        if isinstance(result, BaseException):
            raise result
        return result

    def decompile(self, file_path: str, content: bytes, *, roundtrip: bool = False, no_short_code_attr: bool = False) -> str:
        with self._lock:
            self.calls.append(
                {
                    "op": "decompile",
                    "file_path": file_path,
                    "content": content,
                    "roundtrip": roundtrip,
                    "no_short_code_attr": no_short_code_attr,
                }
            )
        return self._answer(self.decompile_result)

    def assemble(self, file_path: str, source_code: str) -> Dict[str, Any]:
        with self._lock:
            self.calls.append({"op": "assemble", "file_path": file_path, "source_code": source_code})
        return self._answer(self.assemble_result)

    def load(self) -> None:
        self.loaded = True

    def describe(self) -> Dict[str, Any]:
        return {"module_path": str(self.module_path), "loaded": self.loaded, "stats": {"calls": len(self.calls)}}


@pytest.fixture
def mock_bridge() -> MockBridge:
    return MockBridge()


# ----------------------------
# FastAPI application fixtures
# ----------------------------
@pytest.fixture
def config_overrides() -> Dict[str, Any]:
    """Override in a test module (or via parametrize) to change settings."""
    return {}


@pytest.fixture
def config(config_overrides: Dict[str, Any], tmp_path: Path) -> Config:
    values: Dict[str, Any] = {
        "wasm_path": tmp_path / "krak2.wasm",
        "log_level": "WARNING",
        "log_format": "console",
        "metrics_enabled": True,
    }
    values.update(config_overrides)
    return Config(_env_file=None, **values)


@pytest.fixture
def app(config: Config, mock_bridge: MockBridge) -> FastAPI:
    return create_app(config, bridge=mock_bridge)


@pytest_asyncio.fixture
async def aclient(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the ASGI app (no server, no lifespan)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


def class_upload(content: bytes, filename: str = "Hello.class") -> Dict[str, Any]:
    return {"file": (filename, content, "application/java-vm")}


def source_upload(source: str, filename: str = "Hello.j") -> Dict[str, Any]:
    return {"file": (filename, source.encode("utf-8"), "text/plain")}
