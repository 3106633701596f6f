"""
Engine integration for krakatau-service.

- bridge : loads the Krakatau wasm module once and serializes request cycles
- codec  : JSON envelopes exchanged with the module
- errors : EngineError taxonomy

Submodules are loaded lazily via PEP 562 (__getattr__) so that importing the
package (e.g. for the error types) does not pull in wasmtime.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

__all__ = [
    "bridge",
    "codec",
    "errors",
]


def __getattr__(name: str):
    if name in __all__:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(globals().keys()) + __all__)


if TYPE_CHECKING:
    from . import bridge, codec, errors
