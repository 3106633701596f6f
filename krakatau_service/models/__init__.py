from __future__ import annotations

"""
Typed models for engine results.

Symbols are re-exported lazily from submodules via __getattr__ (PEP 562):
- engine.py -> ClassFile, AssembleResult
"""

from importlib import import_module
from typing import TYPE_CHECKING, Dict, Tuple

__all__ = ["ClassFile", "AssembleResult"]

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "ClassFile": (".engine", "ClassFile"),
    "AssembleResult": (".engine", "AssembleResult"),
}


def __getattr__(name: str):
    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(target[0], __name__)
    return getattr(module, target[1])


def __dir__():
    return sorted(list(globals().keys()) + __all__)


if TYPE_CHECKING:
    from .engine import AssembleResult, ClassFile
