"""
krakatau_service.services
=========================

Service layer behind the engine routes. Submodules are imported lazily.

Public submodules
-----------------
- payload   : multipart / raw body extraction with the upload cap
- decompile : class-file validation, query options, decompile dispatch
- assemble  : ``.j`` validation, assemble dispatch, engine-reported failures
- dispatch  : threadpool offload and engine metrics
"""

from __future__ import annotations

from importlib import import_module

__all__ = ["payload", "decompile", "assemble", "dispatch"]


def __getattr__(name: str):
    if name in __all__:
        return import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(globals().keys()) + __all__)
