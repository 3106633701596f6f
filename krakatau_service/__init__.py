"""
Krakatau Service
================

HTTP and command-line front-end for the Krakatau Java bytecode
decompiler/assembler, running as a WebAssembly module inside the process.

This package exposes:

- ``__version__``: semantic version string
- ``build_app()``: convenience creator for a configured FastAPI app

Prefer importing submodules directly for specific concerns:
``krakatau_service.engine.bridge``, ``krakatau_service.config``,
``krakatau_service.routers.*``, etc.
"""

from __future__ import annotations

from .version import __version__

__all__ = ["__version__", "build_app"]


def build_app():
    """
    Create and return a fully configured FastAPI application.

    A light wrapper around :func:`krakatau_service.app.create_app`, imported
    lazily so that version lookups do not pull in FastAPI or wasmtime.
    """
    from .app import create_app

    return create_app()
