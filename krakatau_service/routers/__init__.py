"""
Routers package: aggregates the HTTP routes into a single APIRouter.

The engine routes are built per configuration (their paths and credentials
come from Config); the operational routes are static.

Usage (from app factory):
    from krakatau_service.routers import build_router
    app.include_router(build_router(cfg))
"""

from __future__ import annotations

import logging

from fastapi import APIRouter

from krakatau_service.config import Config

log = logging.getLogger(__name__)


def build_router(cfg: Config) -> APIRouter:
    """Return one APIRouter with the health and engine routes included."""
    from .engine import create_engine_router
    from .health import router as health_router

    root = APIRouter()
    root.include_router(health_router)
    root.include_router(create_engine_router(cfg))
    return root


__all__ = ["build_router"]
