from __future__ import annotations

"""
Engine routes

Endpoints (paths come from configuration):
  - POST DECOMPILE_ENDPOINT : class file (multipart ``file`` or raw body) -> assembler text
  - POST ASSEMBLE_ENDPOINT  : ``.j`` source (multipart ``file``) -> JSON with class files

Handlers take only the Request so the credential check (a router dependency
that looks at headers) runs before the body is read. The body is parsed by
the service layer.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response

from krakatau_service.config import Config
from krakatau_service.engine.bridge import EngineBridge
from krakatau_service.security.auth import RequireCredentials
from krakatau_service.services.assemble import handle_assemble
from krakatau_service.services.decompile import handle_decompile

log = logging.getLogger(__name__)


def get_bridge(request: Request) -> EngineBridge:
    return request.app.state.bridge


def create_engine_router(cfg: Config) -> APIRouter:
    router = APIRouter(
        tags=["engine"],
        dependencies=[Depends(RequireCredentials.from_config(cfg))],
    )

    async def decompile(request: Request, bridge: EngineBridge = Depends(get_bridge)) -> Response:
        return await handle_decompile(request, bridge)

    async def assemble(request: Request, bridge: EngineBridge = Depends(get_bridge)) -> Response:
        return await handle_assemble(request, bridge)

    router.add_api_route(
        cfg.decompile_endpoint,
        decompile,
        methods=["POST"],
        summary="Decompile a class file to Krakatau assembler",
        response_class=Response,
    )
    router.add_api_route(
        cfg.assemble_endpoint,
        assemble,
        methods=["POST"],
        summary="Assemble Krakatau source into class files",
        response_class=Response,
    )
    log.debug("engine routes: decompile=%s assemble=%s", cfg.decompile_endpoint, cfg.assemble_endpoint)
    return router


__all__ = ["create_engine_router", "get_bridge"]
