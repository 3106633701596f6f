from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

# Local modules
from .version import __version__
from .config import Config, load_config
from .engine.bridge import EngineBridge, get_engine_bridge
from .logging import setup_logging
from .metrics import setup_metrics
from .middleware.request_id import RequestIdMiddleware
from .middleware.logging import install_access_log_middleware
from .middleware.errors import install_error_handlers
from .security.cors import setup_cors
from .routers import build_router

log = structlog.get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    App lifespan: load the engine up front when eager loading is configured.
    A load failure then aborts startup; lazily loaded engines fail on first use.
    """
    cfg: Config = app.state.config
    bridge: EngineBridge = app.state.bridge

    log.info("service_starting", version=__version__, **cfg.summary())
    if cfg.engine_eager_load and not bridge.loaded:
        await run_in_threadpool(bridge.load)

    try:
        yield
    finally:
        log.info("service_stopped", engine=bridge.describe()["stats"])


def create_app(config: Optional[Config] = None, bridge: Optional[EngineBridge] = None) -> FastAPI:
    """
    FastAPI factory. Mounts routers, middleware and metrics.

    ``bridge`` defaults to the process-wide bridge from get_engine_bridge, so
    every app built in one process shares a single engine. Tests pass their own.
    """
    cfg = config or load_config()
    setup_logging(level=cfg.log_level, log_format=cfg.log_format)

    app = FastAPI(
        title="Krakatau Server",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=_lifespan,
    )
    app.state.config = cfg
    app.state.bridge = bridge or get_engine_bridge(cfg.wasm_path, lock_timeout=cfg.engine_lock_timeout)

    # Core middleware stack
    app.add_middleware(RequestIdMiddleware)

    # Access logging outside request-id so lines carry the id
    install_access_log_middleware(app)

    # CORS
    setup_cors(app, config=cfg.to_cors_config())

    # Error -> JSON mapping
    install_error_handlers(app)

    # Metrics (/metrics)
    if cfg.metrics_enabled:
        setup_metrics(app, service_version=__version__)

    # Routers
    app.include_router(build_router(cfg))

    return app


# Convenience entrypoint for `uvicorn krakatau_service.app:app`
app = create_app()
