from __future__ import annotations

import logging
import platform
import time
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Request, Response, status

from krakatau_service import version as svc_version

log = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

_PROCESS_START = time.time()


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uptime_seconds() -> float:
    return max(0.0, time.time() - _PROCESS_START)


@lru_cache(maxsize=1)
def _git() -> Optional[str]:
    return svc_version.git_describe()


def _version_blob() -> Dict[str, Any]:
    return {
        "service": "krakatau-service",
        "version": svc_version.__version__,
        "git": _git(),
        "python": {
            "version": platform.python_version(),
            "impl": platform.python_implementation().lower(),
        },
        "started_at": datetime.fromtimestamp(_PROCESS_START, tz=timezone.utc).isoformat(),
        "now": _utcnow_iso(),
        "uptime_seconds": round(_uptime_seconds(), 3),
    }


def _check_engine(request: Request) -> Tuple[bool, Dict[str, Any]]:
    """
    Ready when the module is loaded, or, while loading lazily, when the module
    file exists so the first request can load it.
    """
    bridge = getattr(request.app.state, "bridge", None)
    if bridge is None:
        return False, {"error": "engine bridge not configured"}
    info = bridge.describe()
    if info.get("loaded"):
        return True, info
    if bridge.module_path.is_file():
        info["on_disk"] = True
        return True, info
    info["error"] = f"WASM file not found at {bridge.module_path}"
    return False, info


@router.get("/healthz", summary="Liveness probe", response_model=None)
def healthz() -> Dict[str, Any]:
    """Always 200 while the process is serving requests."""
    return {"status": "ok", **_version_blob()}


@router.get("/version", summary="Service version", response_model=None)
def version() -> Dict[str, Any]:
    return _version_blob()


@router.get("/readyz", summary="Readiness probe", response_model=None)
def readyz(request: Request, response: Response) -> Dict[str, Any]:
    """200 when the engine can serve requests; 503 otherwise."""
    ok, info = _check_engine(request)
    if not ok:
        log.warning("readiness check failed: %s", info.get("error"))
    response.status_code = status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ok" if ok else "degraded",
        "now": _utcnow_iso(),
        "uptime_seconds": round(_uptime_seconds(), 3),
        "checks": {"engine": {"ok": ok, **info}},
    }


def get_router() -> APIRouter:
    return router
