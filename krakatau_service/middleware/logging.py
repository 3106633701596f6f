from __future__ import annotations

"""
Access logging middleware.

One structured line per HTTP request with: method, path, status, latency_ms,
rx_bytes, tx_bytes, client_ip, user_agent, request_id, trace_id.

Implemented as a plain ASGI middleware that wraps ``send`` so streamed and
plain responses are counted the same way without buffering the body.

Install:
    from krakatau_service.middleware.logging import install_access_log_middleware

    install_access_log_middleware(app)
"""

import time
from typing import Any, Dict

import structlog
from fastapi import FastAPI
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

log = structlog.get_logger("access")


def _client_ip(scope: Scope, headers: Headers) -> str:
    fwd = headers.get("x-forwarded-for")
    if fwd:
        return fwd.split(",")[0].strip()
    real = headers.get("x-real-ip")
    if real:
        return real.strip()
    client = scope.get("client")
    return client[0] if client else ""


def _level_for_status(status: int) -> str:
    if status >= 500:
        return "error"
    if status >= 400:
        return "warning"
    return "info"


class AccessLogMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        headers = Headers(scope=scope)
        status = 500
        tx_bytes = 0
        try:
            rx_bytes = int(headers.get("content-length") or 0)
        except ValueError:
            rx_bytes = 0

        async def send_wrapped(message: Message) -> None:
            nonlocal status, tx_bytes
            if message["type"] == "http.response.start":
                status = int(message.get("status", 500))
            elif message["type"] == "http.response.body":
                tx_bytes += len(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapped)
        finally:
            state = scope.get("state") or {}
            payload: Dict[str, Any] = {
                "method": scope.get("method", ""),
                "path": scope.get("path", ""),
                "status": status,
                "latency_ms": round((time.perf_counter() - start) * 1e3, 3),
                "rx_bytes": rx_bytes,
                "tx_bytes": tx_bytes,
                "client_ip": _client_ip(scope, headers),
                "user_agent": headers.get("user-agent", ""),
                "request_id": state.get("request_id", ""),
                "trace_id": state.get("trace_id", ""),
            }
            level = _level_for_status(status)
            getattr(log, level)("access", **{k: v for k, v in payload.items() if v != ""})


def install_access_log_middleware(app: FastAPI) -> None:
    app.add_middleware(AccessLogMiddleware)


__all__ = ["AccessLogMiddleware", "install_access_log_middleware"]
