from __future__ import annotations

"""
CORS configuration for the Krakatau service.

The engine routes are meant to be called from browser front-ends, so the
default allowlist is ``*`` (credentials disabled). Deployments that want to
restrict origins set ``CORS_ALLOW_ORIGINS`` to a comma-separated list of exact
origins and/or glob patterns such as ``https://*.example.com``.

Successful engine responses additionally carry ``Access-Control-Allow-Origin:
*`` themselves (see ``routers.engine``), so simple non-preflighted requests work
even when the middleware does not match.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware


@dataclass(frozen=True)
class CORSConfig:
    allow_origins: List[str]
    allow_origin_regex: Optional[str]
    allow_methods: List[str]
    allow_headers: List[str]
    expose_headers: List[str]
    allow_credentials: bool
    max_age: int


_GLOB_CHARS = re.compile(r"[*?]")


def _glob_to_regex(glob_origin: str) -> str:
    """
    Convert "https://*.example.com" to an anchored regex. '*' matches one or
    more DNS labels; paths are rejected.
    """
    if "://" not in glob_origin:
        raise ValueError(f"Invalid origin pattern (missing scheme): {glob_origin!r}")
    _, rest = glob_origin.split("://", 1)
    if "/" in rest:
        raise ValueError(f"Origin patterns must not include paths: {glob_origin!r}")
    escaped = re.escape(glob_origin).replace(r"\*", r"(?:[^/.:]+\.)*[^/.:]+")
    return r"^" + escaped + r"$"


def split_origins(origins: List[str]) -> tuple[List[str], Optional[str]]:
    """Separate exact origins from glob patterns (combined into one regex)."""
    if origins == ["*"]:
        return ["*"], None
    exact: List[str] = []
    regexes: List[str] = []
    for origin in origins:
        if _GLOB_CHARS.search(origin):
            regexes.append(_glob_to_regex(origin))
        else:
            exact.append(origin.rstrip("/"))
    if not regexes:
        return exact, None
    if len(regexes) == 1:
        return exact, regexes[0]
    return exact, r"^(?:" + r"|".join(r.strip("^$") for r in regexes) + r")$"


def setup_cors(app: FastAPI, config: CORSConfig) -> CORSConfig:
    """Attach CORSMiddleware to ``app``."""
    origins, regex = split_origins(config.allow_origins)
    if origins == ["*"] and config.allow_credentials:
        raise ValueError('CORS_ALLOW_ORIGINS="*" is incompatible with credentials')
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_origin_regex=regex or config.allow_origin_regex,
        allow_credentials=config.allow_credentials,
        allow_methods=config.allow_methods,
        allow_headers=config.allow_headers,
        expose_headers=config.expose_headers,
        max_age=config.max_age,
    )
    return config


__all__ = ["CORSConfig", "setup_cors", "split_origins"]
