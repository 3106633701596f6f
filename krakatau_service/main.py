"""
Uvicorn launcher for the Krakatau service.

Usage:
  krakatau-server [--host 0.0.0.0] [--port 3000]
                  [--workers 1] [--reload]
                  [--log-level info]

Defaults come from the configuration (HOST, PORT, LOG_LEVEL) and from the
WORKERS / RELOAD environment variables.

Each worker process loads its own copy of the engine module.
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Optional

import uvicorn

from .config import load_config


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "y", "on")


def build_parser() -> argparse.ArgumentParser:
    cfg = load_config()

    parser = argparse.ArgumentParser(description="Run the Krakatau decompile/assemble server (uvicorn)")
    parser.add_argument("--host", default=cfg.host, help="Bind address (default: %(default)s)")
    parser.add_argument("--port", type=int, default=cfg.port, help="Port (default: %(default)s)")
    parser.add_argument(
        "--workers", type=int, default=int(os.getenv("WORKERS") or 1), help="Number of workers (default: %(default)s)"
    )
    parser.add_argument("--reload", action="store_true", default=_env_bool("RELOAD", False), help="Enable autoreload (dev only)")
    parser.add_argument("--log-level", default=cfg.log_level.lower(), help="Log level for uvicorn (default: %(default)s)")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    if args.reload and args.workers != 1:
        print("[krakatau-server] --reload implies --workers=1; overriding.", file=sys.stderr)
        args.workers = 1

    # Factory import string so every worker builds its own app and engine.
    uvicorn.run(
        "krakatau_service.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        reload=args.reload,
        workers=args.workers,
    )


if __name__ == "__main__":
    main()
