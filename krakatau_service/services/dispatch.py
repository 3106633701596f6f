from __future__ import annotations

"""
Runs blocking bridge calls off the event loop and records engine metrics.
"""

import time
from typing import Any, Callable, Optional, TypeVar

from fastapi import Request
from starlette.concurrency import run_in_threadpool

from krakatau_service.engine.errors import EngineError, EngineReportedFailure

T = TypeVar("T")


def _outcome(err: Optional[BaseException]) -> str:
    if err is None:
        return "ok"
    if isinstance(err, EngineReportedFailure):
        return "engine_reported"
    return err.__class__.__name__


async def call_engine(request: Request, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Await ``fn(*args, **kwargs)`` in the threadpool. The duration includes the
    time spent waiting for the engine lock.
    """
    metrics = getattr(request.app.state, "metrics", None)
    start = time.perf_counter()
    err: Optional[BaseException] = None
    try:
        return await run_in_threadpool(fn, *args, **kwargs)
    except EngineError as e:
        err = e
        raise
    finally:
        if metrics is not None:
            metrics.observe_engine_call(operation, _outcome(err), time.perf_counter() - start)


__all__ = ["call_engine"]
