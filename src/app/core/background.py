"""Best-effort background work.

Audit writes and simulation tracking must never slow down or fail the
request that triggered them. spawn_best_effort() schedules a coroutine as a
detached asyncio task wrapped in its own error boundary: exceptions are
logged and dropped. Task references are kept until completion so they are
not garbage collected mid-flight, and drain() lets shutdown and tests wait
for pending work.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

_pending: set[asyncio.Task] = set()


async def run_best_effort(
    factory: Callable[[], Awaitable[Any]],
    name: str,
    **log_context: Any,
) -> None:
    """Await ``factory()`` and swallow any exception after logging it."""
    try:
        await factory()
    except asyncio.CancelledError:
        logger.info("best_effort.cancelled", task=name, **log_context)
        raise
    except Exception:
        logger.warning("best_effort.failed", task=name, exc_info=True, **log_context)


def spawn_best_effort(
    coro: Coroutine[Any, Any, Any],
    name: str,
    **log_context: Any,
) -> asyncio.Task:
    """Schedule ``coro`` as a detached task; the caller never awaits it."""

    async def _guarded() -> None:
        await run_best_effort(lambda: coro, name, **log_context)

    task = asyncio.create_task(_guarded(), name=f"best_effort:{name}")
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


def pending_count() -> int:
    return len(_pending)


async def drain(timeout: float | None = 5.0) -> None:
    """Wait for scheduled best-effort tasks to finish."""
    if not _pending:
        return
    tasks = list(_pending)
    done, not_done = await asyncio.wait(tasks, timeout=timeout)
    for task in not_done:
        task.cancel()
    if not_done:
        logger.warning("best_effort.drain_timeout", cancelled=len(not_done))
