"""Detached best-effort tasks dispatched alongside a request.

A dispatched task runs at most once, is never awaited by the request that
started it, and its failure is only recorded in telemetry.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from telemetry import append_card_telemetry


class DetachedTasks:
    def __init__(self) -> None:
        # strong references until completion; the event loop only keeps weak ones
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _guard(self, name: str, work: Callable[[], Awaitable[Optional[dict]]]) -> None:
        try:
            result = await work()
        except asyncio.CancelledError:
            append_card_telemetry(f"{name}_cancelled")
            raise
        except Exception as exc:
            append_card_telemetry(f"{name}_failed", {"error": str(exc)[:200], "type": type(exc).__name__})
            return
        append_card_telemetry(f"{name}_done", result or {})

    def dispatch(self, name: str, work: Callable[[], Awaitable[Optional[dict]]]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._guard(name, work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight tasks; used at shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
