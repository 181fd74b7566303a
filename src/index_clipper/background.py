"""Supervision of fire-and-forget asyncio tasks.

Keeps a reference to every running task so it is not garbage collected
before finishing, and logs failures instead of letting them vanish.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Set

from index_clipper.logging import get_logger

logger = get_logger(__name__)


class BackgroundTasks:
    """A set of supervised background tasks."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Awaitable[Any],
        *,
        name: Optional[str] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> asyncio.Task[Any]:
        """Create and supervise a background task.

        Must be called from inside a running event loop.

        Args:
            coro: Coroutine to run in the background.
            name: Optional task name, used in log messages.
            on_error: Optional callback invoked if the task raises.
        """
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)

        def _finished(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                logger.debug("Background task %s cancelled", t.get_name())
                return
            exc = t.exception()
            if exc is None:
                return
            if on_error:
                try:
                    on_error(exc)
                except Exception:  # noqa: BLE001
                    logger.exception("Error in on_error callback for task %s", t.get_name())
            logger.error("Background task %s failed", t.get_name(), exc_info=exc)

        task.add_done_callback(_finished)
        return task

    async def drain(self) -> None:
        """Wait until every task spawned so far (and any they spawn) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
