"""Detached execution for best-effort notifications.

WhatsApp and e-mail side effects that must not block or roll back the
request that triggered them are handed to ``dispatcher.spawn``. The task is
kept referenced until it finishes and its outcome is logged: an exception,
or a sender result dict with ``ok`` False, ends up as a log record instead
of disappearing with the task.

Spawned coroutines must carry plain values, never the request's DB session.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fire-and-forget task holder with failure logging."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and return immediately."""
        task = asyncio.get_running_loop().create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("[dispatch] spawned %s", label)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        label = task.get_name()
        if task.cancelled():
            logger.warning("[dispatch] %s cancelled", label)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[dispatch] %s failed: %s", label, exc, exc_info=exc)
            return
        result = task.result()
        if isinstance(result, dict) and result.get("ok") is False:
            logger.warning("[dispatch] %s returned error: %s", label, result.get("error"))
        else:
            logger.info("[dispatch] %s done", label)

    async def drain(self) -> None:
        """Wait for every outstanding task, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


dispatcher = NotificationDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency returning the process-wide dispatcher."""
    return dispatcher
