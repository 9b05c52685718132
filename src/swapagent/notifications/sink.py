"""Non-blocking progress sink for chat transports.

The orchestrator only calls ``emit``. Messages go into a bounded queue that a
separate task drains into the delivery function, so slow or failing delivery
never changes orchestration timing.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DeliverFn = Callable[[str], Awaitable[object]]


class NotificationSink:
    """Bounded queue of progress messages consumed by a delivery task."""

    def __init__(self, deliver: DeliverFn, max_size: int = 100, name: str = "progress"):
        self._deliver = deliver
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=max_size)
        self._task: Optional[asyncio.Task] = None
        self.name = name
        self.dropped = 0
        self.delivered = 0
        self.failed = 0

    def start(self) -> None:
        """Start the delivery task. Must run inside an event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"notification-sink-{self.name}")

    def emit(self, message: str) -> None:
        """Queue a message without waiting. Drops it when the queue is full."""
        if self._task is None:
            self.start()
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Notification queue {self.name} full - dropping message")

    __call__ = emit

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if message is None:
                    return
                await self._deliver(message)
                self.delivered += 1
            except Exception as e:
                self.failed += 1
                logger.warning(f"Notification delivery failed on {self.name}: {e}")
            finally:
                self._queue.task_done()

    async def aclose(self, timeout: float = 5.0) -> None:
        """Deliver queued messages, then stop the delivery task."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._queue.put(None), timeout=timeout)
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Notification sink {self.name} did not drain within {timeout}s")
            self._task.cancel()
        finally:
            self._task = None
