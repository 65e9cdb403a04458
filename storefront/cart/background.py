"""
Best-effort reconciliation channel.

Cart mutations return immediately and hand their backend follow-up work to
this channel. Work scheduled here is advisory: its failures are logged and
discarded, and nothing the UI does ever waits on it.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Set

logger = logging.getLogger(__name__)


class BestEffortChannel:
    """Fire-and-forget task registry on the running event loop."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, label: str, work: Callable[..., Awaitable[Any]], *args: Any) -> bool:
        """
        Schedule `work(*args)` in the background.

        Returns:
            False when there is no running event loop and the work was skipped
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, skipping background {label}")
            return False

        task = loop.create_task(self._run(label, work, *args), name=f"best-effort:{label}")
        # Strong reference until done
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, label: str, work: Callable[..., Awaitable[Any]], *args: Any) -> None:
        try:
            await work(*args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.warning(f"Background {label} failed: {e}")

    async def drain(self) -> None:
        """Wait until all scheduled work, including work scheduled meanwhile, is done"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
