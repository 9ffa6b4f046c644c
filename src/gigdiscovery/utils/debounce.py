"""Keyed, cancellable timers for debouncing work on the event loop."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Set

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class Debouncer:
    """Runs the latest callback scheduled for a concern once its window settles.

    At most one timer is pending per concern: scheduling again cancels the
    pending timer first. Cancelling only ever removes a timer that has not
    fired; work that already started runs to completion.
    """

    def __init__(self, poll_interval: float = 0.005):
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._running: Set[asyncio.Task] = set()
        self._poll_interval = poll_interval

    def schedule(self, concern: str, delay: float, callback: Callback) -> None:
        """Run ``callback`` after ``delay`` seconds unless rescheduled first."""
        self.cancel(concern)
        loop = asyncio.get_running_loop()
        self._timers[concern] = loop.call_later(
            max(0.0, delay), self._fire, concern, callback
        )

    def cancel(self, concern: str) -> bool:
        """Cancel the pending timer for ``concern``; True if one was pending."""
        handle = self._timers.pop(concern, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for concern in list(self._timers):
            self.cancel(concern)

    def pending(self, concern: str) -> bool:
        return concern in self._timers

    @property
    def idle(self) -> bool:
        return not self._timers and not self._running

    def _fire(self, concern: str, callback: Callback) -> None:
        self._timers.pop(concern, None)
        task = asyncio.ensure_future(self._run(concern, callback))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, concern: str, callback: Callback) -> None:
        try:
            await callback()
        except Exception:
            logger.exception("Debounced work failed", extra={"concern": concern})

    async def drain(self) -> None:
        """Wait until no timer is pending and no fired work is running."""
        while not self.idle:
            if self._running:
                await asyncio.gather(*list(self._running), return_exceptions=True)
            else:
                await asyncio.sleep(self._poll_interval)

    async def close(self) -> None:
        """Cancel pending timers and wait for running work to finish."""
        self.cancel_all()
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
