"""
Cooperative timers running on the asyncio event loop.

``Countdown`` drives the one-time-code window: it ticks once per second
down to zero and never restarts by itself.  ``PeriodicTask`` repeatedly
awaits a callback (used for background refreshes of event listings).

Both own at most one ``asyncio.Task`` and must be cancelled by whoever
created them when the owning component is torn down.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


def format_seconds(seconds: int) -> str:
    """Render ``seconds`` as ``m:ss``."""
    minutes, secs = divmod(max(seconds, 0), 60)
    return f"{minutes}:{secs:02d}"


class Countdown:
    """A one-second countdown.

    ``remaining`` can be driven by the background task started with
    :meth:`start` or manually through :meth:`tick`; both paths share the
    same state.
    """

    def __init__(
        self,
        *,
        interval: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
        on_expire: Optional[Callable[[], None]] = None,
    ) -> None:
        self.interval = interval
        self.on_tick = on_tick
        self.on_expire = on_expire
        self.remaining = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, seconds: int) -> None:
        """Reset to ``seconds`` and (re)start ticking.

        Outside a running event loop only the counter is reset; the
        caller is then expected to call :meth:`tick` itself.
        """
        self.cancel()
        self.remaining = max(int(seconds), 0)
        if self.remaining == 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._task = loop.create_task(self._run(), name="otp-countdown")

    def tick(self) -> int:
        """Advance by one step and return the new remaining value."""
        if self.remaining <= 0:
            return 0
        self.remaining -= 1
        if self.on_tick is not None:
            self.on_tick(self.remaining)
        if self.remaining == 0 and self.on_expire is not None:
            self.on_expire()
        return self.remaining

    def cancel(self) -> None:
        """Stop the background task; ``remaining`` is left as is."""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def __str__(self) -> str:
        return format_seconds(self.remaining)

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.interval)
            self.tick()


class PeriodicTask:
    """Await ``callback`` every ``interval`` seconds until stopped.

    Exceptions raised by the callback are logged and do not stop the
    loop; cancellation does.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        interval: float,
        *,
        name: str = "periodic-task",
        run_immediately: bool = True,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.callback = callback
        self.interval = interval
        self.name = name
        self.run_immediately = run_immediately
        self.runs = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop.  Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval)
        while True:
            try:
                await self.callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic task %s failed", self.name)
            self.runs += 1
            await asyncio.sleep(self.interval)
