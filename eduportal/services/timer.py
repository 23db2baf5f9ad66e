import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from eduportal.core.config import settings

logger = logging.getLogger(__name__)


def remaining_seconds(started_at: datetime, duration_minutes: int, now: Optional[datetime] = None) -> int:
    """Seconds left in an attempt, derived from the server-side start time.

    Naive timestamps are taken as UTC. The result is clamped to
    ``[0, duration_minutes * 60]`` so clock skew never extends an attempt.
    """
    total = duration_minutes * 60
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    elapsed = (now - started_at).total_seconds()
    return int(max(0, min(total, total - elapsed)))


class CountdownTimer:
    """Once-per-tick countdown that fires ``on_expire`` a single time at zero."""

    def __init__(
        self,
        seconds: int,
        on_expire: Callable[[], Awaitable[None]],
        tick_interval: Optional[float] = None,
        on_tick: Optional[Callable[[int], None]] = None,
    ):
        self.remaining = max(0, int(seconds))
        self.tick_interval = tick_interval if tick_interval is not None else settings.TIMER_TICK_SECONDS
        self.expired = False
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("Timer already started")
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        # Once expired the task is running on_expire, which must finish
        if self._task is not None and not self._task.done() and not self.expired:
            self._task.cancel()

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.tick_interval)
            if self._cancelled:
                return
            self.remaining -= 1
            if self._on_tick:
                self._on_tick(self.remaining)

        if self._cancelled:
            return
        self.expired = True
        logger.info("Countdown reached zero")
        await self._on_expire()
