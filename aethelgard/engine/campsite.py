"""Campsite countdown until the request budget window reopens."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from aethelgard.engine.budget import RESET_WINDOW, parse_timestamp, utcnow
from aethelgard.models import Countdown

logger = logging.getLogger(__name__)


def countdown(
    last_reset_at: str | None,
    now: datetime,
    window: timedelta = RESET_WINDOW,
) -> Countdown:
    """Time left until `last_reset_at + window`, floored at zero."""
    if not last_reset_at:
        return Countdown(hours=int(window.total_seconds() // 3600))
    remaining = parse_timestamp(last_reset_at) + window - now
    total = int(remaining.total_seconds())
    if total <= 0:
        return Countdown(ready=True)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return Countdown(hours=hours, minutes=minutes, seconds=seconds)


class CampsiteTimer:
    """Recomputes the countdown on a fixed tick while the campsite is shown.

    Only touches its own `current` value; waking up is always an explicit
    router action.
    """

    def __init__(
        self,
        window: timedelta = RESET_WINDOW,
        interval: float = 1.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._window = window
        self._interval = interval
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._last_reset_at: str | None = None
        self.current = Countdown()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def refresh(self) -> Countdown:
        self.current = countdown(self._last_reset_at, self._clock(), self._window)
        return self.current

    def start(self, last_reset_at: str | None) -> None:
        self.stop()
        self._last_reset_at = last_reset_at
        self.refresh()
        try:
            self._task = asyncio.get_running_loop().create_task(self._run())
        except RuntimeError:
            logger.debug("no running loop; campsite countdown computed on demand")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while not self.current.ready:
            await asyncio.sleep(self._interval)
            self.refresh()
