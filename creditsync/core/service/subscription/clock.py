"""Wall clock rollback detection for offline entitlement checks."""

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from creditsync.core.logger.logger import get_logger
from creditsync.core.service.cache.credit_cache import CreditCache
from creditsync.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class ClockGuard:
    """
    Flags a wall clock wound back to stretch an expired subscription.

    A baseline pairs a wall time with a monotonic reading. The wall time expected
    now is the baseline plus the monotonic time elapsed since; a wall clock more
    than the allowed jump behind it is suspected tampering. The monotonic clock
    restarts with the host, after which the baseline wall time alone is the floor.
    A suspected rollback keeps the old baseline until an online check records a new one.
    """

    def __init__(
        self,
        cache: CreditCache,
        max_backward_jump_minutes: Optional[int] = None,
        now: Optional[Callable[[], datetime]] = None,
        monotonic: Optional[Callable[[], float]] = None,
    ):
        if max_backward_jump_minutes is None:
            max_backward_jump_minutes = settings.MAX_CLOCK_BACKWARD_JUMP_MINUTES
        self.cache = cache
        self.max_backward_jump = timedelta(minutes=max_backward_jump_minutes)
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._monotonic = monotonic or time.monotonic

    def now(self) -> datetime:
        return self._now()

    async def detect_tampering(self) -> bool:
        wall = self._now()
        elapsed = self._monotonic()

        baseline = await self.cache.get_clock_baseline()
        if baseline is None:
            await self.cache.set_clock_baseline(wall, elapsed)
            return False

        base_wall, base_elapsed = baseline
        expected = base_wall
        if elapsed >= base_elapsed:
            expected += timedelta(seconds=elapsed - base_elapsed)

        drift = wall - expected
        if drift < -self.max_backward_jump:
            logger.warning(
                "Clock tampering suspected",
                extra={"backward_jump_seconds": round(-drift.total_seconds())}
            )
            return True

        await self.cache.set_clock_baseline(wall, elapsed)
        return False

    async def record(self) -> None:
        """New baseline after an online check"""
        await self.cache.set_clock_baseline(self._now(), self._monotonic())
