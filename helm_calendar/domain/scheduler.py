"""Background notification scheduler."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from ..core.config_manager import DEFAULT_NOTIFY_INTERVAL_SECONDS
from ..core.health_tracker import HealthTracker
from .notification_feed import NotificationFeed

logger = logging.getLogger(__name__)


class NotificationScheduler:
    """Runs the feed's notification pass at startup and then periodically."""

    def __init__(
        self,
        feed: NotificationFeed,
        interval_seconds: float = DEFAULT_NOTIFY_INTERVAL_SECONDS,
        health_tracker: Optional[HealthTracker] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.feed = feed
        self.interval_seconds = interval_seconds
        self.health_tracker = health_tracker
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> None:
        """Run one notification pass; errors are logged, never raised."""
        self.tick_count += 1
        try:
            await self.feed.run_checks()
        except Exception:
            logger.exception("Notification check failed (tick %d)", self.tick_count)
        finally:
            if self.health_tracker is not None:
                self.health_tracker.record_notification_check()

    async def run(self) -> None:
        """Immediate check, then one check per interval until stopped."""
        logger.info("Notification scheduler started (interval %ss)", self.interval_seconds)
        await self.tick()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self.tick()
        logger.info("Notification scheduler stopped after %d checks", self.tick_count)

    def start(self) -> asyncio.Task[None]:
        """Start the loop as a background task on the running event loop."""
        if self.running:
            raise RuntimeError("Notification scheduler already running")
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Signal the loop to stop and wait for it to finish."""
        self._stop_event.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
