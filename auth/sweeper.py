"""
auth/sweeper.py -- Periodic removal of expired refresh tokens.

The sweeper is an explicit object owned by the application lifespan rather
than a module-level timer: lifespan startup calls start(), shutdown calls
stop(), and tests drive run_once() directly or start/stop it on their own
event loop.

Failure policy: a failed sweep is logged and the loop keeps going. Expired
rows are already rejected by RefreshTokenStore.find_valid(), so a missed
sweep only delays cleanup; it never lets an expired token through.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from auth.store import RefreshTokenStore

logger = logging.getLogger("tokengate.sweeper")


class RefreshTokenSweeper:
    """Deletes expired refresh tokens every interval_seconds.

    Usage:
        sweeper = RefreshTokenSweeper(refresh_store, interval_seconds=3600)
        sweeper.start()        # inside a running event loop
        ...
        await sweeper.stop()
    """

    def __init__(self, store: RefreshTokenStore, interval_seconds: float = 3600) -> None:
        self.store = store
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        """Sweep now. Returns rows removed, or 0 if the sweep failed."""
        try:
            removed = self.store.sweep_expired()
        except Exception:
            # Never fatal to the serving process
            logger.exception("Error cleaning up expired refresh tokens")
            return 0
        if removed:
            logger.info("Removed %d expired refresh token(s)", removed)
        return removed

    async def _loop(self) -> None:
        # CancelledError from stop() propagates out of asyncio.sleep
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.run_once()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="refresh-token-sweeper")
        logger.info("Refresh token sweeper started (interval=%ss)", self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the loop and wait until it has actually exited."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Refresh token sweeper stopped")
