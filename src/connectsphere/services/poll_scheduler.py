"""Poll auto-close scheduler — persisted deadlines, local timers, recovery sweep.

Learn: A poll's close_at lives in the database, so a deadline survives a
restart. Two mechanisms act on it:

1. Timers: schedule() arms a cancellable asyncio task for a poll due
   within `horizon` seconds. Timers are host-local; they exist only to make
   a close happen close to on time.
2. Sweep: run_loop() periodically closes every open poll whose close_at
   has passed and arms timers for the ones coming due. The first sweep runs
   at startup, so pending closes dropped by a restart are recovered.

Both paths call PollService.close_poll() with the poll creator's identity.
Several processes may race to close the same poll; every loser just sees
ConflictError, which is expected and ignored here.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectsphere.db.models import Poll, as_utc, utcnow
from connectsphere.errors import ConflictError, NotFoundError
from connectsphere.services.fanout import FanOut
from connectsphere.services.poll_service import PollService

logger = structlog.get_logger()


class PollCloseScheduler:
    """Closes polls at their close_at, across restarts.

    Usage:
        scheduler = PollCloseScheduler(async_session_factory, fanout)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fanout: FanOut,
        sweep_interval: float = 30.0,
        horizon: float = 3600.0,
    ):
        self.session_factory = session_factory
        self.fanout = fanout
        self.sweep_interval = sweep_interval
        self.horizon = horizon
        self._timers: dict[uuid.UUID, asyncio.Task] = {}
        self._loop_task: Optional[asyncio.Task] = None
        self._running = False

    # ─── Timers ──────────────────────────────────────────

    def schedule(self, poll_id: uuid.UUID, close_at: datetime) -> bool:
        """Arm a timer if the poll is due within the horizon. Returns armed."""
        delay = (as_utc(close_at) - utcnow()).total_seconds()
        if delay > self.horizon:
            return False  # the sweep will arm it once it's closer
        self.cancel(poll_id)
        self._timers[poll_id] = asyncio.create_task(
            self._close_later(poll_id, max(delay, 0.0))
        )
        logger.debug("poll_scheduler.armed", poll_id=str(poll_id), delay=round(delay, 1))
        return True

    def cancel(self, poll_id: uuid.UUID) -> None:
        task = self._timers.pop(poll_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    @property
    def pending(self) -> set[uuid.UUID]:
        return set(self._timers)

    async def _close_later(self, poll_id: uuid.UUID, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timers.pop(poll_id, None)
        await self.close(poll_id)

    # ─── Close ───────────────────────────────────────────

    async def close(self, poll_id: uuid.UUID) -> bool:
        """Close one poll as its creator. Returns True if this call closed it."""
        async with self.session_factory() as db:
            created_by = (
                await db.execute(select(Poll.created_by).where(Poll.id == poll_id))
            ).scalar_one_or_none()
            if created_by is None:
                return False
            try:
                await PollService(db, self.fanout, scheduler=self).close_poll(
                    poll_id, created_by
                )
            except (ConflictError, NotFoundError):
                logger.debug("poll_scheduler.already_closed", poll_id=str(poll_id))
                return False
            except Exception:
                logger.exception("poll_scheduler.close_failed", poll_id=str(poll_id))
                return False
        logger.info("poll_scheduler.auto_closed", poll_id=str(poll_id))
        return True

    # ─── Sweep ───────────────────────────────────────────

    async def sweep(self) -> int:
        """Close overdue polls and arm timers for upcoming ones. Returns closed count."""
        now = utcnow()
        async with self.session_factory() as db:
            result = await db.execute(
                select(Poll.id, Poll.close_at).where(
                    Poll.is_closed.is_(False),
                    Poll.close_at.is_not(None),
                    Poll.close_at <= now + timedelta(seconds=self.horizon),
                )
            )
            rows = result.all()

        closed = 0
        for poll_id, close_at in rows:
            if as_utc(close_at) <= now:
                if await self.close(poll_id):
                    closed += 1
            elif poll_id not in self._timers:
                self.schedule(poll_id, close_at)

        if closed:
            logger.info("poll_scheduler.sweep_closed", count=closed)
        return closed

    async def run_loop(self) -> None:
        self._running = True
        logger.info("poll_scheduler.started", sweep_interval=self.sweep_interval)
        while self._running:
            try:
                await self.sweep()
            except Exception:
                logger.exception("poll_scheduler.sweep_failed")
            await asyncio.sleep(self.sweep_interval)

    def start(self) -> None:
        self._loop_task = asyncio.create_task(self.run_loop())

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._timers.values())
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        self._timers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("poll_scheduler.stopped")
