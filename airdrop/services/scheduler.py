"""Background scheduler running the calculate and airdrop jobs."""
import asyncio
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from airdrop.config import get_settings
from airdrop.models.database import async_session_factory
from airdrop.services.jobs import run_airdrop_job, run_calculate_job
from airdrop.services.runtime import AirdropRuntime

logger = structlog.get_logger()
settings = get_settings()


class AirdropScheduler:
    """
    Background loop that calculates the current period and then pays it out.

    Each tick runs both jobs in their own session; a failing job is logged
    and the loop keeps going.
    """

    def __init__(
        self,
        runtime: AirdropRuntime,
        interval_seconds: Optional[int] = None,
        session_factory: async_sessionmaker = async_session_factory,
    ):
        """
        Args:
            runtime: Executor and fee gate used for processing passes
            interval_seconds: Seconds between ticks (default: settings.scheduler_interval_seconds)
            session_factory: Session factory, overridable for tests
        """
        self.runtime = runtime
        self.interval_seconds = interval_seconds or settings.scheduler_interval_seconds
        self.session_factory = session_factory
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the background loop."""
        if self._running:
            logger.warning("Airdrop scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Airdrop scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the background loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Airdrop scheduler stopped")

    async def _run_loop(self):
        while self._running:
            await self.tick()
            await asyncio.sleep(self.interval_seconds)

    async def tick(self):
        """Run both jobs once."""
        async with self.session_factory() as db:
            try:
                await run_calculate_job(db)
            except Exception as e:
                await db.rollback()
                logger.error("Error in calculate job", error=str(e))

        async with self.session_factory() as db:
            try:
                await run_airdrop_job(db, self.runtime.orchestrator)
            except Exception as e:
                await db.rollback()
                logger.error("Error in airdrop job", error=str(e))
