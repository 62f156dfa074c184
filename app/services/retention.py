"""
Retention sweep for the ingestion ledger
"""
import asyncio
import logging
from typing import Optional

from app.core.config import settings
from app.services.ingestion_ledger import IngestionLedger

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Long-lived task that purges old checked-email records on a fixed cadence.

    Only checked_at age is considered. Messages still being processed have
    no ledger row yet, so a sweep can never remove one.
    """

    def __init__(
        self,
        ledger: IngestionLedger,
        retention_days: int = None,
        interval_seconds: float = None,
        initial_delay_seconds: float = None
    ):
        self.ledger = ledger
        self.retention_days = retention_days or settings.CHECKED_EMAIL_RETENTION_DAYS
        self.interval_seconds = interval_seconds or settings.RETENTION_SWEEP_INTERVAL_HOURS * 3600
        self.initial_delay_seconds = (
            initial_delay_seconds
            if initial_delay_seconds is not None
            else settings.RETENTION_SWEEP_INITIAL_DELAY_SECONDS
        )
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        """Purge once; returns the number of records removed"""
        removed = self.ledger.purge_older_than(self.retention_days)
        if removed:
            logger.info("Cleaned up %d old entries from checked_emails", removed)
        return removed

    def start(self) -> asyncio.Task:
        if self.is_running:
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._stop_event), name="checked-email-retention"
        )
        return self._task

    async def stop(self):
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _wait(self, stop_event: asyncio.Event, seconds: float) -> bool:
        """Sleep unless stopped first; True if the sweep should go on"""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
            return False
        except asyncio.TimeoutError:
            return True

    async def _run(self, stop_event: asyncio.Event):
        if not await self._wait(stop_event, self.initial_delay_seconds):
            return
        while True:
            try:
                await asyncio.to_thread(self.sweep_once)
            except Exception:
                logger.exception("Error cleaning up old checked emails")
            if not await self._wait(stop_event, self.interval_seconds):
                return
