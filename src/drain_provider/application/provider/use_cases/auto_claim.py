"""Background task that claims channels before they expire."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..dtos import ClaimReport
from .claim import ClaimSubmitter

logger = logging.getLogger(__name__)


class AutoClaimScheduler:
    """Runs ``ClaimSubmitter.claim_expiring`` on a fixed interval.

    The first pass runs immediately on start. A failing pass is logged and
    the schedule continues.
    """

    def __init__(
        self,
        submitter: ClaimSubmitter,
        *,
        interval_minutes: float = 10,
        buffer_seconds: int = 3600,
    ):
        self.submitter = submitter
        self.interval_minutes = interval_minutes
        self.buffer_seconds = buffer_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        interval_minutes: Optional[float] = None,
        buffer_seconds: Optional[int] = None,
    ) -> bool:
        """Start the schedule. Returns False when it is already running."""
        if self.running:
            return False
        if interval_minutes is not None:
            self.interval_minutes = interval_minutes
        if buffer_seconds is not None:
            self.buffer_seconds = buffer_seconds
        logger.info(
            "[auto-claim] Started: checking every %smin, claiming channels expiring within %smin",
            self.interval_minutes,
            self.buffer_seconds // 60,
        )
        self._task = asyncio.create_task(self._loop())
        return True

    async def _loop(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.interval_minutes * 60)

    async def tick(self) -> ClaimReport:
        try:
            report = await self.submitter.claim_expiring(self.buffer_seconds)
        except Exception:
            logger.exception("[auto-claim] Pass failed")
            return ClaimReport()
        if report.tx_hashes:
            logger.info(
                "[auto-claim] Claimed %d expiring channel(s)", len(report.tx_hashes)
            )
        return report

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("[auto-claim] Stopped")
