"""Offer deadline timers backed by an APScheduler AsyncIOScheduler."""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger


logger = logging.getLogger(__name__)

DeadlineCallback = Callable[[str, str], Awaitable[None]]


class DeadlineTimers:
    """Arena of one-shot deadline timers, at most one per order.

    Each engine owns its own arena and scheduler. Arming a timer for an order
    replaces any timer already armed for it; shutdown disarms everything
    still outstanding.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler()
        self._armed: dict[str, str] = {}

    @staticmethod
    def _job_id(work_item_id: str) -> str:
        return f"offer_deadline:{work_item_id}"

    def start(self) -> None:
        """Start the underlying scheduler (requires a running event loop)."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Deadline scheduler started")

    def shutdown(self) -> None:
        """Disarm all outstanding timers and stop the scheduler."""
        outstanding = list(self._armed)
        for work_item_id in outstanding:
            self.disarm(work_item_id)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Deadline scheduler stopped", extra={"disarmed": len(outstanding)})

    def arm(
        self,
        work_item_id: str,
        candidate_id: str,
        delay_seconds: float,
        callback: DeadlineCallback,
    ) -> None:
        """Arm (or re-arm) the deadline for an order's current offer."""
        run_date = datetime.now(UTC) + timedelta(seconds=delay_seconds)
        self._scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=run_date),
            args=[work_item_id, candidate_id, callback],
            id=self._job_id(work_item_id),
            replace_existing=True,
            misfire_grace_time=None,
        )
        self._armed[work_item_id] = candidate_id
        logger.debug(
            "Deadline armed",
            extra={"work_item_id": work_item_id, "candidate_id": candidate_id, "delay_seconds": delay_seconds},
        )

    def disarm(self, work_item_id: str) -> bool:
        """Cancel the order's timer. Returns True if one was armed."""
        candidate_id = self._armed.pop(work_item_id, None)
        try:
            self._scheduler.remove_job(self._job_id(work_item_id))
        except JobLookupError:
            pass
        if candidate_id is not None:
            logger.debug("Deadline disarmed", extra={"work_item_id": work_item_id, "candidate_id": candidate_id})
        return candidate_id is not None

    def armed_candidate(self, work_item_id: str) -> str | None:
        return self._armed.get(work_item_id)

    def __len__(self) -> int:
        return len(self._armed)

    async def _fire(self, work_item_id: str, candidate_id: str, callback: DeadlineCallback) -> None:
        # The job is one-shot; forget it unless a newer offer already re-armed the order.
        if self._armed.get(work_item_id) == candidate_id:
            del self._armed[work_item_id]
        await callback(work_item_id, candidate_id)
