"""APScheduler exact timer adapter — implements ExactTimerCapability.

Each armed alarm is one date-triggered job with id ``alarm_<id>`` on an
AsyncIOScheduler; arming an id again replaces its job. The permission flag
models a revocable platform grant: while revoked, arming raises
PermissionError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from rooster.ports.timer_port import FireCallback, TimerError

logger = logging.getLogger(__name__)


def _job_id(alarm_id: int) -> str:
    return f"alarm_{alarm_id}"


class SchedulerExactTimer:
    """AsyncIOScheduler implementation of ExactTimerCapability.

    Must be created inside the running event loop. The scheduler is started
    on first use; call `shutdown()` when the process stops.
    """

    def __init__(
        self,
        permitted: bool = True,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._permitted = permitted
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Alarm timer started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Alarm timer stopped")

    def is_permitted(self) -> bool:
        return self._permitted

    def grant(self) -> None:
        self._permitted = True

    def revoke(self) -> None:
        self._permitted = False

    def pending(self) -> dict[int, float]:
        """Seconds until each armed alarm fires, keyed by alarm id."""
        now = datetime.now(timezone.utc)
        return {
            job.args[0]: max(0.0, (job.next_run_time - now).total_seconds())
            for job in self._scheduler.get_jobs()
            if job.id.startswith("alarm_") and job.next_run_time is not None
        }

    async def arm(self, alarm_id: int, instant: datetime, on_fire: FireCallback) -> None:
        if not self._permitted:
            raise PermissionError("Exact alarm permission has been revoked")
        if instant.tzinfo is None:
            raise TimerError("Timer instant must be timezone-aware")

        self.start()
        # No misfire grace: an alarm that is late (suspend, clock jump) still rings.
        self._scheduler.add_job(
            self._fire,
            DateTrigger(run_date=instant),
            args=[alarm_id, on_fire],
            id=_job_id(alarm_id),
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug("Timer for alarm #%d set for %s", alarm_id, instant.isoformat())

    async def cancel(self, alarm_id: int) -> None:
        try:
            self._scheduler.remove_job(_job_id(alarm_id))
        except JobLookupError:
            return
        logger.debug("Timer for alarm #%d cancelled", alarm_id)

    async def _fire(self, alarm_id: int, on_fire: FireCallback) -> None:
        logger.debug("Timer for alarm #%d fired", alarm_id)
        await on_fire(alarm_id)

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        logger.error("Alarm fire handler failed for %s: %s", event.job_id, event.exception)
