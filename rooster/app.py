"""
Rooster — Application wiring.

Builds the alarm service from the SQLite adapters and the APScheduler timer,
runs a boot-time scheduling pass, then keeps the event loop alive so armed
timers can fire. With no presentation layer attached, a ringing alarm is
announced in the log and dismissed, which re-selects the next alarm.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from functools import partial
from typing import TYPE_CHECKING

from rooster.adapters.apscheduler_timer import SchedulerExactTimer
from rooster.adapters.cached_solar_source import CachedSolarEventSource
from rooster.adapters.sqlite_alarm_repository import SqliteAlarmRepository
from rooster.config import settings
from rooster.core.alarm_service import AlarmService
from rooster.core.scheduler import system_now
from rooster.data.db import AlarmDB, AstronomyDB
from rooster.data.models import AlarmDefinition, Location

if TYPE_CHECKING:
    from rooster.ports.timer_port import ExactTimerCapability

logger = logging.getLogger(__name__)


async def _ring_and_dismiss(service: AlarmService, alarm: AlarmDefinition) -> None:
    logger.info("Alarm #%d '%s' is ringing", alarm.id, alarm.label)
    result = await service.dismiss(alarm.id)
    if result.error is not None:
        logger.error("Could not dismiss alarm #%d: %s", alarm.id, result.error)


def build_service(
    db_path: str | None = None,
    timer: ExactTimerCapability | None = None,
) -> AlarmService:
    """Assemble an AlarmService over the configured database.

    Without an explicit timer an APScheduler one is created, so this must
    run inside the event loop.
    """
    service = AlarmService(
        repo=SqliteAlarmRepository(AlarmDB(db_path)),
        solar_source=CachedSolarEventSource(AstronomyDB(db_path)),
        timer=timer or SchedulerExactTimer(),
        location=Location(settings.LATITUDE, settings.LONGITUDE),
        clock=system_now,
        solar_validity=timedelta(hours=settings.ASTRONOMY_DATA_VALIDITY_HOURS),
    )
    service.on_ring = partial(_ring_and_dismiss, service)
    return service


async def run() -> None:
    timer = SchedulerExactTimer()
    timer.start()
    service = build_service(timer=timer)

    try:
        result = await service.on_boot()
        if result.permission_denied:
            logger.error("Exact alarm permission missing: no alarm will ring on time")
        elif result.resolved is None and result.ok:
            logger.info("No alarm to schedule; waiting for changes")

        # Armed timers fire from the loop; nothing else to do until shutdown.
        await asyncio.Event().wait()
    finally:
        timer.shutdown()


def main() -> None:
    logging.getLogger().setLevel(settings.LOG_LEVEL)
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Rooster stopped")
