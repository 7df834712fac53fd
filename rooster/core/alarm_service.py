"""
Rooster — UI-Agnostic Alarm Service.

The public boundary of the core. Every caller (timer callback, boot hook,
alarm editor, solar data refresh) enters through this service:

    schedule_next / schedule_at / cancel   -> AlarmScheduler
    on_fire / snooze / dismiss             -> SnoozeLifecycle, then scheduler
    on_alarm_changed / delete_alarm        -> re-run schedule_next

Nothing here raises to the caller; every outcome is a result object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable

from rooster.core.errors import IllegalTransition, PlatformFailure, RoosterError
from rooster.core.scheduler import AlarmScheduler, ScheduleResult, system_now
from rooster.core.snooze import AlarmState, SnoozeLifecycle

if TYPE_CHECKING:
    from rooster.data.models import AlarmDefinition, Location
    from rooster.ports.alarm_repository_port import AlarmRepository
    from rooster.ports.solar_port import SolarEventSource
    from rooster.ports.timer_port import ExactTimerCapability

logger = logging.getLogger(__name__)

RingCallback = Callable[["AlarmDefinition"], Awaitable[None]]


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


@dataclass
class FireResult:
    alarm: AlarmDefinition | None = None
    rescheduled: ScheduleResult | None = None  # set when the alarm was stale


@dataclass
class SnoozeResult:
    """Outcome of a snooze request.

    With `limit_reached` the alarm was dismissed instead; the presentation
    layer decides how to tell the user.
    """

    snoozed: bool = False
    snooze_count: int = 0
    trigger_at: datetime | None = None
    limit_reached: bool = False
    dismissal: DismissResult | None = None
    schedule: ScheduleResult | None = None
    error: RoosterError | None = None


@dataclass
class DismissResult:
    dismissed: bool = False
    disabled: bool = False  # one-time alarm switched off
    schedule: ScheduleResult | None = None
    error: RoosterError | None = None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AlarmService:
    """Wires the scheduler and the snooze lifecycle behind one API."""

    def __init__(
        self,
        repo: AlarmRepository,
        solar_source: SolarEventSource,
        timer: ExactTimerCapability,
        location: Location,
        clock: Callable[[], datetime] = system_now,
        on_ring: RingCallback | None = None,
        solar_validity: timedelta = timedelta(hours=6),
    ) -> None:
        self._repo = repo
        self._clock = clock
        self.on_ring = on_ring
        self.lifecycle = SnoozeLifecycle()
        self.scheduler = AlarmScheduler(
            repo, solar_source, timer, location,
            on_fire=self.on_fire,
            clock=clock,
            solar_validity=solar_validity,
        )

    # -- scheduling -------------------------------------------------------

    async def schedule_next(self) -> ScheduleResult:
        """Run a full selection pass and arm the winner.

        Pending snoozes take part in the pass as they are. An alarm that is
        ringing or snoozed keeps its episode and its snooze count.
        """
        result = await self.scheduler.schedule_next(held=self.lifecycle.pending_snoozes())
        if result.ok and result.resolved is not None:
            alarm_id = result.resolved.alarm_id
            if not self.lifecycle.in_episode(alarm_id):
                self.lifecycle.mark_scheduled(alarm_id)
        elif result.permission_denied:
            logger.error("Alarms cannot ring on time: exact alarm permission is missing")
        return result

    async def schedule_at(self, alarm_id: int, instant: datetime) -> ScheduleResult:
        return await self.scheduler.schedule_at(alarm_id, instant)

    async def cancel(self, alarm_id: int) -> ScheduleResult:
        return await self.scheduler.cancel(alarm_id)

    # -- recalculation triggers ------------------------------------------

    async def on_alarm_changed(self, alarm_id: int) -> ScheduleResult:
        """An alarm was created, edited, enabled or disabled."""
        logger.info("Alarm #%d changed, recalculating", alarm_id)
        return await self.schedule_next()

    async def on_boot(self) -> ScheduleResult:
        logger.info("Boot completed, recalculating")
        return await self.schedule_next()

    async def on_solar_data_refreshed(self) -> ScheduleResult:
        logger.info("Solar data refreshed, recalculating")
        return await self.schedule_next()

    async def delete_alarm(self, alarm_id: int) -> ScheduleResult:
        """Cancel the alarm's timer, delete it, then re-select."""
        cancelled = await self.scheduler.cancel(alarm_id)
        if not cancelled.ok:
            return cancelled

        try:
            await self._repo.delete(alarm_id)
        except Exception as exc:
            logger.error("Failed to delete alarm #%d: %s", alarm_id, exc)
            return ScheduleResult(error=PlatformFailure(f"Repository delete failed: {exc}"))

        self.lifecycle.forget(alarm_id)
        logger.info("Alarm #%d deleted", alarm_id)
        return await self.schedule_next()

    # -- firing episode ---------------------------------------------------

    async def on_fire(self, alarm_id: int) -> FireResult:
        """Timer callback: the alarm's instant has arrived."""
        try:
            alarm = await self._repo.get_by_id(alarm_id)
        except Exception as exc:
            logger.error("Could not load fired alarm #%d: %s", alarm_id, exc)
            alarm = None

        if alarm is None or not alarm.enabled:
            logger.warning("Fired alarm #%d is missing or disabled, re-selecting", alarm_id)
            self.lifecycle.forget(alarm_id)
            return FireResult(rescheduled=await self.schedule_next())

        self.lifecycle.fire(alarm_id)
        if self.on_ring is not None:
            try:
                await self.on_ring(alarm)
            except Exception as exc:
                logger.error("Ring handler failed for alarm #%d: %s", alarm_id, exc)
        return FireResult(alarm=alarm)

    async def snooze(self, alarm_id: int) -> SnoozeResult:
        """Snooze a firing alarm, or dismiss it when snoozing is not allowed."""
        alarm = await self._load(alarm_id)
        if alarm is None:
            return SnoozeResult(error=PlatformFailure(f"Alarm #{alarm_id} could not be loaded"))

        try:
            decision = self.lifecycle.request_snooze(alarm, self._clock())
        except IllegalTransition as exc:
            logger.warning("%s", exc)
            return SnoozeResult(error=exc)

        if not decision.allowed:
            logger.info("Snooze refused for alarm #%d (%s), dismissing", alarm_id, decision.reason)
            dismissal = await self.dismiss(alarm_id)
            return SnoozeResult(
                snooze_count=decision.snooze_count,
                limit_reached=True,
                dismissal=dismissal,
            )

        schedule = await self.scheduler.schedule_at(alarm_id, decision.trigger_at)
        if not schedule.ok:
            return SnoozeResult(
                snooze_count=decision.snooze_count,
                schedule=schedule,
                error=schedule.error,
            )

        count = self.lifecycle.confirm_snooze(alarm_id, decision.trigger_at)
        logger.info(
            "Alarm #%d snoozed until %s (%d/%d)",
            alarm_id, decision.trigger_at.isoformat(), count, alarm.snooze_max_count,
        )
        return SnoozeResult(
            snoozed=True,
            snooze_count=count,
            trigger_at=decision.trigger_at,
            schedule=schedule,
        )

    async def dismiss(self, alarm_id: int) -> DismissResult:
        """Stop a firing or snoozed alarm.

        One-time alarms (no weekday set) are disabled so they do not fire
        again; repeating alarms stay enabled and roll to their next day on
        the following scheduling pass.
        """
        alarm = await self._load(alarm_id)
        if alarm is None:
            return DismissResult(error=PlatformFailure(f"Alarm #{alarm_id} could not be loaded"))

        was_snoozed = self.lifecycle.state(alarm_id) == AlarmState.SNOOZED
        try:
            self.lifecycle.dismiss(alarm_id)
        except IllegalTransition as exc:
            logger.warning("%s", exc)
            return DismissResult(error=exc)

        if was_snoozed:
            await self.scheduler.cancel(alarm_id)

        disabled = False
        if not alarm.is_repeating:
            try:
                await self._repo.update_enabled(alarm_id, False)
                disabled = True
                logger.info("One-time alarm #%d disabled after dismiss", alarm_id)
            except Exception as exc:
                logger.error("Failed to disable one-time alarm #%d: %s", alarm_id, exc)
                return DismissResult(
                    dismissed=True,
                    error=PlatformFailure(f"Repository write failed: {exc}"),
                )

        schedule = await self.schedule_next()
        return DismissResult(dismissed=True, disabled=disabled, schedule=schedule)

    async def _load(self, alarm_id: int) -> AlarmDefinition | None:
        try:
            return await self._repo.get_by_id(alarm_id)
        except Exception as exc:
            logger.error("Could not load alarm #%d: %s", alarm_id, exc)
            return None
