"""
Rooster — Alarm Scheduler.

Owns the single exact-timer slot: picks the nearest alarm, writes its
calculated time back to the repository, then arms the platform timer for it.

At most one timer is armed by this scheduler at a time. Arming a different
alarm first cancels the one currently held in the slot.

This module is platform-agnostic: it depends on the AlarmRepository,
SolarEventSource and ExactTimerCapability protocols, not on specific
implementations. Failures come back as ScheduleResult values; nothing
raises across the public methods.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Sequence

from rooster.config import settings
from rooster.core.alarm_calculator import required_events
from rooster.core.errors import (
    AlarmNotFound,
    InvalidTriggerTime,
    PermissionDenied,
    PlatformFailure,
    ScheduleError,
)
from rooster.core.selector import select_next
from rooster.data.models import ResolvedAlarm

if TYPE_CHECKING:
    from rooster.data.models import AlarmDefinition, Location, SolarEventTable
    from rooster.ports.alarm_repository_port import AlarmRepository
    from rooster.ports.solar_port import SolarEventSource
    from rooster.ports.timer_port import ExactTimerCapability, FireCallback

logger = logging.getLogger(__name__)


def _utc(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc)


def system_now() -> datetime:
    """Current time in the configured zone, so day steps follow its DST rules."""
    return datetime.now(settings.local_zone())


@dataclass(frozen=True)
class TimerHandle:
    """The alarm currently held in the scheduler's timer slot."""

    alarm_id: int
    trigger_at: datetime


@dataclass
class ScheduleResult:
    """Outcome of a scheduling call.

    `resolved` is None with no error when there was simply nothing to arm.
    When arming fails, `resolved` still names the alarm that was attempted.
    """

    resolved: ResolvedAlarm | None = None
    error: ScheduleError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def permission_denied(self) -> bool:
        return isinstance(self.error, PermissionDenied)


class AlarmScheduler:
    """Arms, re-arms and cancels the exact timer for the winning alarm."""

    def __init__(
        self,
        repo: AlarmRepository,
        solar_source: SolarEventSource,
        timer: ExactTimerCapability,
        location: Location,
        on_fire: FireCallback,
        clock: Callable[[], datetime] = system_now,
        solar_validity: timedelta = timedelta(hours=6),
    ) -> None:
        self._repo = repo
        self._solar_source = solar_source
        self._timer = timer
        self._location = location
        self._on_fire = on_fire
        self._clock = clock
        self._solar_validity = solar_validity
        self._slot: TimerHandle | None = None

    @property
    def armed(self) -> TimerHandle | None:
        return self._slot

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def schedule_next(self, held: Sequence[ResolvedAlarm] = ()) -> ScheduleResult:
        """Select the nearest enabled alarm and arm the timer for it.

        Args:
            held: Instants already promised to specific alarms (pending
                snoozes). A held alarm is not resolved again; its instant
                competes with the other alarms as is. A held instant that
                has already passed is armed for now.
        """
        now = self._clock()

        try:
            alarms = await self._repo.get_enabled_alarms()
        except Exception as exc:
            logger.error("Could not load enabled alarms: %s", exc)
            return ScheduleResult(error=PlatformFailure(f"Repository read failed: {exc}"))

        enabled_ids = {a.id for a in alarms}
        kept = [
            ResolvedAlarm(h.alarm_id, max(h.trigger_at, now, key=_utc))
            for h in held
            if h.alarm_id in enabled_ids
        ]
        held_ids = {h.alarm_id for h in kept}
        regular = [a for a in alarms if a.id not in held_ids]

        if not regular and not kept:
            logger.info("No enabled alarms found")
            return ScheduleResult()

        table = await self._load_solar_table(regular, now)
        candidates = list(kept)
        resolved = select_next(regular, table, now)
        if resolved is not None:
            candidates.append(resolved)
        if not candidates:
            logger.info("No valid alarms found to schedule")
            return ScheduleResult()

        winner = min(candidates, key=lambda c: (_utc(c.trigger_at), c.alarm_id))
        if winner.alarm_id in held_ids:
            logger.info("Pending snooze of alarm #%d is the nearest", winner.alarm_id)

        error = await self._persist_and_arm(winner)
        if error is None:
            minutes = int((winner.trigger_at - now).total_seconds() // 60)
            logger.info(
                "Closest alarm set: #%d at %s (in %d minutes)",
                winner.alarm_id, winner.trigger_at.isoformat(), minutes,
            )
        return ScheduleResult(resolved=winner, error=error)

    async def schedule_at(self, alarm_id: int, instant: datetime) -> ScheduleResult:
        """Arm the timer for an explicit instant, bypassing resolution."""
        if instant.tzinfo is None:
            return ScheduleResult(
                error=InvalidTriggerTime("Trigger instant must be timezone-aware"),
            )

        now = self._clock()
        if instant <= now:
            logger.warning(
                "Refusing to arm alarm #%d for past instant %s",
                alarm_id, instant.isoformat(),
            )
            return ScheduleResult(
                error=InvalidTriggerTime(f"{instant.isoformat()} is not in the future"),
            )

        try:
            alarm = await self._repo.get_by_id(alarm_id)
        except Exception as exc:
            logger.error("Could not load alarm #%d: %s", alarm_id, exc)
            return ScheduleResult(error=PlatformFailure(f"Repository read failed: {exc}"))

        if alarm is None:
            return ScheduleResult(error=AlarmNotFound(f"Alarm #{alarm_id} does not exist"))

        resolved = ResolvedAlarm(alarm_id=alarm_id, trigger_at=instant)
        error = await self._persist_and_arm(resolved)
        return ScheduleResult(resolved=resolved, error=error)

    async def cancel(self, alarm_id: int) -> ScheduleResult:
        """Cancel any timer for this alarm. Cancelling twice is not an error."""
        try:
            await self._timer.cancel(alarm_id)
        except Exception as exc:
            logger.error("Failed to cancel timer for alarm #%d: %s", alarm_id, exc)
            return ScheduleResult(error=PlatformFailure(f"Timer cancel failed: {exc}"))

        if self._slot is not None and self._slot.alarm_id == alarm_id:
            self._slot = None
        logger.info("Timer for alarm #%d cancelled", alarm_id)
        return ScheduleResult()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_solar_table(
        self, alarms: list[AlarmDefinition], now: datetime,
    ) -> SolarEventTable | None:
        """Fetch today's solar table, only when some alarm needs it.

        Graceful degradation: a failing or empty source returns None, and
        the alarms that depend on it are skipped by the selector.
        """
        needed = required_events(alarms)
        if not needed:
            return None

        try:
            table = await self._solar_source.get_today_events(self._location)
        except Exception as exc:
            logger.warning("Solar event source failed: %s", exc)
            return None

        if table is None:
            logger.warning("No solar event data available")
            return None

        if table.is_stale(now, self._solar_validity):
            logger.warning(
                "Using stale solar data (fetched %s)",
                table.fetched_at.isoformat() if table.fetched_at else "never",
            )

        missing = sorted(e.value for e in needed if table.get(e) is None)
        if missing:
            logger.warning("Solar table is missing: %s", ", ".join(missing))
        return table

    async def _persist_and_arm(self, resolved: ResolvedAlarm) -> ScheduleError | None:
        # Persist first: a crash before arming still leaves a recoverable record.
        try:
            await self._repo.update_calculated_time(resolved.alarm_id, resolved.trigger_at)
        except Exception as exc:
            logger.error(
                "Could not persist calculated time for alarm #%d: %s",
                resolved.alarm_id, exc,
            )
            return PlatformFailure(f"Repository write failed: {exc}")

        return await self._arm(resolved)

    async def _arm(self, resolved: ResolvedAlarm) -> ScheduleError | None:
        try:
            permitted = self._timer.is_permitted()
        except Exception as exc:
            logger.error("Could not query exact-alarm permission: %s", exc)
            return PlatformFailure(f"Permission check failed: {exc}")

        if not permitted:
            logger.error(
                "Exact alarm permission not granted, alarm #%d was NOT armed",
                resolved.alarm_id,
            )
            return PermissionDenied("Exact alarm scheduling is not permitted")

        previous = self._slot
        if previous is not None and previous.alarm_id != resolved.alarm_id:
            try:
                await self._timer.cancel(previous.alarm_id)
            except Exception as exc:
                logger.warning(
                    "Could not cancel superseded timer for alarm #%d: %s",
                    previous.alarm_id, exc,
                )
            self._slot = None

        try:
            await self._timer.arm(resolved.alarm_id, resolved.trigger_at, self._on_fire)
        except PermissionError as exc:
            logger.error("Permission denied for exact alarm #%d: %s", resolved.alarm_id, exc)
            return PermissionDenied(str(exc) or "Exact alarm scheduling is not permitted")
        except Exception as exc:
            logger.error("Failed to arm timer for alarm #%d: %s", resolved.alarm_id, exc)
            return PlatformFailure(f"Timer arm failed: {exc}")

        self._slot = TimerHandle(alarm_id=resolved.alarm_id, trigger_at=resolved.trigger_at)
        logger.info(
            "Timer armed for alarm #%d at %s",
            resolved.alarm_id, resolved.trigger_at.isoformat(),
        )
        return None
