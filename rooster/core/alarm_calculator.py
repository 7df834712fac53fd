"""Alarm time resolver — pure business logic.

Turns one alarm definition plus today's solar event table into the absolute
instant of its next firing: a per-mode base time, then a forward search over
the enabled weekdays.

No I/O: this module only transforms data. The local zone is always taken
from `now.tzinfo`, so callers decide which zone an alarm lives in.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from rooster.core.errors import ResolutionAmbiguity
from rooster.data.models import (
    After,
    AlarmDefinition,
    AlarmSchedule,
    At,
    Before,
    Between,
    SolarEvent,
    SolarEventTable,
    TimeRef,
    schedule_events,
)

logger = logging.getLogger(__name__)

_DAYS_IN_WEEK = 7


def _utc(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc)


def _is_after(a: datetime, b: datetime) -> bool:
    """Compare absolute instants, even when both share one zone object."""
    return _utc(a) > _utc(b)


def _add_days(dt: datetime, days: int) -> datetime:
    """Add whole days on the local wall clock (06:00 stays 06:00 across DST)."""
    return dt + timedelta(days=days)


def _require_aware(now: datetime) -> None:
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("now must be a timezone-aware datetime")


def normalize_to_today(instant: datetime, now: datetime) -> datetime:
    """Re-apply an instant's local hour:minute to now's local calendar date.

    Cached solar tables can be days old; only the time of day is trusted.
    The zone database supplies the UTC offset for today's date, so an event
    recorded in winter lands on the right wall-clock time in summer.
    """
    tz = now.tzinfo
    local = instant.astimezone(tz)
    today = now.date()
    return datetime(
        today.year, today.month, today.day, local.hour, local.minute, tzinfo=tz,
    )


def _ref_instant(
    ref: TimeRef, table: SolarEventTable | None, now: datetime,
) -> datetime:
    """Resolve an explicit time or a solar event to a local instant."""
    if isinstance(ref, datetime):
        return ref.astimezone(now.tzinfo)

    raw = table.get(ref) if table is not None else None
    if raw is None:
        raise ResolutionAmbiguity(f"Solar event {ref.value!r} is not available")
    return normalize_to_today(raw, now)


def _offset_from(anchor: datetime, offset: timedelta, tz) -> datetime:
    """Apply an elapsed-time offset on absolute time, then return to local."""
    return (_utc(anchor) + offset).astimezone(tz)


def _between_time(
    schedule: Between, table: SolarEventTable | None, now: datetime,
) -> datetime:
    first = _ref_instant(schedule.first, table, now)
    second = _ref_instant(schedule.second, table, now)

    today = now.date()
    if _is_after(now, first):
        first = first.replace(year=today.year, month=today.month, day=today.day)
    if _is_after(now, second):
        second = second.replace(year=today.year, month=today.month, day=today.day)

    a, b = _utc(first), _utc(second)
    midpoint = (a + (b - a) / 2).astimezone(now.tzinfo)

    if not _is_after(midpoint, now):
        midpoint = _add_days(midpoint, 1)
    return midpoint


def base_time(
    schedule: AlarmSchedule, table: SolarEventTable | None, now: datetime,
) -> datetime:
    """Compute the mode-specific base instant, before any weekday rollover.

    Raises:
        ResolutionAmbiguity: a required solar event is missing, or the
            schedule is not one of the four known variants.
    """
    _require_aware(now)

    if isinstance(schedule, At):
        return _ref_instant(schedule.when, table, now)

    if isinstance(schedule, Between):
        return _between_time(schedule, table, now)

    if isinstance(schedule, After):
        anchor = _ref_instant(schedule.anchor, table, now)
        return _offset_from(anchor, schedule.offset, now.tzinfo)

    if isinstance(schedule, Before):
        anchor = _ref_instant(schedule.anchor, table, now)
        return _offset_from(anchor, -schedule.offset, now.tzinfo)

    raise ResolutionAmbiguity(f"Unsupported alarm schedule: {schedule!r}")


def day_index(dt: datetime) -> int:
    """Day of week with Sunday = 0 .. Saturday = 6."""
    return (dt.weekday() + 1) % _DAYS_IN_WEEK


def roll_to_weekday(
    candidate: datetime, weekdays: tuple[bool, ...], now: datetime,
) -> datetime:
    """Advance a candidate to the first enabled weekday strictly after now.

    With no weekday enabled the candidate is returned once it is in the
    future, without any extra days: the alarm fires on its next natural
    occurrence.
    """
    while not _is_after(candidate, now):
        candidate = _add_days(candidate, 1)

    start = day_index(candidate)
    for i in range(_DAYS_IN_WEEK):
        if weekdays[(start + i) % _DAYS_IN_WEEK]:
            return _add_days(candidate, i)

    return candidate


def resolve(
    alarm: AlarmDefinition, table: SolarEventTable | None, now: datetime,
) -> datetime:
    """Resolve an alarm to the absolute instant of its next firing.

    Args:
        alarm: The alarm definition. `enabled` is not consulted here.
        table: Today's solar events, or None when no data is available.
        now: Current time; must be timezone-aware. Its zone is the alarm's
             local zone.

    Returns:
        A timezone-aware datetime strictly after `now`.

    Raises:
        ResolutionAmbiguity: the schedule needs a solar event the table
            does not have.
    """
    base = base_time(alarm.schedule, table, now)
    trigger = roll_to_weekday(base, alarm.weekdays, now)
    logger.debug(
        "Alarm #%d '%s' (%s): base %s -> next %s",
        alarm.id, alarm.label, alarm.mode.value,
        base.isoformat(), trigger.isoformat(),
    )
    return trigger


def required_events(alarms: list[AlarmDefinition]) -> set[SolarEvent]:
    """Collect every solar event a batch of alarms depends on."""
    needed: set[SolarEvent] = set()
    for alarm in alarms:
        needed.update(schedule_events(alarm.schedule))
    return needed
