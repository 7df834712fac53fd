"""
Rooster — Data Models.

Alarm definitions, their schedule variants, and the daily solar event table.
The repository owns these records; the resolver and scheduler work on copies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

# Storage sentinel for "the user picked an explicit clock time"
PICK_TIME = "Pick Time"


class AlarmMode(str, Enum):
    AT = "At"
    BEFORE = "Before"
    AFTER = "After"
    BETWEEN = "Between"


class SolarEvent(str, Enum):
    """The nine named daily solar instants, in their natural daily order."""

    ASTRONOMICAL_DAWN = "Astronomical Dawn"
    NAUTICAL_DAWN = "Nautical Dawn"
    CIVIL_DAWN = "Civil Dawn"
    SUNRISE = "Sunrise"
    SOLAR_NOON = "Solar Noon"
    SUNSET = "Sunset"
    CIVIL_DUSK = "Civil Dusk"
    NAUTICAL_DUSK = "Nautical Dusk"
    ASTRONOMICAL_DUSK = "Astronomical Dusk"

    @property
    def daily_order(self) -> int:
        return list(SolarEvent).index(self)


# An explicit clock time or a solar event, resolved to an instant later.
TimeRef = SolarEvent | datetime


# ---------------------------------------------------------------------------
# Schedule variants: one per alarm mode, each with its own fields
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class At:
    """Fire at a solar event or at an explicit time."""

    when: TimeRef

    mode = AlarmMode.AT


@dataclass(frozen=True)
class Before:
    """Fire `offset` before the anchor solar event."""

    anchor: SolarEvent
    offset: timedelta

    mode = AlarmMode.BEFORE


@dataclass(frozen=True)
class After:
    """Fire `offset` after the anchor solar event."""

    anchor: SolarEvent
    offset: timedelta

    mode = AlarmMode.AFTER


@dataclass(frozen=True)
class Between:
    """Fire at the midpoint of two solar events and/or explicit times."""

    first: TimeRef
    second: TimeRef

    mode = AlarmMode.BETWEEN


AlarmSchedule = At | Before | After | Between


def schedule_events(schedule: AlarmSchedule) -> list[SolarEvent]:
    """Return the solar events a schedule depends on."""
    if isinstance(schedule, At):
        refs: list[TimeRef] = [schedule.when]
    elif isinstance(schedule, (Before, After)):
        refs = [schedule.anchor]
    elif isinstance(schedule, Between):
        refs = [schedule.first, schedule.second]
    else:
        refs = []
    return [r for r in refs if isinstance(r, SolarEvent)]


@dataclass
class AlarmDefinition:
    """A user-defined alarm as stored by the repository."""

    id: int
    label: str
    schedule: AlarmSchedule
    enabled: bool = False
    calculated_time: datetime | None = None  # last resolved trigger instant
    sunday: bool = False
    monday: bool = False
    tuesday: bool = False
    wednesday: bool = False
    thursday: bool = False
    friday: bool = False
    saturday: bool = False
    snooze_enabled: bool = True
    snooze_duration_minutes: int = 10     # 5..30
    snooze_max_count: int = 3             # 1..10
    volume: int = 80                      # 0..100
    gradual_volume: bool = False
    vibrate: bool = True
    ringtone_uri: str = "Default"

    @property
    def mode(self) -> AlarmMode:
        return self.schedule.mode

    @property
    def weekdays(self) -> tuple[bool, ...]:
        """Weekday flags indexed Sunday = 0 .. Saturday = 6."""
        return (
            self.sunday, self.monday, self.tuesday, self.wednesday,
            self.thursday, self.friday, self.saturday,
        )

    @property
    def is_repeating(self) -> bool:
        return any(self.weekdays)

    @property
    def uses_solar_events(self) -> bool:
        return bool(schedule_events(self.schedule))


@dataclass
class SolarEventTable:
    """Today's solar instants for one location. Missing events are None.

    The table may be days old when it comes from a cache; the resolver only
    uses each event's time of day.
    """

    events: dict[SolarEvent, datetime | None] = field(default_factory=dict)
    fetched_at: datetime | None = None

    def get(self, event: SolarEvent) -> datetime | None:
        return self.events.get(event)

    def is_stale(self, now: datetime, validity: timedelta = timedelta(hours=6)) -> bool:
        if self.fetched_at is None:
            return True
        return now - self.fetched_at > validity


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ResolvedAlarm:
    """The winner of a selection pass. Only trigger_at is ever persisted."""

    alarm_id: int
    trigger_at: datetime
