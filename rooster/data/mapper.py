"""
Rooster — Alarm Mapper.

Converts between the flat storage shape (mode string, two relative names,
two millisecond values) and the typed schedule variants used by the core.

Storage layout per mode:

    mode     relative1         relative2      time1           time2
    At       event | PICK_TIME  -              explicit ms     -
    Before   -                 anchor event   offset ms       -
    After    -                 anchor event   offset ms       -
    Between  event | PICK_TIME event | PICK   explicit ms     explicit ms
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from rooster.core.errors import ValidationError
from rooster.data.models import (
    PICK_TIME,
    After,
    AlarmMode,
    AlarmSchedule,
    At,
    Before,
    Between,
    SolarEvent,
    TimeRef,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def millis_to_datetime(ms: int | None) -> datetime | None:
    """Epoch milliseconds to an aware UTC datetime. 0 / None means unset."""
    if not ms:
        return None
    return _EPOCH + timedelta(milliseconds=ms)


def datetime_to_millis(dt: datetime | None) -> int:
    """Aware datetime to epoch milliseconds. None is stored as 0."""
    if dt is None:
        return 0
    return (dt - _EPOCH) // _ONE_MS


def _parse_event(name: str) -> SolarEvent:
    try:
        return SolarEvent(name)
    except ValueError:
        raise ValidationError([f"Unknown solar event: {name!r}"]) from None


def _parse_ref(relative: str, ms: int) -> TimeRef:
    if relative == PICK_TIME:
        instant = millis_to_datetime(ms)
        if instant is None:
            raise ValidationError(["Alarm time is not set"])
        return instant
    return _parse_event(relative)


def _dump_ref(ref: TimeRef) -> tuple[str, int]:
    if isinstance(ref, SolarEvent):
        return ref.value, 0
    return PICK_TIME, datetime_to_millis(ref)


def to_schedule(
    mode: str, relative1: str, relative2: str, time1: int, time2: int,
) -> AlarmSchedule:
    """Build the typed schedule for a stored alarm row.

    Raises:
        ValidationError: unknown mode or event name, or a missing time.
    """
    try:
        alarm_mode = AlarmMode(mode)
    except ValueError:
        raise ValidationError([f"Invalid alarm mode: {mode!r}"]) from None

    if alarm_mode is AlarmMode.AT:
        return At(when=_parse_ref(relative1, time1))
    if alarm_mode is AlarmMode.BETWEEN:
        return Between(
            first=_parse_ref(relative1, time1),
            second=_parse_ref(relative2, time2),
        )

    anchor = _parse_event(relative2)
    offset = timedelta(milliseconds=time1)
    if alarm_mode is AlarmMode.AFTER:
        return After(anchor=anchor, offset=offset)
    return Before(anchor=anchor, offset=offset)


def from_schedule(schedule: AlarmSchedule) -> dict:
    """Flatten a schedule into the storage columns."""
    row = {
        "mode": schedule.mode.value,
        "relative1": PICK_TIME,
        "relative2": PICK_TIME,
        "time1": 0,
        "time2": 0,
    }
    if isinstance(schedule, At):
        row["relative1"], row["time1"] = _dump_ref(schedule.when)
    elif isinstance(schedule, Between):
        row["relative1"], row["time1"] = _dump_ref(schedule.first)
        row["relative2"], row["time2"] = _dump_ref(schedule.second)
    else:
        row["relative2"] = schedule.anchor.value
        row["time1"] = schedule.offset // _ONE_MS
    return row
