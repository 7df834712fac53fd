"""Write-time validation of alarm definitions.

Malformed definitions are rejected here, before they are stored, so the
resolver never sees them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from rooster.core.errors import ValidationError
from rooster.data.models import (
    After,
    AlarmDefinition,
    At,
    Before,
    Between,
    SolarEvent,
)

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 100
SNOOZE_DURATION_RANGE = (5, 30)
SNOOZE_COUNT_RANGE = (1, 10)
VOLUME_RANGE = (0, 100)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def sanitize_label(label: str) -> str:
    """Trim whitespace and cap the label at the maximum length."""
    return label.strip()[:MAX_LABEL_LENGTH]


def _check_explicit_time(value: datetime, name: str, errors: list[str]) -> None:
    if value.tzinfo is None:
        errors.append(f"{name} must be timezone-aware")
    elif value <= _EPOCH:
        errors.append(f"{name} is not set")


def _check_schedule(alarm: AlarmDefinition, errors: list[str]) -> None:
    schedule = alarm.schedule

    if isinstance(schedule, At):
        if isinstance(schedule.when, datetime):
            _check_explicit_time(schedule.when, "Alarm time", errors)
        return

    if isinstance(schedule, (Before, After)):
        if not isinstance(schedule.anchor, SolarEvent):
            errors.append(f"{schedule.mode.value} needs a solar event anchor")
        if schedule.offset < timedelta(0):
            errors.append("Offset must not be negative")
        return

    if isinstance(schedule, Between):
        first, second = schedule.first, schedule.second
        for ref, name in ((first, "Start time"), (second, "End time")):
            if isinstance(ref, datetime):
                _check_explicit_time(ref, name, errors)
        if isinstance(first, SolarEvent) and isinstance(second, SolarEvent):
            if second.daily_order < first.daily_order:
                errors.append(
                    f"Between end event {second.value!r} occurs before "
                    f"start event {first.value!r}"
                )
        elif isinstance(first, datetime) and isinstance(second, datetime):
            if first.tzinfo is not None and second.tzinfo is not None and second < first:
                errors.append("Between end time is before start time")
        # A solar event paired with an explicit time has no fixed order; the
        # midpoint is the same whichever side comes first.
        return

    errors.append(f"Invalid alarm mode: {schedule!r}")


def validate_alarm(alarm: AlarmDefinition) -> list[str]:
    """Return every problem found in an alarm definition (empty if valid)."""
    errors: list[str] = []

    label = alarm.label.strip()
    if not label:
        errors.append("Alarm label cannot be empty")
    elif len(label) > MAX_LABEL_LENGTH:
        errors.append(f"Alarm label is too long (max {MAX_LABEL_LENGTH} characters)")

    _check_schedule(alarm, errors)

    low, high = SNOOZE_DURATION_RANGE
    if not low <= alarm.snooze_duration_minutes <= high:
        errors.append(f"Snooze duration must be between {low} and {high} minutes")

    low, high = SNOOZE_COUNT_RANGE
    if not low <= alarm.snooze_max_count <= high:
        errors.append(f"Snooze count must be between {low} and {high}")

    low, high = VOLUME_RANGE
    if not low <= alarm.volume <= high:
        errors.append(f"Volume must be between {low} and {high}")

    return errors


def ensure_valid(alarm: AlarmDefinition) -> None:
    """Raise ValidationError if the alarm is malformed."""
    errors = validate_alarm(alarm)
    if errors:
        raise ValidationError(errors)


def validate_coordinates(latitude: float, longitude: float) -> list[str]:
    """Check a location. (0, 0) is accepted with a warning."""
    errors: list[str] = []
    if not -90 <= latitude <= 90:
        errors.append(f"Invalid latitude: {latitude} (must be between -90 and 90)")
    if not -180 <= longitude <= 180:
        errors.append(f"Invalid longitude: {longitude} (must be between -180 and 180)")
    if not errors and latitude == 0 and longitude == 0:
        logger.warning("Location is at coordinates (0, 0), solar data may be wrong")
    return errors
