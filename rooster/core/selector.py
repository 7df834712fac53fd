"""Alarm selector — picks the single nearest future alarm.

Each alarm is resolved on its own: a failure for one alarm is logged and
that alarm is skipped for this pass, it never aborts the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from rooster.core.alarm_calculator import resolve
from rooster.core.errors import ResolutionAmbiguity
from rooster.data.models import AlarmDefinition, ResolvedAlarm, SolarEventTable

logger = logging.getLogger(__name__)


@dataclass
class SelectionPass:
    """Every candidate of one pass, plus the alarms left out and why."""

    candidates: list[ResolvedAlarm] = field(default_factory=list)
    skipped: dict[int, str] = field(default_factory=dict)


def resolve_all(
    alarms: list[AlarmDefinition],
    table: SolarEventTable | None,
    now: datetime,
) -> SelectionPass:
    """Resolve every enabled alarm, isolating failures per alarm."""
    result = SelectionPass()

    for alarm in alarms:
        if not alarm.enabled:
            continue
        try:
            trigger = resolve(alarm, table, now)
        except ResolutionAmbiguity as exc:
            logger.warning("Alarm #%d '%s' skipped: %s", alarm.id, alarm.label, exc)
            result.skipped[alarm.id] = str(exc)
            continue
        except Exception as exc:
            logger.error(
                "Alarm #%d '%s' failed to resolve: %s", alarm.id, alarm.label, exc,
            )
            result.skipped[alarm.id] = f"unexpected error: {exc}"
            continue

        if trigger.astimezone(timezone.utc) <= now.astimezone(timezone.utc):
            logger.warning(
                "Alarm #%d '%s' resolved to a past instant %s, skipping",
                alarm.id, alarm.label, trigger.isoformat(),
            )
            result.skipped[alarm.id] = "resolved to a past instant"
            continue

        minutes = int((trigger - now).total_seconds() // 60)
        logger.debug("Alarm #%d '%s' fires in %d minutes", alarm.id, alarm.label, minutes)
        result.candidates.append(ResolvedAlarm(alarm_id=alarm.id, trigger_at=trigger))

    return result


def select_next(
    alarms: list[AlarmDefinition],
    table: SolarEventTable | None,
    now: datetime,
) -> ResolvedAlarm | None:
    """Return the enabled alarm with the earliest future trigger instant.

    Ties go to the lowest alarm id. Returns None when no alarm qualifies,
    which is a normal outcome, not an error.
    """
    selection = resolve_all(alarms, table, now)
    if not selection.candidates:
        return None

    winner = min(
        selection.candidates,
        key=lambda r: (r.trigger_at.astimezone(timezone.utc), r.alarm_id),
    )
    tied = [
        r.alarm_id for r in selection.candidates
        if r.trigger_at == winner.trigger_at and r.alarm_id != winner.alarm_id
    ]
    if tied:
        logger.info(
            "Alarm #%d tied with %s at %s, lowest id wins",
            winner.alarm_id, tied, winner.trigger_at.isoformat(),
        )
    return winner
