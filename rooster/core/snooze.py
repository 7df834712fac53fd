"""Snooze lifecycle — per-alarm state machine for one firing episode.

    SCHEDULED -> FIRING -> (SNOOZED -> FIRING)* -> DISMISSED

Snooze counters and pending snooze instants live in memory only. Counters
survive SNOOZED -> FIRING and are reset when the alarm is freshly armed by a
full scheduling pass. A pending snooze is handed to every scheduling pass so
that it is never replaced by the alarm's next regular occurrence.

No I/O: the service applies the decisions made here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from rooster.core.errors import IllegalTransition
from rooster.data.models import AlarmDefinition, ResolvedAlarm

logger = logging.getLogger(__name__)


class AlarmState(Enum):
    SCHEDULED = "scheduled"
    FIRING = "firing"
    SNOOZED = "snoozed"
    DISMISSED = "dismissed"


@dataclass
class Episode:
    state: AlarmState = AlarmState.SCHEDULED
    snooze_count: int = 0
    snoozed_until: datetime | None = None


@dataclass(frozen=True)
class SnoozeDecision:
    """Either a new trigger instant, or a refusal because the limit is hit."""

    allowed: bool
    trigger_at: datetime | None = None
    snooze_count: int = 0
    reason: str = ""


class SnoozeLifecycle:
    """Tracks the firing episode of every alarm that has been armed."""

    def __init__(self) -> None:
        self._episodes: dict[int, Episode] = {}

    def state(self, alarm_id: int) -> AlarmState | None:
        episode = self._episodes.get(alarm_id)
        return episode.state if episode else None

    def snooze_count(self, alarm_id: int) -> int:
        episode = self._episodes.get(alarm_id)
        return episode.snooze_count if episode else 0

    def in_episode(self, alarm_id: int) -> bool:
        """True while the alarm is ringing or waiting on a snooze."""
        return self.state(alarm_id) in (AlarmState.FIRING, AlarmState.SNOOZED)

    def pending_snoozes(self) -> list[ResolvedAlarm]:
        """Snooze instants that are armed or still owed a timer."""
        return [
            ResolvedAlarm(alarm_id=alarm_id, trigger_at=episode.snoozed_until)
            for alarm_id, episode in self._episodes.items()
            if episode.state == AlarmState.SNOOZED and episode.snoozed_until is not None
        ]

    def mark_scheduled(self, alarm_id: int) -> None:
        """A full scheduling pass armed this alarm: start a fresh episode."""
        self._episodes[alarm_id] = Episode()

    def fire(self, alarm_id: int) -> Episode:
        """The timer went off. The snooze counter is kept from earlier snoozes."""
        episode = self._episodes.setdefault(alarm_id, Episode())
        if episode.state == AlarmState.DISMISSED:
            # A dismissed episode that fires again is a new day's firing.
            episode.snooze_count = 0
        episode.state = AlarmState.FIRING
        episode.snoozed_until = None
        logger.info("Alarm #%d firing (snoozed %d times)", alarm_id, episode.snooze_count)
        return episode

    def request_snooze(self, alarm: AlarmDefinition, now: datetime) -> SnoozeDecision:
        """Decide whether a firing alarm may snooze, and until when."""
        episode = self._require_state(alarm.id, AlarmState.FIRING, "snooze")

        if not alarm.snooze_enabled:
            return SnoozeDecision(
                allowed=False, snooze_count=episode.snooze_count,
                reason="snooze disabled",
            )
        if episode.snooze_count >= alarm.snooze_max_count:
            logger.warning(
                "Max snooze count reached for alarm #%d: %d/%d",
                alarm.id, episode.snooze_count, alarm.snooze_max_count,
            )
            return SnoozeDecision(
                allowed=False, snooze_count=episode.snooze_count,
                reason="snooze limit reached",
            )

        return SnoozeDecision(
            allowed=True,
            trigger_at=now + timedelta(minutes=alarm.snooze_duration_minutes),
            snooze_count=episode.snooze_count,
        )

    def confirm_snooze(self, alarm_id: int, until: datetime) -> int:
        """The snooze timer was armed: count it and move to SNOOZED."""
        episode = self._require_state(alarm_id, AlarmState.FIRING, "snooze")
        episode.snooze_count += 1
        episode.state = AlarmState.SNOOZED
        episode.snoozed_until = until
        return episode.snooze_count

    def dismiss(self, alarm_id: int) -> Episode:
        episode = self._episodes.get(alarm_id)
        if episode is None or episode.state not in (AlarmState.FIRING, AlarmState.SNOOZED):
            raise IllegalTransition(
                f"Alarm #{alarm_id} cannot be dismissed while "
                f"{episode.state.value if episode else 'not armed'}"
            )
        episode.state = AlarmState.DISMISSED
        episode.snoozed_until = None
        return episode

    def forget(self, alarm_id: int) -> None:
        self._episodes.pop(alarm_id, None)

    def _require_state(self, alarm_id: int, expected: AlarmState, action: str) -> Episode:
        episode = self._episodes.get(alarm_id)
        if episode is None or episode.state != expected:
            current = episode.state.value if episode else "not armed"
            raise IllegalTransition(f"Alarm #{alarm_id} cannot {action} while {current}")
        return episode
