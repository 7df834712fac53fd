"""Tests for rooster.core.scheduler — the single exact-timer slot."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import PARIS, FakeSolarSource, make_alarm
from rooster.core.errors import (
    AlarmNotFound,
    InvalidTriggerTime,
    PermissionDenied,
    PlatformFailure,
)
from rooster.core.scheduler import AlarmScheduler, TimerHandle, system_now
from rooster.data.models import At, ResolvedAlarm, SolarEvent, SolarEventTable
from rooster.ports.timer_port import TimerError


async def _noop_fire(alarm_id):
    return None


def _scheduler(repo, solar_source, timer, location, now):
    return AlarmScheduler(
        repo, solar_source, timer, location,
        on_fire=_noop_fire,
        clock=lambda: now,
    )


def _at(hour, minute=0, day=15):
    return At(when=datetime(2025, 1, day, hour, minute, tzinfo=PARIS))


EIGHT_AM = datetime(2025, 1, 15, 8, 0, tzinfo=PARIS)


# ---------------------------------------------------------------------------
# schedule_next
# ---------------------------------------------------------------------------


class TestScheduleNext:
    @pytest.mark.asyncio
    async def test_no_alarms_is_ok_and_arms_nothing(
        self, repo, solar_source, timer, location, now,
    ):
        result = await _scheduler(repo, solar_source, timer, location, now).schedule_next()

        assert result.ok
        assert result.resolved is None
        assert not result.permission_denied
        assert timer.armed == {}

    @pytest.mark.asyncio
    async def test_arms_nearest_alarm(self, repo, solar_source, timer, location, now):
        repo.add(make_alarm(1, _at(9)))
        repo.add(make_alarm(2, _at(8)))
        scheduler = _scheduler(repo, solar_source, timer, location, now)

        result = await scheduler.schedule_next()

        assert result.ok
        assert result.resolved.alarm_id == 2
        assert list(timer.armed) == [2]
        assert timer.armed[2][0] == EIGHT_AM
        assert scheduler.armed == TimerHandle(alarm_id=2, trigger_at=EIGHT_AM)

    @pytest.mark.asyncio
    async def test_persists_before_arming(
        self, repo, solar_source, timer, location, now, calls,
    ):
        repo.add(make_alarm(1, _at(8)))
        await _scheduler(repo, solar_source, timer, location, now).schedule_next()

        persist = calls.index(("update_calculated_time", 1, EIGHT_AM))
        arm = calls.index(("arm", 1, EIGHT_AM))
        assert persist < arm
        assert repo.alarms[1].calculated_time == EIGHT_AM

    @pytest.mark.asyncio
    async def test_twice_in_a_row_is_idempotent(
        self, repo, solar_source, timer, location, now,
    ):
        repo.add(make_alarm(1, _at(8)))
        scheduler = _scheduler(repo, solar_source, timer, location, now)

        first = await scheduler.schedule_next()
        second = await scheduler.schedule_next()

        assert first.ok and second.ok
        assert first.resolved == second.resolved
        assert list(timer.armed) == [1]
        assert timer.armed[1][0] == EIGHT_AM

    @pytest.mark.asyncio
    async def test_new_winner_supersedes_previous_timer(
        self, repo, solar_source, timer, location, now, calls,
    ):
        repo.add(make_alarm(1, _at(9)))
        scheduler = _scheduler(repo, solar_source, timer, location, now)
        await scheduler.schedule_next()

        repo.add(make_alarm(2, _at(8)))
        result = await scheduler.schedule_next()

        assert result.resolved.alarm_id == 2
        assert ("cancel", 1) in calls
        assert list(timer.armed) == [2]

    @pytest.mark.asyncio
    async def test_permission_denied_is_reported(
        self, repo, solar_source, timer, location, now,
    ):
        repo.add(make_alarm(1, _at(8)))
        timer.permitted = False

        result = await _scheduler(repo, solar_source, timer, location, now).schedule_next()

        assert not result.ok
        assert result.permission_denied
        assert isinstance(result.error, PermissionDenied)
        assert result.resolved.alarm_id == 1
        assert timer.armed == {}

    @pytest.mark.asyncio
    async def test_permission_error_from_platform_is_permission_denied(
        self, repo, solar_source, timer, location, now,
    ):
        repo.add(make_alarm(1, _at(8)))
        timer.arm_error = PermissionError("SCHEDULE_EXACT_ALARM revoked")

        result = await _scheduler(repo, solar_source, timer, location, now).schedule_next()

        assert result.permission_denied

    @pytest.mark.asyncio
    async def test_other_arm_failure_is_platform_failure(
        self, repo, solar_source, timer, location, now,
    ):
        repo.add(make_alarm(1, _at(8)))
        timer.arm_error = TimerError("alarm service unavailable")
        scheduler = _scheduler(repo, solar_source, timer, location, now)

        result = await scheduler.schedule_next()

        assert isinstance(result.error, PlatformFailure)
        assert not result.permission_denied
        assert scheduler.armed is None

    @pytest.mark.asyncio
    async def test_repository_failure_is_platform_failure(
        self, solar_source, timer, location, now,
    ):
        repo = AsyncMock()
        repo.get_enabled_alarms.side_effect = OSError("disk I/O error")

        result = await _scheduler(repo, solar_source, timer, location, now).schedule_next()

        assert isinstance(result.error, PlatformFailure)
        assert timer.armed == {}


class TestSolarTableLoading:
    @pytest.mark.asyncio
    async def test_table_not_requested_without_solar_alarms(
        self, repo, timer, location, now,
    ):
        source = AsyncMock()
        repo.add(make_alarm(1, _at(8)))

        await _scheduler(repo, source, timer, location, now).schedule_next()

        source.get_today_events.assert_not_called()

    @pytest.mark.asyncio
    async def test_source_failure_skips_only_solar_alarms(
        self, repo, timer, location, now,
    ):
        source = AsyncMock()
        source.get_today_events.side_effect = TimeoutError("no data")
        repo.add(make_alarm(1, At(when=SolarEvent.SUNRISE)))
        repo.add(make_alarm(2, _at(10)))

        result = await _scheduler(repo, source, timer, location, now).schedule_next()

        assert result.ok
        assert result.resolved.alarm_id == 2

    @pytest.mark.asyncio
    async def test_stale_table_is_used_with_warning(
        self, repo, timer, location, now, caplog,
    ):
        table = SolarEventTable(
            events={SolarEvent.SUNRISE: datetime(2025, 1, 11, 8, 40, tzinfo=PARIS)},
            fetched_at=now - timedelta(days=4),
        )
        repo.add(make_alarm(1, At(when=SolarEvent.SUNRISE)))

        with caplog.at_level(logging.WARNING, logger="rooster.core.scheduler"):
            result = await _scheduler(
                repo, FakeSolarSource(table), timer, location, now,
            ).schedule_next()

        assert result.resolved.trigger_at == datetime(2025, 1, 15, 8, 40, tzinfo=PARIS)
        assert "stale solar data" in caplog.text



class TestSystemClock:
    @pytest.mark.asyncio
    async def test_weekly_solar_alarm_keeps_wall_clock_across_dst(
        self, repo, timer, location, monkeypatch,
    ):
        monkeypatch.setattr("rooster.config.settings.TIMEZONE", "Europe/Paris")
        zone = system_now().tzinfo
        # Saturday before the spring change, Monday is on summer time
        now = datetime(2026, 3, 28, 12, 0, tzinfo=zone)
        table = SolarEventTable(
            events={SolarEvent.SUNRISE: datetime(2026, 3, 28, 6, 30, tzinfo=zone)},
            fetched_at=now,
        )
        repo.add(make_alarm(1, At(when=SolarEvent.SUNRISE), monday=True))

        result = await _scheduler(
            repo, FakeSolarSource(table), timer, location, now,
        ).schedule_next()

        trigger = result.resolved.trigger_at
        assert trigger == datetime(2026, 3, 30, 6, 30, tzinfo=PARIS)
        assert trigger.hour == 6
        assert trigger.utcoffset() == timedelta(hours=2)


class TestHeldInstants:
    @pytest.mark.asyncio
    async def test_held_snooze_beats_later_alarm(
        self, repo, solar_source, timer, location, now,
    ):
        repo.add(make_alarm(1, _at(8)))
        repo.add(make_alarm(2, _at(9)))
        held = [ResolvedAlarm(1, now + timedelta(minutes=10))]

        result = await _scheduler(
            repo, solar_source, timer, location, now,
        ).schedule_next(held=held)

        assert result.resolved == ResolvedAlarm(1, now + timedelta(minutes=10))
        assert timer.armed[1][0] == now + timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_held_alarm_is_not_resolved_again(
        self, repo, solar_source, timer, location, now,
    ):
        # Regular occurrence at 07:30 would win if the alarm were resolved
        repo.add(make_alarm(1, _at(7, 30)))
        repo.add(make_alarm(2, _at(8)))
        held = [ResolvedAlarm(1, now + timedelta(hours=2))]

        result = await _scheduler(
            repo, solar_source, timer, location, now,
        ).schedule_next(held=held)

        assert result.resolved.alarm_id == 2
        assert 1 not in timer.armed

    @pytest.mark.asyncio
    async def test_held_entry_for_disabled_or_missing_alarm_is_ignored(
        self, repo, solar_source, timer, location, now,
    ):
        repo.add(make_alarm(1, _at(8), enabled=False))
        repo.add(make_alarm(2, _at(9)))
        held = [
            ResolvedAlarm(1, now + timedelta(minutes=10)),
            ResolvedAlarm(7, now + timedelta(minutes=5)),
        ]

        result = await _scheduler(
            repo, solar_source, timer, location, now,
        ).schedule_next(held=held)

        assert result.resolved.alarm_id == 2

    @pytest.mark.asyncio
    async def test_overdue_held_instant_is_armed_now(
        self, repo, solar_source, timer, location, now,
    ):
        repo.add(make_alarm(1, _at(8)))
        held = [ResolvedAlarm(1, now - timedelta(minutes=3))]

        result = await _scheduler(
            repo, solar_source, timer, location, now,
        ).schedule_next(held=held)

        assert result.resolved == ResolvedAlarm(1, now)

# ---------------------------------------------------------------------------
# schedule_at / cancel
# ---------------------------------------------------------------------------


class TestScheduleAt:
    @pytest.mark.asyncio
    async def test_arms_explicit_instant(self, repo, solar_source, timer, location, now):
        repo.add(make_alarm(1))
        instant = now + timedelta(minutes=10)

        result = await _scheduler(repo, solar_source, timer, location, now).schedule_at(1, instant)

        assert result.ok
        assert timer.armed[1][0] == instant
        assert repo.alarms[1].calculated_time == instant

    @pytest.mark.asyncio
    async def test_rejects_past_instant(self, repo, solar_source, timer, location, now):
        repo.add(make_alarm(1))
        result = await _scheduler(repo, solar_source, timer, location, now).schedule_at(1, now)

        assert isinstance(result.error, InvalidTriggerTime)
        assert timer.armed == {}

    @pytest.mark.asyncio
    async def test_rejects_naive_instant(self, repo, solar_source, timer, location, now):
        repo.add(make_alarm(1))
        result = await _scheduler(repo, solar_source, timer, location, now).schedule_at(
            1, datetime(2030, 1, 1, 8, 0),
        )
        assert isinstance(result.error, InvalidTriggerTime)

    @pytest.mark.asyncio
    async def test_unknown_alarm(self, repo, solar_source, timer, location, now):
        result = await _scheduler(repo, solar_source, timer, location, now).schedule_at(
            42, now + timedelta(minutes=5),
        )
        assert isinstance(result.error, AlarmNotFound)

    @pytest.mark.asyncio
    async def test_permission_denied(self, repo, solar_source, timer, location, now):
        repo.add(make_alarm(1))
        timer.permitted = False
        result = await _scheduler(repo, solar_source, timer, location, now).schedule_at(
            1, now + timedelta(minutes=5),
        )
        assert result.permission_denied


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_clears_slot(self, repo, solar_source, timer, location, now):
        repo.add(make_alarm(1, _at(8)))
        scheduler = _scheduler(repo, solar_source, timer, location, now)
        await scheduler.schedule_next()

        result = await scheduler.cancel(1)

        assert result.ok
        assert scheduler.armed is None
        assert timer.armed == {}

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, repo, solar_source, timer, location, now):
        scheduler = _scheduler(repo, solar_source, timer, location, now)
        assert (await scheduler.cancel(7)).ok
        assert (await scheduler.cancel(7)).ok

    @pytest.mark.asyncio
    async def test_cancel_failure(self, repo, solar_source, timer, location, now):
        timer.cancel_error = TimerError("boom")
        result = await _scheduler(repo, solar_source, timer, location, now).cancel(1)
        assert isinstance(result.error, PlatformFailure)
