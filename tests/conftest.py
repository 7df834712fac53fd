"""Shared test fixtures and configuration.

Sets up environment variables before any rooster imports, and provides
in-memory fakes for the three ports plus temp-file SQLite databases.
"""

import os

# Patch env vars BEFORE any rooster imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "Europe/Paris")
os.environ.setdefault("LATITUDE", "48.8566")
os.environ.setdefault("LONGITUDE", "2.3522")

from dataclasses import replace
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from rooster.data.models import AlarmDefinition, At, Location

PARIS = ZoneInfo("Europe/Paris")

# Wednesday 15 January 2025, 07:00 in Paris
WEDNESDAY_7AM = datetime(2025, 1, 15, 7, 0, tzinfo=PARIS)


class FakeAlarmRepository:
    """In-memory AlarmRepository that records every call in `calls`."""

    def __init__(self, alarms=(), calls=None):
        self.alarms = {a.id: a for a in alarms}
        self.calls = calls if calls is not None else []

    def add(self, alarm):
        self.alarms[alarm.id] = alarm

    async def get_enabled_alarms(self):
        self.calls.append(("get_enabled_alarms",))
        return [replace(a) for a in self.alarms.values() if a.enabled]

    async def get_by_id(self, alarm_id):
        alarm = self.alarms.get(alarm_id)
        return replace(alarm) if alarm else None

    async def update_calculated_time(self, alarm_id, instant):
        self.calls.append(("update_calculated_time", alarm_id, instant))
        if alarm_id in self.alarms:
            self.alarms[alarm_id].calculated_time = instant

    async def update_enabled(self, alarm_id, enabled):
        self.calls.append(("update_enabled", alarm_id, enabled))
        if alarm_id in self.alarms:
            self.alarms[alarm_id].enabled = enabled

    async def delete(self, alarm_id):
        self.calls.append(("delete", alarm_id))
        return self.alarms.pop(alarm_id, None) is not None


class FakeTimer:
    """ExactTimerCapability that keeps armed timers in a dict."""

    def __init__(self, permitted=True, calls=None):
        self.permitted = permitted
        self.armed = {}
        self.calls = calls if calls is not None else []
        self.arm_error = None
        self.cancel_error = None

    def is_permitted(self):
        return self.permitted

    async def arm(self, alarm_id, instant, on_fire):
        self.calls.append(("arm", alarm_id, instant))
        if self.arm_error is not None:
            raise self.arm_error
        self.armed[alarm_id] = (instant, on_fire)

    async def cancel(self, alarm_id):
        self.calls.append(("cancel", alarm_id))
        if self.cancel_error is not None:
            raise self.cancel_error
        self.armed.pop(alarm_id, None)


class FakeSolarSource:
    def __init__(self, table=None):
        self.table = table
        self.requests = 0

    async def get_today_events(self, location):
        self.requests += 1
        return self.table


def make_alarm(alarm_id=1, schedule=None, enabled=True, **kwargs):
    """Build an alarm; defaults to a one-time At alarm at 08:00 on the test day."""
    if schedule is None:
        schedule = At(when=datetime(2025, 1, 15, 8, 0, tzinfo=PARIS))
    return AlarmDefinition(
        id=alarm_id,
        label=kwargs.pop("label", f"Alarm {alarm_id}"),
        schedule=schedule,
        enabled=enabled,
        **kwargs,
    )


@pytest.fixture
def now():
    return WEDNESDAY_7AM


@pytest.fixture
def location():
    return Location(48.8566, 2.3522)


@pytest.fixture
def calls():
    """Shared call log, to check ordering across repository and timer."""
    return []


@pytest.fixture
def repo(calls):
    return FakeAlarmRepository(calls=calls)


@pytest.fixture
def timer(calls):
    return FakeTimer(calls=calls)


@pytest.fixture
def solar_source():
    return FakeSolarSource()


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_rooster.db")


@pytest.fixture
def alarm_db(tmp_db_path):
    """Return an AlarmDB instance backed by a temp file."""
    from rooster.data.db import AlarmDB
    return AlarmDB(db_path=tmp_db_path)


@pytest.fixture
def astronomy_db(tmp_db_path):
    """Return an AstronomyDB instance backed by a temp file."""
    from rooster.data.db import AstronomyDB
    return AstronomyDB(db_path=tmp_db_path)
