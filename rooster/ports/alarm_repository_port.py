"""Alarm repository port — abstract interface for alarm persistence.

Core modules depend on this protocol, never on a specific storage backend.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from rooster.data.models import AlarmDefinition


class AlarmRepository(Protocol):
    """Abstract alarm storage used by the scheduler and lifecycle."""

    async def get_enabled_alarms(self) -> list[AlarmDefinition]: ...

    async def get_by_id(self, alarm_id: int) -> AlarmDefinition | None: ...

    async def update_calculated_time(
        self, alarm_id: int, instant: datetime
    ) -> None: ...

    async def update_enabled(self, alarm_id: int, enabled: bool) -> None: ...

    async def delete(self, alarm_id: int) -> bool: ...
