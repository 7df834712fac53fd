"""SQLite alarm repository adapter — implements AlarmRepository.

AlarmDB is synchronous; every call is moved to a worker thread with
asyncio.to_thread so the event loop never blocks on disk I/O.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from rooster.data.db import AlarmDB
from rooster.data.models import AlarmDefinition

logger = logging.getLogger(__name__)


class SqliteAlarmRepository:
    """SQLite implementation of AlarmRepository."""

    def __init__(self, db: AlarmDB) -> None:
        self._db = db

    async def get_enabled_alarms(self) -> list[AlarmDefinition]:
        return await asyncio.to_thread(self._db.get_enabled_alarms)

    async def get_by_id(self, alarm_id: int) -> AlarmDefinition | None:
        return await asyncio.to_thread(self._db.get_alarm, alarm_id)

    async def update_calculated_time(self, alarm_id: int, instant: datetime) -> None:
        updated = await asyncio.to_thread(self._db.update_calculated_time, alarm_id, instant)
        if not updated:
            logger.warning("Calculated time not stored: alarm #%d not found", alarm_id)

    async def update_enabled(self, alarm_id: int, enabled: bool) -> None:
        updated = await asyncio.to_thread(self._db.update_enabled, alarm_id, enabled)
        if not updated:
            logger.warning("Enabled flag not stored: alarm #%d not found", alarm_id)

    async def delete(self, alarm_id: int) -> bool:
        return await asyncio.to_thread(self._db.delete_alarm, alarm_id)
