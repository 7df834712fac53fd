"""Cached solar event adapter — implements SolarEventSource.

Answers from the last table stored in AstronomyDB. It never fetches; the
table may be days old, which the resolver tolerates by using only each
event's time of day.
"""

from __future__ import annotations

import asyncio
import logging

from rooster.data.db import AstronomyDB
from rooster.data.models import Location, SolarEventTable

logger = logging.getLogger(__name__)

# Roughly 50 km; beyond this the cached times belong to another place.
_LOCATION_TOLERANCE_DEG = 0.5


class CachedSolarEventSource:
    """AstronomyDB-backed implementation of SolarEventSource."""

    def __init__(self, db: AstronomyDB) -> None:
        self._db = db

    async def get_today_events(self, location: Location) -> SolarEventTable | None:
        cached = await asyncio.to_thread(self._db.latest)
        if cached is None:
            logger.warning("No cached solar data")
            return None

        cached_location, table = cached
        if (
            abs(cached_location.latitude - location.latitude) > _LOCATION_TOLERANCE_DEG
            or abs(cached_location.longitude - location.longitude) > _LOCATION_TOLERANCE_DEG
        ):
            logger.warning(
                "Cached solar data is for (%.4f, %.4f), requested (%.4f, %.4f)",
                cached_location.latitude, cached_location.longitude,
                location.latitude, location.longitude,
            )
        return table
