"""Solar event port — abstract source of today's solar instants.

The source may answer from a cache that is several days old; timeouts and
fallbacks are its own responsibility.
"""

from __future__ import annotations

from typing import Protocol

from rooster.data.models import Location, SolarEventTable


class SolarEventSource(Protocol):
    """Abstract solar data interface used by the scheduler."""

    async def get_today_events(
        self, location: Location
    ) -> SolarEventTable | None: ...
