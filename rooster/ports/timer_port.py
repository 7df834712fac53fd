"""Exact timer port — the platform's precise wake-up primitive.

Adapters raise PermissionError when exact scheduling is refused and
TimerError for any other failure.
"""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, Protocol

FireCallback = Callable[[int], Awaitable[object]]


class TimerError(Exception):
    """Raised when arming or cancelling a platform timer fails."""


class ExactTimerCapability(Protocol):
    """Abstract exact-timer interface used by the scheduler."""

    def is_permitted(self) -> bool: ...

    async def arm(
        self, alarm_id: int, instant: datetime, on_fire: FireCallback
    ) -> None: ...

    async def cancel(self, alarm_id: int) -> None: ...
