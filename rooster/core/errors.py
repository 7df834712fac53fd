"""Error taxonomy shared by the resolver, scheduler and lifecycle."""

from __future__ import annotations


class RoosterError(Exception):
    """Base class for all Rooster core errors."""


class ResolutionAmbiguity(RoosterError):
    """An alarm could not be resolved to a trustworthy instant.

    Raised when a required solar event is missing from the table. The alarm
    is skipped for the current pass only.
    """


class ValidationError(RoosterError):
    """A malformed alarm definition was rejected at write time."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


class IllegalTransition(RoosterError):
    """A lifecycle transition was requested from the wrong state."""


class ScheduleError(RoosterError):
    """Base class for failures while arming or cancelling a timer."""


class PermissionDenied(ScheduleError):
    """The platform refused exact-timer scheduling."""


class PlatformFailure(ScheduleError):
    """The timer or repository call failed unexpectedly."""


class InvalidTriggerTime(ScheduleError):
    """An explicit trigger instant was not in the future."""


class AlarmNotFound(ScheduleError):
    """The requested alarm id does not exist in the repository."""
