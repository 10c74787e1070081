"""Interfaces of the collaborators the challenge engine talks to."""

from typing import Protocol

from stepmaster.core import models


class SensorSource(Protocol):
    """Provides the latest sensor readings."""

    def snapshot(self) -> models.SensorSample:
        """Most recent reading of every family, zero vectors for missing ones."""
        ...

    def availability(self) -> models.SensorAvailability:
        """Which sensor families the device provides."""
        ...


class Notifier(Protocol):
    """Fire-and-forget sink for discrete events."""

    def notify(self, event: models.SoundEvent) -> None:
        """Signal an event to the user."""
        ...


class SessionStore(Protocol):
    """Append-only store of finished sessions."""

    def save_session(self, record: models.SessionRecord) -> None:
        """Persist a finished session."""
        ...
