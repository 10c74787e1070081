"""Notifiers that signal discrete challenge events to the user."""

from typing import Callable, List, Optional

from stepmaster.core import config, models, ports

logger = config.get_logger()


def safe_notify(
    notifier: Optional[ports.Notifier], event: models.SoundEvent
) -> None:
    """Send an event without letting a failing notifier interrupt the caller.

    Args:
        notifier: The notifier to send the event to. Nothing happens when None.
        event: The event to signal.
    """
    if notifier is None:
        return
    try:
        notifier.notify(event)
    except Exception as exc_info:
        logger.error("Could not signal %s: %s", event.value, exc_info)


class SoundNotifier:
    """Plays a sound for every event while sounds are enabled.

    Attributes:
        play: Callable that plays the sound of an event.
        enabled: Whether sounds are played.
    """

    def __init__(
        self, play: Callable[[models.SoundEvent], None], enabled: bool = True
    ) -> None:
        """Initializes the notifier.

        Args:
            play: Callable that plays the sound of an event. Playback errors are
                logged and dropped.
            enabled: Whether sounds are played, usually taken from the stored
                settings.
        """
        self.play = play
        self.enabled = enabled

    def notify(self, event: models.SoundEvent) -> None:
        """Play the sound of an event."""
        if not self.enabled:
            return
        try:
            self.play(event)
        except Exception as exc_info:
            logger.error("Failed to play sound %s: %s", event.value, exc_info)


class RecordingNotifier:
    """Keeps every event it receives, in order."""

    def __init__(self) -> None:
        """Start without events."""
        self.events: List[models.SoundEvent] = []

    def notify(self, event: models.SoundEvent) -> None:
        """Store the event."""
        self.events.append(event)

    def count(self, event: models.SoundEvent) -> int:
        """Number of times an event was received."""
        return self.events.count(event)
