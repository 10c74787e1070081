"""Sensor sources feeding the challenge engine."""

import threading
from typing import Dict

from stepmaster.core import config, models

logger = config.get_logger()


class LatestValueCache:
    """Holds the most recent reading of every sensor family.

    The acquisition side calls `update` from its listeners, possibly on another
    thread, while the poll loop reads `snapshot`. Families that are not available
    always read as the zero vector.
    """

    def __init__(self, availability: models.SensorAvailability) -> None:
        """Initializes the cache with zero readings.

        Args:
            availability: Which sensor families the device provides.
        """
        self._availability = availability
        self._lock = threading.Lock()
        self._latest: Dict[models.SensorFamily, models.Vector3] = {
            family: models.Vector3() for family in models.SensorFamily
        }
        for family in models.SensorFamily:
            if family not in availability.families():
                logger.warning("%s is not available on this device", family.value)

    def update(self, family: models.SensorFamily, reading: models.Vector3) -> None:
        """Store the latest reading of a family.

        Readings of unavailable families are ignored.
        """
        if family not in self._availability.families():
            return
        with self._lock:
            self._latest[family] = reading

    def snapshot(self) -> models.SensorSample:
        """Most recent reading of every family."""
        with self._lock:
            return models.SensorSample(
                **{family.value: vector for family, vector in self._latest.items()}
            )

    def availability(self) -> models.SensorAvailability:
        """Which sensor families the device provides."""
        return self._availability


class RecordedSensorSource:
    """Replays a sensor recording one sample at a time.

    The source also acts as the clock of the replay, so hold durations follow the
    recording's timestamps instead of wall-clock time.
    """

    def __init__(self, recording: models.SensorRecording) -> None:
        """Initializes the source before the first sample.

        Args:
            recording: The recording to replay.
        """
        self.recording = recording
        self._index = -1

    def advance(self) -> bool:
        """Move to the next sample.

        Returns:
            False once the recording is exhausted.
        """
        if self._index + 1 >= len(self.recording.samples):
            return False
        self._index += 1
        return True

    def clock(self) -> float:
        """Time of the current sample, or of the first sample before it starts."""
        return self.recording.time[max(self._index, 0)]

    def snapshot(self) -> models.SensorSample:
        """The current sample, zero readings before the first sample."""
        if self._index < 0:
            return models.SensorSample()
        return self.recording.samples[self._index]

    def availability(self) -> models.SensorAvailability:
        """The sensor families present in the recording."""
        return self.recording.availability
