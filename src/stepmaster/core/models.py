"""Internal data model."""

from enum import Enum, IntEnum
from typing import Optional

import numpy as np
import pydantic
from pydantic import BaseModel, Field, field_validator, model_validator


class SensorFamily(str, Enum):
    """Sensor families a device may provide."""

    accelerometer = "accelerometer"
    gyroscope = "gyroscope"
    magnetometer = "magnetometer"


class ChallengeType(str, Enum):
    """Kinds of challenges, BASIC is the fallback when no sensor is available."""

    RUN = "RUN"
    ROTATE = "ROTATE"
    TILT = "TILT"
    DIRECTION = "DIRECTION"
    BASIC = "BASIC"


class TiltDirection(str, Enum):
    """Directions a device can be tilted in."""

    forward = "forward"
    backward = "backward"
    right = "right"
    left = "left"


class RotationDirection(IntEnum):
    """Direction of a rotation challenge around the z axis."""

    CLOCKWISE = 1
    COUNTER_CLOCKWISE = -1
    EITHER = 0


class CompassDirection(str, Enum):
    """The eight points of the compass."""

    N = "N"
    NE = "NE"
    E = "E"
    SE = "SE"
    S = "S"
    SW = "SW"
    W = "W"
    NW = "NW"

    @property
    def heading(self) -> float:
        """Heading of the compass point in degrees, clockwise from north."""
        return COMPASS_HEADINGS[self]


COMPASS_HEADINGS = {
    direction: 45.0 * index for index, direction in enumerate(CompassDirection)
}


class SoundEvent(str, Enum):
    """Discrete events that may be signalled to the user."""

    CHALLENGE_START = "challengeStart"
    CHALLENGE_COMPLETE = "challengeComplete"
    CHALLENGE_FAIL = "challengeFail"
    STEP_DETECTED = "stepDetected"
    TILT_DETECTED = "tiltDetected"
    DIRECTION_MATCHED = "directionMatched"
    UI_CLICK = "uiClick"


class Vector3(BaseModel):
    """A single three-axis reading in the sensor's native unit."""

    model_config = pydantic.ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def as_array(self) -> np.ndarray:
        """Returns the reading as a 3-element array."""
        return np.array([self.x, self.y, self.z], dtype=float)


class SensorSample(BaseModel):
    """Latest reading of every sensor family.

    Families that are not available on the device read as the zero vector.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    accelerometer: Vector3 = Field(default_factory=Vector3)
    gyroscope: Vector3 = Field(default_factory=Vector3)
    magnetometer: Vector3 = Field(default_factory=Vector3)


class SensorAvailability(BaseModel):
    """Which sensor families the device provides."""

    accelerometer: bool = False
    gyroscope: bool = False
    magnetometer: bool = False

    def families(self) -> set[SensorFamily]:
        """Returns the set of available sensor families."""
        return {family for family in SensorFamily if getattr(self, family.value)}


class ChallengeTemplate(BaseModel):
    """A catalog defined challenge.

    Only the goal parameters of the template's type are set, the others stay None.

    Attributes:
        type: The kind of challenge, selects the detector used for verification.
        instruction: Text shown to the user.
        hint: Additional text shown to the user.
        count: Number of steps required by a RUN challenge.
        intensity: Nominal intensity of a RUN challenge, informational only.
        degrees: Rotation required by a ROTATE challenge, in degrees.
        direction: Rotation direction of a ROTATE challenge.
        directions: Ordered tilt directions of a TILT challenge.
        duration: Seconds the first tilt direction must be held for.
        heading: Compass point a DIRECTION challenge must face.
        tolerance: Accepted deviation from the heading in degrees. Overrides the
            adjusted default tolerance when set.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    type: ChallengeType
    instruction: str
    hint: str = ""
    count: Optional[int] = Field(default=None, ge=1)
    intensity: Optional[float] = Field(default=None, gt=0)
    degrees: Optional[float] = Field(default=None, gt=0)
    direction: Optional[RotationDirection] = None
    directions: Optional[tuple[TiltDirection, ...]] = None
    duration: Optional[float] = Field(default=None, gt=0)
    heading: Optional[CompassDirection] = None
    tolerance: Optional[float] = Field(default=None, gt=0)

    @field_validator("directions")
    def validate_directions_not_empty(
        cls, v: Optional[tuple[TiltDirection, ...]]
    ) -> Optional[tuple[TiltDirection, ...]]:
        """Validate that a tilt sequence contains at least one direction.

        Args:
            cls: The class.
            v: The tilt directions to validate.

        Returns:
            v: The tilt directions if they are valid.

        Raises:
            ValueError: If the sequence is empty.
        """
        if v is not None and len(v) == 0:
            raise ValueError("directions must not be empty")
        return v

    @model_validator(mode="after")
    def validate_hold_has_direction(self) -> "ChallengeTemplate":
        """Validate that a hold duration comes with the direction to hold.

        Raises:
            ValueError: If duration is set without directions.
        """
        if self.duration is not None and not self.directions:
            raise ValueError("duration requires at least one tilt direction")
        return self


class Thresholds(BaseModel):
    """Detection thresholds.

    Attributes:
        step_magnitude: Acceleration magnitude a step must rise above.
        rotation_speed: Angular velocity, in rad/s, a rotation must exceed.
        tilt_angle: Angular velocity, in rad/s, a tilt must exceed.
        direction_tolerance: Accepted deviation from a heading, in degrees.
    """

    model_config = pydantic.ConfigDict(frozen=True)

    step_magnitude: float = 1.2
    rotation_speed: float = 0.5
    tilt_angle: float = 0.5
    direction_tolerance: float = 20.0


BASE_THRESHOLDS = Thresholds()


class VerificationResult(BaseModel):
    """Verdict of a single verification tick."""

    model_config = pydantic.ConfigDict(frozen=True)

    completed: bool
    performance: float = Field(ge=0.0, le=1.0)

    @classmethod
    def neutral(cls) -> "VerificationResult":
        """Non-completed result without progress."""
        return cls(completed=False, performance=0.0)


class ChallengeOutcome(BaseModel):
    """How a single challenge of a session ended."""

    model_config = pydantic.ConfigDict(frozen=True)

    challenge: ChallengeTemplate
    completed: bool
    score: int = Field(ge=0)
    skipped: bool = False
    time_left: int = Field(default=0, ge=0)


class SessionRecord(BaseModel):
    """A finished session as handed to the session store."""

    model_config = pydantic.ConfigDict(frozen=True)

    date: str
    score: int
    challenges: tuple[ChallengeOutcome, ...]
    total_challenges: int

    @model_validator(mode="after")
    def validate_total(self) -> "SessionRecord":
        """Validate that total_challenges matches the recorded outcomes.

        Raises:
            ValueError: If the counts differ.
        """
        if self.total_challenges != len(self.challenges):
            raise ValueError("total_challenges must match the number of challenges")
        return self


class DifficultySettings(BaseModel):
    """Persisted user settings."""

    sensitivity: float = Field(default=1.0, gt=0)
    time_multiplier: float = Field(default=1.0, gt=0)
    sound_enabled: bool = True


class SensorRecording(BaseModel):
    """A recorded sensor stream that can be replayed tick by tick.

    Attributes:
        time: Time of every sample in seconds, strictly increasing.
        samples: The sensor samples, one per time entry.
        availability: The sensor families present in the recording.
    """

    time: list[float]
    samples: list[SensorSample]
    availability: SensorAvailability

    @field_validator("time")
    def validate_time(cls, v: list[float]) -> list[float]:
        """Validate the time entries.

        Args:
            cls: The class.
            v: The time entries to validate.

        Returns:
            v: The time entries if they are valid.

        Raises:
            ValueError: If the time is empty or not strictly increasing.
        """
        if not v:
            raise ValueError("Time cannot be empty")
        if any(later <= earlier for earlier, later in zip(v, v[1:])):
            raise ValueError("Time must be unique and sorted")
        return v

    @model_validator(mode="after")
    def validate_lengths(self) -> "SensorRecording":
        """Validate that there is one sample per time entry.

        Raises:
            ValueError: If the number of samples and time entries differ.
        """
        if len(self.samples) != len(self.time):
            raise ValueError("samples and time must have the same length")
        return self
