"""Decide whether the active challenge has been completed.

Each challenge type has a detector that consumes one sensor sample per poll tick,
updates the tracking state of the active challenge and returns a verdict together
with a performance score in [0, 1]. Detectors never raise on missing data, a late
or missing sample simply results in lower progress.
"""

import abc
import time
from typing import Callable, Optional, Sequence

from stepmaster import notifications
from stepmaster.core import computations, config, models, ports
from stepmaster.processing import tracking

logger = config.get_logger()

SHAKE_MAGNITUDE = 2.5
SHAKE_PERFORMANCE = 0.7
DIRECTION_HOLD_SECONDS = 2.0


def classify_tilt(
    gyroscope: models.Vector3, tilt_angle: float
) -> Optional[models.TiltDirection]:
    """Classify a gyroscope reading into a tilt direction.

    The x axis takes priority over the y axis.

    Args:
        gyroscope: The gyroscope reading.
        tilt_angle: The angular velocity an axis must exceed.

    Returns:
        The tilt direction, or None if neither axis exceeds the threshold.
    """
    if gyroscope.x > tilt_angle:
        return models.TiltDirection.forward
    if gyroscope.x < -tilt_angle:
        return models.TiltDirection.backward
    if gyroscope.y > tilt_angle:
        return models.TiltDirection.right
    if gyroscope.y < -tilt_angle:
        return models.TiltDirection.left
    return None


def match_subsequence(
    observed: Sequence[models.TiltDirection],
    required: Sequence[models.TiltDirection],
) -> int:
    """Number of required directions found, in order, within the observed ones.

    Other directions may occur between the required ones.

    Args:
        observed: The recorded tilt transitions.
        required: The ordered directions the challenge asks for.

    Returns:
        How many of the required directions have been matched.
    """
    index = 0
    for direction in observed:
        if index == len(required):
            break
        if direction == required[index]:
            index += 1
    return index


class AbstractDetector(abc.ABC):
    """Abstract class defining the interface of the challenge detectors."""

    @abc.abstractmethod
    def verify(
        self,
        challenge: models.ChallengeTemplate,
        sample: models.SensorSample,
        thresholds: models.Thresholds,
        state: tracking.EngineState,
        *,
        now: float,
        notifier: Optional[ports.Notifier] = None,
    ) -> models.VerificationResult:
        """Process one sample of the active challenge.

        The function must update the tracking state in place and return the verdict
        for the current tick.
        """
        pass


class RunDetector(AbstractDetector):
    """Counts steps as rising edges of the acceleration magnitude.

    A step is counted when the magnitude rises above the step threshold after having
    been at or below it on the previous tick. A peak that stays above the threshold
    for several ticks counts once.
    """

    def verify(
        self,
        challenge: models.ChallengeTemplate,
        sample: models.SensorSample,
        thresholds: models.Thresholds,
        state: tracking.EngineState,
        *,
        now: float,
        notifier: Optional[ports.Notifier] = None,
    ) -> models.VerificationResult:
        """Count a step on a rising edge and compare the count with the goal."""
        magnitude = computations.magnitude(sample.accelerometer)
        threshold = thresholds.step_magnitude
        is_step = magnitude > threshold and state.last_magnitude <= threshold
        state.last_magnitude = magnitude

        if is_step:
            state.step_count += 1
            logger.debug(
                "Step %d detected at magnitude %.3f", state.step_count, magnitude
            )
            notifications.safe_notify(notifier, models.SoundEvent.STEP_DETECTED)

        if challenge.count is None:
            return models.VerificationResult.neutral()

        if state.step_count >= challenge.count:
            performance = min(1.0, state.step_count / challenge.count)
            state.step_count = 0
            return models.VerificationResult(completed=True, performance=performance)

        return models.VerificationResult(
            completed=False, performance=state.step_count / challenge.count
        )


class RotateDetector(AbstractDetector):
    """Accumulates rotation around the z axis.

    The angular velocity of every tick that exceeds the rotation speed threshold in
    the requested direction is converted to the degrees rotated during one tick.
    Turning the wrong way never counts towards a clockwise or counter-clockwise
    goal. Only a goal in either direction uses the absolute angular velocity.
    Overshooting the goal lowers the performance.
    """

    def verify(
        self,
        challenge: models.ChallengeTemplate,
        sample: models.SensorSample,
        thresholds: models.Thresholds,
        state: tracking.EngineState,
        *,
        now: float,
        notifier: Optional[ports.Notifier] = None,
    ) -> models.VerificationResult:
        """Accumulate the rotation of this tick and compare it with the goal."""
        z = sample.gyroscope.z
        if challenge.direction == models.RotationDirection.CLOCKWISE:
            axis_value = z
        elif challenge.direction == models.RotationDirection.COUNTER_CLOCKWISE:
            axis_value = -z
        else:
            axis_value = abs(z)

        if axis_value > thresholds.rotation_speed:
            state.rotation_degrees += computations.rotation_per_tick(axis_value)

        if challenge.degrees is None:
            return models.VerificationResult.neutral()

        if state.rotation_degrees >= challenge.degrees:
            performance = min(1.0, challenge.degrees / state.rotation_degrees)
            logger.debug("Rotation of %.1f degrees reached.", state.rotation_degrees)
            state.rotation_degrees = 0.0
            return models.VerificationResult(completed=True, performance=performance)

        return models.VerificationResult(
            completed=False,
            performance=min(1.0, state.rotation_degrees / challenge.degrees),
        )


class TiltDetector(AbstractDetector):
    """Matches tilt transitions against a hold duration or an ordered sequence.

    A transition is recorded whenever the classified tilt differs from the last
    recorded one. Templates with a duration complete once the first direction has
    been held long enough. Templates with directions complete once the directions
    appear, in order, among the recorded transitions. Both checks run on every tick.
    """

    def verify(
        self,
        challenge: models.ChallengeTemplate,
        sample: models.SensorSample,
        thresholds: models.Thresholds,
        state: tracking.EngineState,
        *,
        now: float,
        notifier: Optional[ports.Notifier] = None,
    ) -> models.VerificationResult:
        """Record the tilt of this tick and check both completion modes."""
        tilt = classify_tilt(sample.gyroscope, thresholds.tilt_angle)
        transitions = state.tilt_transitions
        if tilt is not None and (not transitions or transitions[-1] != tilt):
            transitions.append(tilt)
            logger.debug("Tilt %s detected.", tilt.value)
            notifications.safe_notify(notifier, models.SoundEvent.TILT_DETECTED)

        directions = challenge.directions
        if challenge.duration is not None and directions and tilt == directions[0]:
            if state.tilt_hold_started_at is None:
                state.tilt_hold_started_at = now
            else:
                state.tilt_held_seconds = now - state.tilt_hold_started_at
                if state.tilt_held_seconds >= challenge.duration:
                    self._clear(state)
                    return models.VerificationResult(completed=True, performance=1.0)
        else:
            state.tilt_hold_started_at = None
            state.tilt_held_seconds = 0.0

        matched = 0
        if directions:
            matched = match_subsequence(transitions, directions)
            if matched == len(directions):
                self._clear(state)
                return models.VerificationResult(completed=True, performance=1.0)

        if challenge.duration is not None:
            progress = state.tilt_held_seconds / challenge.duration
        elif directions:
            progress = matched / len(directions)
        else:
            progress = 0.0
        return models.VerificationResult(
            completed=False, performance=min(1.0, max(0.0, progress))
        )

    @staticmethod
    def _clear(state: tracking.EngineState) -> None:
        state.tilt_transitions.clear()
        state.tilt_hold_started_at = None
        state.tilt_held_seconds = 0.0


class DirectionDetector(AbstractDetector):
    """Checks that the device keeps facing a compass point.

    The heading has to stay within the tolerance for `DIRECTION_HOLD_SECONDS` of
    clock time. Losing the match restarts the hold.
    """

    def verify(
        self,
        challenge: models.ChallengeTemplate,
        sample: models.SensorSample,
        thresholds: models.Thresholds,
        state: tracking.EngineState,
        *,
        now: float,
        notifier: Optional[ports.Notifier] = None,
    ) -> models.VerificationResult:
        """Compare the heading with the target and track how long it matched."""
        if challenge.heading is None:
            return models.VerificationResult.neutral()

        heading = computations.heading(sample.magnetometer)
        diff = computations.angular_difference(heading, challenge.heading.heading)
        tolerance = (
            challenge.tolerance
            if challenge.tolerance is not None
            else thresholds.direction_tolerance
        )

        if diff <= tolerance:
            if not state.direction_matched or state.direction_matched_at is None:
                state.direction_matched = True
                state.direction_matched_at = now
                logger.debug(
                    "Heading %.1f matches %s.", heading, challenge.heading.value
                )
                notifications.safe_notify(
                    notifier, models.SoundEvent.DIRECTION_MATCHED
                )
            elif now - state.direction_matched_at >= DIRECTION_HOLD_SECONDS:
                state.direction_matched = False
                state.direction_matched_at = None
                return models.VerificationResult(
                    completed=True, performance=1.0 - diff / tolerance
                )
        else:
            state.direction_matched = False
            state.direction_matched_at = None

        return models.VerificationResult(
            completed=False, performance=max(0.0, 1.0 - diff / 180.0)
        )


class ShakeDetector(AbstractDetector):
    """Fallback detector, completes as soon as the device is shaken hard enough."""

    def verify(
        self,
        challenge: models.ChallengeTemplate,
        sample: models.SensorSample,
        thresholds: models.Thresholds,
        state: tracking.EngineState,
        *,
        now: float,
        notifier: Optional[ports.Notifier] = None,
    ) -> models.VerificationResult:
        """Compare the acceleration magnitude with the shake threshold."""
        if computations.magnitude(sample.accelerometer) > SHAKE_MAGNITUDE:
            return models.VerificationResult(
                completed=True, performance=SHAKE_PERFORMANCE
            )
        return models.VerificationResult.neutral()


FALLBACK_DETECTOR = ShakeDetector()

DETECTORS: dict[models.ChallengeType, AbstractDetector] = {
    models.ChallengeType.RUN: RunDetector(),
    models.ChallengeType.ROTATE: RotateDetector(),
    models.ChallengeType.TILT: TiltDetector(),
    models.ChallengeType.DIRECTION: DirectionDetector(),
    models.ChallengeType.BASIC: FALLBACK_DETECTOR,
}

_missing_detectors = set(models.ChallengeType).difference(DETECTORS)
if _missing_detectors:
    raise ImportError(
        f"No detector registered for: {sorted(t.value for t in _missing_detectors)}"
    )


def verify(
    challenge: Optional[models.ChallengeTemplate],
    sample: Optional[models.SensorSample],
    thresholds: models.Thresholds,
    state: tracking.EngineState,
    *,
    now: Optional[float] = None,
    notifier: Optional[ports.Notifier] = None,
) -> models.VerificationResult:
    """Verify the challenge against one sensor sample.

    Args:
        challenge: The active challenge. None yields a neutral result.
        sample: The latest sensor sample. None yields a neutral result.
        thresholds: Detection thresholds, already adjusted for the difficulty.
        state: Tracking state owned by the active challenge, updated in place.
        now: Clock time in seconds, used for hold durations. Defaults to
            `time.monotonic()`.
        notifier: Receives step, tilt and direction events.

    Returns:
        Whether the challenge is completed and the current performance.
    """
    if challenge is None or sample is None:
        return models.VerificationResult.neutral()

    detector = DETECTORS.get(challenge.type, FALLBACK_DETECTOR)
    return detector.verify(
        challenge,
        sample,
        thresholds,
        state,
        now=time.monotonic() if now is None else now,
        notifier=notifier,
    )


class VerificationEngine:
    """Owns the tracking state of the active challenge and verifies it.

    The engine is not safe to share between threads. Callers running with true
    parallelism must serialize access to it.

    Attributes:
        state: Tracking state of the active challenge.
        challenge: The active challenge, None between challenges.
    """

    def __init__(
        self,
        notifier: Optional[ports.Notifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the engine without an active challenge.

        Args:
            notifier: Receives step, tilt and direction events.
            clock: Returns the current time in seconds.
        """
        self.notifier = notifier
        self.clock = clock
        self.state = tracking.EngineState()
        self.challenge: Optional[models.ChallengeTemplate] = None

    def start(self, challenge: models.ChallengeTemplate) -> None:
        """Make a challenge active with freshly reset tracking."""
        tracking.reset_challenge_tracking(self.state)
        self.challenge = challenge

    def stop(self) -> None:
        """Deactivate the current challenge and reset tracking."""
        tracking.reset_challenge_tracking(self.state)
        self.challenge = None

    def verify(
        self,
        sample: Optional[models.SensorSample],
        thresholds: models.Thresholds = models.BASE_THRESHOLDS,
    ) -> models.VerificationResult:
        """Verify the active challenge against a sample."""
        return verify(
            self.challenge,
            sample,
            thresholds,
            self.state,
            now=self.clock(),
            notifier=self.notifier,
        )
