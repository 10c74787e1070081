"""Per-challenge detector state."""

from dataclasses import dataclass, field
from typing import List, Optional

from stepmaster.core import config, models

logger = config.get_logger()


@dataclass
class EngineState:
    """Mutable tracking variables of the active challenge.

    A single instance is owned by the active challenge. It must be reset with
    `reset_challenge_tracking` before a new challenge starts, otherwise progress of
    the previous challenge leaks into the next one.

    Attributes:
        last_magnitude: Acceleration magnitude of the previous tick.
        step_count: Number of steps detected so far.
        rotation_degrees: Accumulated rotation in degrees.
        tilt_transitions: Tilt directions in the order they were first observed,
            without consecutive repeats.
        tilt_hold_started_at: Clock time at which the held tilt was first matched.
        tilt_held_seconds: Time the tilt has been held for.
        direction_matched: Whether the heading currently matches the target.
        direction_matched_at: Clock time at which the heading started matching.
    """

    last_magnitude: float = 0.0
    step_count: int = 0
    rotation_degrees: float = 0.0
    tilt_transitions: List[models.TiltDirection] = field(default_factory=list)
    tilt_hold_started_at: Optional[float] = None
    tilt_held_seconds: float = 0.0
    direction_matched: bool = False
    direction_matched_at: Optional[float] = None


def reset_challenge_tracking(state: EngineState) -> None:
    """Clear every tracking variable of the state in place.

    Args:
        state: The state to reset.
    """
    state.last_magnitude = 0.0
    state.step_count = 0
    state.rotation_degrees = 0.0
    state.tilt_transitions.clear()
    state.tilt_hold_started_at = None
    state.tilt_held_seconds = 0.0
    state.direction_matched = False
    state.direction_matched_at = None
    logger.debug("Challenge tracking reset.")
