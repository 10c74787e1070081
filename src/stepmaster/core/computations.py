"""This module contains the vector math used by the challenge detectors."""

import numpy as np

from stepmaster.core import models

POLL_RATE_HZ = 10


def magnitude(vector: models.Vector3) -> float:
    """Euclidean norm of a three-axis reading.

    Args:
        vector: The reading to take the norm of.

    Returns:
        The magnitude, in the reading's unit.
    """
    return float(np.linalg.norm(vector.as_array()))


def heading(vector: models.Vector3) -> float:
    """Compass heading of a magnetometer reading.

    The heading is `atan2(y, x)` expressed in degrees and normalized to [0, 360).

    Args:
        vector: The magnetometer reading.

    Returns:
        The heading in degrees.
    """
    angle = float(np.degrees(np.arctan2(vector.y, vector.x)))
    if angle < 0:
        angle += 360.0
    if angle >= 360.0:
        angle -= 360.0
    return angle


def angular_difference(first: float, second: float) -> float:
    """Difference between two headings along the shorter arc.

    Args:
        first: A heading in degrees, in [0, 360).
        second: A heading in degrees, in [0, 360).

    Returns:
        The absolute difference in degrees, in [0, 180].
    """
    diff = abs(first - second)
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def rotation_per_tick(angular_velocity: float) -> float:
    """Degrees rotated during one poll tick at the given angular velocity.

    This approximates the integral of the angular velocity by assuming a fixed
    poll rate of `POLL_RATE_HZ` instead of using the true time between samples.

    Args:
        angular_velocity: Angular velocity in rad/s. The sign is ignored.

    Returns:
        The rotation in degrees.
    """
    return float(np.degrees(abs(angular_velocity))) / POLL_RATE_HZ
