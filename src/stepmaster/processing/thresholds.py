"""Scale detection thresholds by the difficulty sensitivity."""

from stepmaster.core import config, models

logger = config.get_logger()


def adjust_thresholds(
    base: models.Thresholds, sensitivity_multiplier: float = 1.0
) -> models.Thresholds:
    """Apply a sensitivity multiplier to detection thresholds.

    Magnitude, speed and angle thresholds are divided by the multiplier while the
    direction tolerance is multiplied by it, so a higher sensitivity makes every
    challenge easier to complete.

    Args:
        base: The unscaled thresholds.
        sensitivity_multiplier: The sensitivity of the current difficulty setting.
            Must be greater than 0.

    Returns:
        The adjusted thresholds.

    Raises:
        ValueError: If the multiplier is not greater than 0.
    """
    if sensitivity_multiplier <= 0:
        msg = "Sensitivity multiplier must be greater than 0."
        logger.error(msg)
        raise ValueError(msg)

    return models.Thresholds(
        step_magnitude=base.step_magnitude / sensitivity_multiplier,
        rotation_speed=base.rotation_speed / sensitivity_multiplier,
        tilt_angle=base.tilt_angle / sensitivity_multiplier,
        direction_tolerance=base.direction_tolerance * sensitivity_multiplier,
    )
