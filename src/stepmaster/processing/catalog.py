"""Catalog of challenge templates and random challenge generation."""

import random
from typing import AbstractSet, Optional

from stepmaster.core import config, models

logger = config.get_logger()

FALLBACK_CHALLENGE = models.ChallengeTemplate(
    type=models.ChallengeType.BASIC,
    instruction="Shake your device",
    hint="No advanced sensors detected, just shake the device",
)

CHALLENGES: dict[models.ChallengeType, tuple[models.ChallengeTemplate, ...]] = {
    models.ChallengeType.RUN: (
        models.ChallengeTemplate(
            type=models.ChallengeType.RUN,
            instruction="Run in place for 3 seconds",
            hint="Move up and down quickly",
            count=3,
            intensity=1.5,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.RUN,
            instruction="Take 5 steps forward",
            hint="Step forward with your device",
            count=5,
            intensity=1.2,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.RUN,
            instruction="Jump 3 times",
            hint="Quick vertical movements",
            count=3,
            intensity=2.0,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.RUN,
            instruction="March in place for 5 seconds",
            hint="Raise knees high",
            count=5,
            intensity=1.3,
        ),
    ),
    models.ChallengeType.ROTATE: (
        models.ChallengeTemplate(
            type=models.ChallengeType.ROTATE,
            instruction="Rotate device 360° clockwise",
            hint="Turn your device in a full circle",
            degrees=360,
            direction=models.RotationDirection.CLOCKWISE,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.ROTATE,
            instruction="Rotate device 360° counter-clockwise",
            hint="Turn your device in a full circle in the opposite direction",
            degrees=360,
            direction=models.RotationDirection.COUNTER_CLOCKWISE,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.ROTATE,
            instruction="Rotate device 180° and back",
            hint="Turn halfway around and return",
            degrees=180,
            direction=models.RotationDirection.EITHER,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.ROTATE,
            instruction="Spin around with your device",
            hint="Turn your whole body",
            degrees=360,
            direction=models.RotationDirection.EITHER,
        ),
    ),
    models.ChallengeType.TILT: (
        models.ChallengeTemplate(
            type=models.ChallengeType.TILT,
            instruction="Tilt device left then right",
            hint="Tilt from side to side",
            directions=(models.TiltDirection.left, models.TiltDirection.right),
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.TILT,
            instruction="Tilt device forward then backward",
            hint="Tilt forward and backward",
            directions=(models.TiltDirection.forward, models.TiltDirection.backward),
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.TILT,
            instruction="Tilt device in a circle",
            hint="Move in a circular pattern",
            directions=(
                models.TiltDirection.left,
                models.TiltDirection.forward,
                models.TiltDirection.right,
                models.TiltDirection.backward,
            ),
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.TILT,
            instruction="Hold device tilted left for 3 seconds",
            hint="Keep it steady",
            directions=(models.TiltDirection.left,),
            duration=3,
        ),
    ),
    models.ChallengeType.DIRECTION: (
        models.ChallengeTemplate(
            type=models.ChallengeType.DIRECTION,
            instruction="Face North",
            hint="Use the compass to find North",
            heading=models.CompassDirection.N,
            tolerance=20,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.DIRECTION,
            instruction="Face East",
            hint="Use the compass to find East",
            heading=models.CompassDirection.E,
            tolerance=20,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.DIRECTION,
            instruction="Face South",
            hint="Use the compass to find South",
            heading=models.CompassDirection.S,
            tolerance=20,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.DIRECTION,
            instruction="Face West",
            hint="Use the compass to find West",
            heading=models.CompassDirection.W,
            tolerance=20,
        ),
        models.ChallengeTemplate(
            type=models.ChallengeType.DIRECTION,
            instruction="Rotate slowly to face South-East",
            hint="Between South and East",
            heading=models.CompassDirection.SE,
            tolerance=20,
        ),
    ),
}

REQUIRED_FAMILY = {
    models.ChallengeType.RUN: models.SensorFamily.accelerometer,
    models.ChallengeType.ROTATE: models.SensorFamily.gyroscope,
    models.ChallengeType.TILT: models.SensorFamily.gyroscope,
    models.ChallengeType.DIRECTION: models.SensorFamily.magnetometer,
}

TIME_LIMITS = {
    models.ChallengeType.RUN: 10,
    models.ChallengeType.ROTATE: 8,
    models.ChallengeType.TILT: 6,
    models.ChallengeType.DIRECTION: 8,
    models.ChallengeType.BASIC: 15,
}


def eligible_types(
    available_families: AbstractSet[models.SensorFamily],
) -> list[models.ChallengeType]:
    """Challenge types that can be verified with the available sensors.

    Args:
        available_families: The sensor families the device provides.

    Returns:
        The eligible types in declaration order.
    """
    return [
        challenge_type
        for challenge_type, family in REQUIRED_FAMILY.items()
        if family in available_families
    ]


def generate_challenge(
    available_families: AbstractSet[models.SensorFamily],
    rng: Optional[random.Random] = None,
) -> models.ChallengeTemplate:
    """Pick a random challenge the device can verify.

    A type is drawn uniformly among the eligible ones, then a template is drawn
    uniformly among that type's templates. When no sensor family is available the
    fallback shake challenge is returned.

    Args:
        available_families: The sensor families the device provides.
        rng: Random number generator, pass a seeded instance for reproducible draws.
            Defaults to the module level generator.

    Returns:
        The selected challenge template.
    """
    chooser = rng if rng is not None else random
    types = eligible_types(available_families)
    if not types:
        logger.warning("No sensors available, falling back to a shake challenge.")
        return FALLBACK_CHALLENGE

    selected_type = chooser.choice(types)
    challenge = chooser.choice(CHALLENGES[selected_type])
    logger.debug("Generated challenge: %s", challenge.instruction)
    return challenge


def list_templates(
    challenge_type: Optional[models.ChallengeType] = None,
) -> list[models.ChallengeTemplate]:
    """All catalog templates, optionally restricted to a single type."""
    if challenge_type == models.ChallengeType.BASIC:
        return [FALLBACK_CHALLENGE]
    if challenge_type is not None:
        return list(CHALLENGES[challenge_type])
    return [template for templates in CHALLENGES.values() for template in templates]


def get_template(
    challenge_type: models.ChallengeType, index: int
) -> models.ChallengeTemplate:
    """Select a catalog template deterministically.

    Args:
        challenge_type: The type of the template.
        index: Position of the template within its type.

    Returns:
        The template.

    Raises:
        ValueError: If the index is out of range for the type.
    """
    templates = list_templates(challenge_type)
    if not 0 <= index < len(templates):
        msg = (
            f"Invalid template index {index} for {challenge_type.value}. "
            f"Choose a value between 0 and {len(templates) - 1}."
        )
        logger.error(msg)
        raise ValueError(msg)
    return templates[index]


def time_limit(
    challenge_type: models.ChallengeType, time_multiplier: float = 1.0
) -> int:
    """Seconds allowed to complete a challenge of the given type.

    Args:
        challenge_type: The type of the challenge.
        time_multiplier: Difficulty dependent scaling of the base time limit.

    Returns:
        The time limit in whole seconds, at least 1.
    """
    return max(1, round(TIME_LIMITS[challenge_type] * time_multiplier))
