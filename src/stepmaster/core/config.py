"""Configuration module for stepmaster."""

import logging
import os
import pathlib
from importlib import metadata

DIFFICULTY_PRESETS = {
    "easy": {"sensitivity": 0.7, "time_multiplier": 1.3},
    "medium": {"sensitivity": 1.0, "time_multiplier": 1.0},
    "hard": {"sensitivity": 1.3, "time_multiplier": 0.7},
}


def get_version() -> str:
    """Return stepmaster version."""
    try:
        return metadata.version("stepmaster")
    except metadata.PackageNotFoundError:
        return "Version unknown"


def get_logger() -> logging.Logger:
    """Gets the stepmaster logger."""
    logger = logging.getLogger("stepmaster")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)s - %(funcName)s - %(message)s",  # noqa: E501
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


def get_difficulty_preset(name: str) -> dict[str, float]:
    """Look up the sensitivity and time multipliers of a difficulty level.

    Args:
        name: One of 'easy', 'medium' or 'hard'.

    Returns:
        A dictionary with the 'sensitivity' and 'time_multiplier' keys.

    Raises:
        ValueError: If the difficulty level is unknown.
    """
    try:
        return dict(DIFFICULTY_PRESETS[name])
    except KeyError:
        msg = (
            f"Unknown difficulty: {name}. "
            f"Choose one of {', '.join(DIFFICULTY_PRESETS)}."
        )
        get_logger().error(msg)
        raise ValueError(msg) from None


def get_data_directory() -> pathlib.Path:
    """Directory holding the history and settings files.

    Set the STEPMASTER_HOME environment variable to override the default
    `~/.stepmaster`.
    """
    override = os.environ.get("STEPMASTER_HOME")
    if override:
        return pathlib.Path(override)
    return pathlib.Path.home() / ".stepmaster"
