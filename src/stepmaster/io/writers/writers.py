"""Module containing the stores that persist sessions and settings to files."""

import json
import pathlib
from typing import List, Union

import polars as pl
import pydantic

from stepmaster.core import config, exceptions, models

VALID_FILE_TYPES = (".csv", ".parquet")
MAX_HISTORY_ENTRIES = 50

logger = config.get_logger()

_history_adapter = pydantic.TypeAdapter(List[models.SessionRecord])


class HistoryStore:
    """Stores finished sessions in a JSON file.

    Only the most recent `max_entries` sessions are kept.

    Attributes:
        path: The JSON file holding the history.
        max_entries: Maximum number of sessions kept.
    """

    def __init__(
        self,
        path: Union[pathlib.Path, str],
        max_entries: int = MAX_HISTORY_ENTRIES,
    ) -> None:
        """Initializes the store.

        Args:
            path: The JSON file holding the history. It is created on first save.
            max_entries: Maximum number of sessions kept. Must be at least 1.

        Raises:
            ValueError: If max_entries is smaller than 1.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1.")
        self.path = pathlib.Path(path)
        self.max_entries = max_entries

    def save_session(self, record: models.SessionRecord) -> None:
        """Append a session to the history.

        Args:
            record: The finished session.

        Raises:
            PersistenceError: If the existing history cannot be read or the file
                cannot be written.
        """
        history = self._load()
        history.append(record)
        trimmed = history[-self.max_entries :]

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(_history_adapter.dump_json(trimmed, indent=2))
        except OSError as e:
            raise exceptions.PersistenceError(
                f"Could not save session to {self.path}: {e}"
            ) from e
        logger.info("Session saved in: %s", self.path)

    def get_history(self) -> List[models.SessionRecord]:
        """Read the stored sessions.

        Returns:
            The stored sessions, oldest first. An empty list if the history does
            not exist or cannot be read.
        """
        try:
            return self._load()
        except exceptions.PersistenceError:
            return []

    def clear_history(self) -> None:
        """Remove every stored session.

        Raises:
            PersistenceError: If the history file cannot be removed.
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise exceptions.PersistenceError(
                f"Could not clear history {self.path}: {e}"
            ) from e
        logger.info("History cleared.")

    def export_history(self, output: pathlib.Path) -> None:
        """Save the stored sessions as a csv or parquet file.

        Each row holds one challenge outcome together with its session's date and
        score.

        Args:
            output: The path and file name of the export, as either a .csv or a
                .parquet file.
        """
        validate_output(output)
        output.parent.mkdir(parents=True, exist_ok=True)

        rows = [
            {
                "session_date": record.date,
                "session_score": record.score,
                "type": outcome.challenge.type.value,
                "instruction": outcome.challenge.instruction,
                "completed": outcome.completed,
                "skipped": outcome.skipped,
                "score": outcome.score,
                "time_left": outcome.time_left,
            }
            for record in self.get_history()
            for outcome in record.challenges
        ]
        history_dataframe = pl.DataFrame(
            rows,
            schema={
                "session_date": pl.String,
                "session_score": pl.Int64,
                "type": pl.String,
                "instruction": pl.String,
                "completed": pl.Boolean,
                "skipped": pl.Boolean,
                "score": pl.Int64,
                "time_left": pl.Int64,
            },
        )

        if output.suffix == ".csv":
            history_dataframe.write_csv(output, separator=",")
        elif output.suffix == ".parquet":
            history_dataframe.write_parquet(output)

        logger.info("History exported to: %s", output)

    def _load(self) -> List[models.SessionRecord]:
        if not self.path.exists():
            return []
        try:
            return _history_adapter.validate_json(self.path.read_bytes())
        except (OSError, pydantic.ValidationError) as e:
            raise exceptions.PersistenceError(
                f"Could not read history {self.path}: {e}"
            ) from e


class SettingsStore:
    """Stores the difficulty and sound settings in a JSON file.

    Attributes:
        path: The JSON file holding the settings.
    """

    def __init__(self, path: Union[pathlib.Path, str]) -> None:
        """Initializes the store.

        Args:
            path: The JSON file holding the settings. It is created on first save.
        """
        self.path = pathlib.Path(path)

    def get_settings(self) -> models.DifficultySettings:
        """Read the settings.

        Returns:
            The stored settings, or the defaults if there are none or they cannot
            be read.
        """
        if not self.path.exists():
            return models.DifficultySettings()
        try:
            return models.DifficultySettings.model_validate_json(
                self.path.read_bytes()
            )
        except (OSError, pydantic.ValidationError) as e:
            logger.error(
                "Could not read settings %s: %s. Using defaults.", self.path, e
            )
            return models.DifficultySettings()

    def save_settings(self, settings: models.DifficultySettings) -> None:
        """Write the settings.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(settings.model_dump(), indent=4))
        except OSError as e:
            raise exceptions.PersistenceError(
                f"Could not save settings to {self.path}: {e}"
            ) from e
        logger.debug("Settings saved in: %s", self.path)

    def set_difficulty(self, name: str) -> models.DifficultySettings:
        """Store the sensitivity and time multiplier of a difficulty preset.

        Args:
            name: One of 'easy', 'medium' or 'hard'.

        Returns:
            The updated settings.
        """
        preset = config.get_difficulty_preset(name)
        settings = self.get_settings().model_copy(update=preset)
        self.save_settings(settings)
        return settings

    def set_sound_enabled(self, enabled: bool) -> models.DifficultySettings:
        """Store whether sounds are played."""
        settings = self.get_settings().model_copy(update={"sound_enabled": enabled})
        self.save_settings(settings)
        return settings


def validate_output(output: pathlib.Path) -> None:
    """Validates that the output path is a valid format.

    Args:
        output: the name of the file to be saved, and the directory it will
            be saved in. Must be a .csv or .parquet file.

    Raises:
        InvalidFileTypeError: If the output file path ends with any extension other
            than csv or parquet.
    """
    if output.suffix not in VALID_FILE_TYPES:
        raise exceptions.InvalidFileTypeError(
            f"The extension: {output.suffix} is not supported."
            "Please save the file as .csv or .parquet",
        )
