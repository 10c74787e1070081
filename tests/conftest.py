"""Fixtures used by pytest."""

import logging
import pathlib
from typing import Callable, Dict, Generator, Sequence

import polars as pl
import pytest

from stepmaster.core import models


@pytest.fixture(autouse=True)
def data_directory(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> pathlib.Path:
    """Keep history and settings files inside the test's temporary directory."""
    home = tmp_path / "stepmaster_home"
    monkeypatch.setenv("STEPMASTER_HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def reset_logger_level() -> Generator[None, None, None]:
    """Restore the default level after tests that change the verbosity."""
    yield
    logging.getLogger("stepmaster").setLevel(logging.INFO)


@pytest.fixture
def create_recording_file(
    tmp_path: pathlib.Path,
) -> Callable[..., pathlib.Path]:
    """Factory writing a recording data frame to a .csv or .parquet file."""

    def _create(
        columns: Dict[str, Sequence[float]], name: str = "recording.csv"
    ) -> pathlib.Path:
        path = tmp_path / name
        data = pl.DataFrame(columns)
        if path.suffix == ".parquet":
            data.write_parquet(path)
        else:
            data.write_csv(path)
        return path

    return _create


@pytest.fixture
def running_columns() -> Dict[str, Sequence[float]]:
    """Ten seconds at 10 Hz with a step on every other sample."""
    n_samples = 100
    return {
        "time": [i / 10 for i in range(n_samples)],
        "accel_x": [0.0] * n_samples,
        "accel_y": [0.0] * n_samples,
        "accel_z": [2.0 if i % 2 else 0.0 for i in range(n_samples)],
    }


@pytest.fixture
def still_columns() -> Dict[str, Sequence[float]]:
    """Twelve seconds at 2 Hz without any movement."""
    n_samples = 24
    return {
        "time": [i / 2 for i in range(n_samples)],
        "accel_x": [0.0] * n_samples,
        "accel_y": [0.0] * n_samples,
        "accel_z": [0.0] * n_samples,
    }


@pytest.fixture
def run_template() -> models.ChallengeTemplate:
    """A RUN challenge asking for three steps."""
    return models.ChallengeTemplate(
        type=models.ChallengeType.RUN,
        instruction="Take 3 steps",
        count=3,
        intensity=1.5,
    )


@pytest.fixture
def create_session_record() -> Callable[..., models.SessionRecord]:
    """Factory for session records with one completed and one failed challenge."""

    def _create(
        score: int = 100, date: str = "2024-05-02T10:00:00"
    ) -> models.SessionRecord:
        run = models.ChallengeTemplate(
            type=models.ChallengeType.RUN, instruction="Take 3 steps", count=3
        )
        outcomes = (
            models.ChallengeOutcome(
                challenge=run, completed=True, score=score, time_left=4
            ),
            models.ChallengeOutcome(challenge=run, completed=False, score=0),
        )
        return models.SessionRecord(
            date=date, score=score, challenges=outcomes, total_challenges=2
        )

    return _create
