"""Function to read recorded sensor streams from a file."""

import pathlib
from typing import Union

import numpy as np
import polars as pl

from stepmaster.core import config, exceptions, models

logger = config.get_logger()

VALID_FILE_TYPES = (".csv", ".parquet")

FAMILY_COLUMNS = {
    models.SensorFamily.accelerometer: ("accel_x", "accel_y", "accel_z"),
    models.SensorFamily.gyroscope: ("gyro_x", "gyro_y", "gyro_z"),
    models.SensorFamily.magnetometer: ("mag_x", "mag_y", "mag_z"),
}


def read_sensor_recording(
    file_name: Union[pathlib.Path, str],
) -> models.SensorRecording:
    """Read a recorded sensor stream from a file.

    Args:
        file_name: The .csv or .parquet file to read. It must have a 'time' column
            and the x, y and z columns of at least one sensor family, see
            `FAMILY_COLUMNS`.

    Returns:
        The sensor recording.

    Raises:
        InvalidFileTypeError: If the file extension is not supported.
        SensorRecordingError: If the file cannot be parsed.
    """
    path = pathlib.Path(file_name)
    if path.suffix not in VALID_FILE_TYPES:
        raise exceptions.InvalidFileTypeError(
            f"File type {path.suffix} is not supported. "
            f"Use one of {', '.join(VALID_FILE_TYPES)}."
        )
    try:
        if path.suffix == ".csv":
            data = pl.read_csv(path)
        else:
            data = pl.read_parquet(path)
    except Exception as e:
        raise exceptions.SensorRecordingError(f"Error reading file: {e}.") from e

    logger.debug("Read %d rows from %s", data.height, path)
    return recording_from_data_frame(data)


def recording_from_data_frame(data: pl.DataFrame) -> models.SensorRecording:
    """Convert a data frame into a sensor recording.

    A sensor family is available when all three of its columns are present. Missing
    families read as zero vectors. A datetime 'time' column is converted to seconds
    since the first sample.

    Args:
        data: The data frame holding the recording.

    Returns:
        The sensor recording, sorted by time.

    Raises:
        ValueError: If the time column is missing or no sensor family is present.
    """
    if "time" not in data.columns:
        raise ValueError("Sensor recording must have a 'time' column.")

    available = {
        family: all(column in data.columns for column in columns)
        for family, columns in FAMILY_COLUMNS.items()
    }
    if not any(available.values()):
        raise ValueError(
            "Sensor recording must contain the x, y and z columns of at least one "
            "sensor family."
        )

    data = data.sort("time")
    time = data["time"]
    if isinstance(time.dtype, pl.datatypes.Datetime):
        time = (time - time.min()).dt.total_microseconds() / 1_000_000

    n_samples = data.height
    vectors = {}
    for family, columns in FAMILY_COLUMNS.items():
        if available[family]:
            vectors[family] = data.select(columns).to_numpy().astype(float)
        else:
            vectors[family] = np.zeros((n_samples, 3))

    samples = [
        models.SensorSample(
            **{
                family.value: models.Vector3(
                    x=vectors[family][row, 0],
                    y=vectors[family][row, 1],
                    z=vectors[family][row, 2],
                )
                for family in FAMILY_COLUMNS
            }
        )
        for row in range(n_samples)
    ]

    return models.SensorRecording(
        time=time.cast(pl.Float64).to_list(),
        samples=samples,
        availability=models.SensorAvailability(
            **{family.value: value for family, value in available.items()}
        ),
    )
