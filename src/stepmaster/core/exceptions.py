"""Custom exceptions for stepmaster."""

from stepmaster.core import config

logger = config.get_logger()


class LoggedException(Exception):
    """Base class that automatically logs messages."""

    def __init__(self, message: str) -> None:
        """Initialize a new instance of the LoggedException class.

        Args:
            message: The message to display.
        """
        logger.exception(message)
        super().__init__(message)


class InvalidFileTypeError(LoggedException):
    """Stepmaster did not expect this file extension."""

    pass


class SensorRecordingError(LoggedException):
    """The sensor recording could not be read."""

    pass


class PersistenceError(LoggedException):
    """A session record or setting could not be stored."""

    pass


class EmptyDirectoryError(LoggedException):
    """No .csv or .parquet recordings were found in the directory."""

    pass
