"""CLI for stepmaster."""

import logging
import pathlib
from enum import Enum
from typing import Optional

import typer

from stepmaster import notifications
from stepmaster.core import config, exceptions, models
from stepmaster.io.writers import writers
from stepmaster.processing import catalog, session

logger = config.get_logger()
app = typer.Typer(
    help="Play and verify sensor challenges.",
    no_args_is_help=True,
)


class Difficulty(str, Enum):
    """Difficulty levels accepted by the CLI."""

    easy = "easy"
    medium = "medium"
    hard = "hard"


def version_check(version: bool) -> None:
    """Print the current version of stepmaster and exit."""
    if version:
        typer.echo(f"Stepmaster version: {config.get_version()}")
        raise typer.Exit()


def _history_store(history: Optional[pathlib.Path]) -> writers.HistoryStore:
    if history is None:
        history = config.get_data_directory() / "history.json"
    return writers.HistoryStore(history)


def _settings_store(settings: Optional[pathlib.Path]) -> writers.SettingsStore:
    if settings is None:
        settings = config.get_data_directory() / "settings.json"
    return writers.SettingsStore(settings)


def _log_sound(event: models.SoundEvent) -> None:
    """Terminal stand-in for sound playback."""
    logger.debug("Sound: %s", event.value)


@app.callback()
def main(
    verbosity: bool = typer.Option(
        False,
        "-v",
        "--verbosity",
        help="Determines the level of verbosity. Use -v for DEBUG. "
        "Defaults to INFO if not included.",
    ),
    version: bool = typer.Option(
        False,
        "-V",
        "--version",
        help="Print the current version of stepmaster and exit.",
        is_eager=True,
        callback=version_check,
    ),
) -> None:
    """Set up logging for every command."""
    log_level = logging.INFO
    if verbosity:
        log_level = logging.DEBUG
    logger.setLevel(log_level)


@app.command("catalog")
def list_catalog(
    challenge_type: Optional[models.ChallengeType] = typer.Option(
        None,
        "-t",
        "--type",
        help="Only list the templates of this challenge type.",
        case_sensitive=False,
    ),
) -> None:
    """List the challenge templates with their index and time limit."""
    types = (
        [challenge_type] if challenge_type is not None else list(models.ChallengeType)
    )
    for current_type in types:
        limit = catalog.time_limit(current_type)
        typer.echo(f"{current_type.value} ({limit} s)")
        for index, template in enumerate(catalog.list_templates(current_type)):
            typer.echo(f"  [{index}] {template.instruction} - {template.hint}")


@app.command()
def replay(
    input: pathlib.Path = typer.Argument(
        ...,
        help="Path to a .csv or .parquet recording, or a directory of recordings.",
        exists=True,
    ),
    challenge_type: Optional[models.ChallengeType] = typer.Option(
        None,
        "-t",
        "--type",
        help="Challenge type to play. A random challenge the recording can verify "
        "is drawn when omitted.",
        case_sensitive=False,
    ),
    template_index: int = typer.Option(
        0,
        "-i",
        "--index",
        help="Index of the template within the challenge type, see 'catalog'.",
        min=0,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "-s",
        "--seed",
        help="Seed for reproducible random challenge draws.",
    ),
    difficulty: Optional[Difficulty] = typer.Option(
        None,
        "-d",
        "--difficulty",
        help="Difficulty for this replay. Defaults to the stored setting.",
        case_sensitive=False,
    ),
    save: bool = typer.Option(
        False,
        "--save",
        help="Append the session to the history.",
    ),
    history: Optional[pathlib.Path] = typer.Option(
        None,
        "--history",
        help="History file. Defaults to history.json in the data directory.",
    ),
    settings_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--settings",
        help="Settings file. Defaults to settings.json in the data directory.",
    ),
) -> None:
    """Replay recorded sensor data as a challenge session."""
    from stepmaster.core import orchestrator

    settings = _settings_store(settings_file).get_settings()
    if difficulty is not None:
        settings = settings.model_copy(
            update=config.get_difficulty_preset(difficulty.value)
        )
    notifier = notifications.SoundNotifier(_log_sound, enabled=settings.sound_enabled)
    store = _history_store(history) if save else None

    logger.debug("Running stepmaster replay. arguments given: %s", locals())
    try:
        record = orchestrator.run(
            input=input,
            challenge_type=challenge_type,
            template_index=template_index,
            seed=seed,
            settings=settings,
            notifier=notifier,
            store=store,
        )
    except (
        exceptions.EmptyDirectoryError,
        exceptions.PersistenceError,
        ValueError,
    ) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if record is None:
        typer.echo("No challenge was played.")
        return

    for outcome in record.challenges:
        status = "completed" if outcome.completed else "failed"
        if outcome.skipped:
            status = "skipped"
        typer.echo(
            f"{outcome.challenge.instruction}: {status}, {outcome.score} points"
        )
    summary = session.summarize(record.challenges)
    typer.echo(
        f"Score: {record.score}, accuracy: {summary.accuracy}% ({summary.rating})"
    )


@app.command("history")
def show_history(
    history: Optional[pathlib.Path] = typer.Option(
        None,
        "--history",
        help="History file. Defaults to history.json in the data directory.",
    ),
    output: Optional[pathlib.Path] = typer.Option(
        None,
        "-o",
        "--output",
        help="Export the history. Supports .csv and .parquet formats.",
    ),
) -> None:
    """Show the stored sessions and their statistics."""
    store = _history_store(history)
    records = store.get_history()
    for record in records:
        typer.echo(
            f"{record.date}: {record.score} points, "
            f"{record.total_challenges} challenges, "
            f"{session.completion_rate(record)}% completed"
        )
    statistics = session.history_statistics(records)
    typer.echo(
        f"Sessions: {statistics.sessions}, total score: {statistics.total_score}, "
        f"best score: {statistics.best_score}"
    )

    if output is not None:
        try:
            store.export_history(output)
        except exceptions.InvalidFileTypeError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)


@app.command("clear-history")
def clear_history(
    history: Optional[pathlib.Path] = typer.Option(
        None,
        "--history",
        help="History file. Defaults to history.json in the data directory.",
    ),
) -> None:
    """Remove every stored session."""
    try:
        _history_store(history).clear_history()
    except exceptions.PersistenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo("History cleared.")


@app.command("difficulty")
def set_difficulty(
    level: Difficulty = typer.Argument(..., case_sensitive=False),
    settings_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--settings",
        help="Settings file. Defaults to settings.json in the data directory.",
    ),
) -> None:
    """Store the difficulty used by later replays."""
    try:
        settings = _settings_store(settings_file).set_difficulty(level.value)
    except exceptions.PersistenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(
        f"Difficulty set to {level.value}: sensitivity {settings.sensitivity}, "
        f"time multiplier {settings.time_multiplier}"
    )


@app.command("sound")
def set_sound(
    enabled: bool = typer.Option(
        ..., "--on/--off", help="Enable or disable challenge sounds."
    ),
    settings_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--settings",
        help="Settings file. Defaults to settings.json in the data directory.",
    ),
) -> None:
    """Store whether challenge sounds are played."""
    try:
        _settings_store(settings_file).set_sound_enabled(enabled)
    except exceptions.PersistenceError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Sound {'enabled' if enabled else 'disabled'}.")


if __name__ == "__main__":
    app()
