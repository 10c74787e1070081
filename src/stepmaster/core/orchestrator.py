"""Runs challenge sessions against a sensor source."""

import asyncio
import itertools
import pathlib
import random
import time
from typing import Callable, Optional, Union

from rich import progress

from stepmaster import notifications, sensors
from stepmaster.core import config, exceptions, models, ports
from stepmaster.io.readers import readers
from stepmaster.processing import catalog, session, thresholds, verification

logger = config.get_logger()

POLL_INTERVAL_SECONDS = 0.1
COUNTDOWN_INTERVAL_SECONDS = 1.0


class ChallengeSession:
    """A sequence of challenges played consecutively.

    The session owns the verification engine, the countdown of the current
    challenge and the aggregator of the outcomes. It is driven from outside: the
    caller polls `tick` about ten times per second and calls `countdown` once per
    second while a challenge is active, see `run_live` and `replay`.

    Attributes:
        sensors: Source of sensor snapshots and availability.
        notifier: Receives the challenge and detector events.
        store: Receives the session record at the end of the session.
        settings: Difficulty settings of the session.
        engine: The verification engine of the session.
        aggregator: The outcomes of the session.
        challenge: The current challenge.
        time_left: Seconds left on the countdown of the current challenge.
        active: Whether the current challenge is being verified.
    """

    def __init__(
        self,
        sensor_source: ports.SensorSource,
        notifier: Optional[ports.Notifier] = None,
        store: Optional[ports.SessionStore] = None,
        settings: Optional[models.DifficultySettings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        base_thresholds: models.Thresholds = models.BASE_THRESHOLDS,
    ) -> None:
        """Initializes a session without a challenge.

        Args:
            sensor_source: Source of sensor snapshots and availability.
            notifier: Receives the challenge and detector events.
            store: Receives the session record at the end of the session. The
                record is not persisted when None.
            settings: Difficulty settings. Defaults to medium difficulty.
            rng: Random number generator used to draw challenges.
            clock: Returns the current time in seconds, used for hold durations.
            base_thresholds: Thresholds before the sensitivity is applied.
        """
        self.sensors = sensor_source
        self.notifier = notifier
        self.store = store
        self.settings = (
            settings if settings is not None else models.DifficultySettings()
        )
        self.rng = rng
        self.engine = verification.VerificationEngine(notifier=notifier, clock=clock)
        self.aggregator = session.SessionAggregator()
        self.thresholds = thresholds.adjust_thresholds(
            base_thresholds, self.settings.sensitivity
        )
        self.challenge: Optional[models.ChallengeTemplate] = None
        self.time_left = 0
        self.active = False
        self._pending = False
        self._started = False

    def attach(
        self,
        sensor_source: ports.SensorSource,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Switch to another sensor source, e.g. after the sensors were restarted.

        Args:
            sensor_source: The new source of sensor snapshots and availability.
            clock: Returns the current time in seconds.
        """
        self.sensors = sensor_source
        self.engine.clock = clock

    def next_challenge(
        self, challenge: Optional[models.ChallengeTemplate] = None
    ) -> models.ChallengeTemplate:
        """Prepare the next challenge without starting it.

        Tracking of the previous challenge is reset before the new one is chosen.

        Args:
            challenge: The challenge to play. A random one the sensors can verify is
                drawn when None.

        Returns:
            The prepared challenge.
        """
        self.engine.stop()
        self.active = False
        if challenge is None:
            challenge = catalog.generate_challenge(
                self.sensors.availability().families(), rng=self.rng
            )
        self.challenge = challenge
        self._pending = True
        self._started = False
        self.time_left = catalog.time_limit(
            challenge.type, self.settings.time_multiplier
        )
        logger.info(
            "Next challenge: %s (%d seconds)", challenge.instruction, self.time_left
        )
        return challenge

    def start(self) -> None:
        """Start verifying the prepared challenge.

        Raises:
            ValueError: If no challenge has been prepared.
        """
        if self.challenge is None or not self._pending:
            msg = "No challenge prepared. Call next_challenge first."
            logger.error(msg)
            raise ValueError(msg)
        self.engine.start(self.challenge)
        self.active = True
        self._started = True
        notifications.safe_notify(self.notifier, models.SoundEvent.CHALLENGE_START)

    def pause(self) -> None:
        """Stop verifying and counting down without ending the challenge."""
        self.active = False

    def resume(self) -> None:
        """Continue a paused challenge with its progress kept.

        Raises:
            ValueError: If the prepared challenge was never started or has ended.
        """
        if not (self._pending and self._started):
            msg = "No paused challenge to resume."
            logger.error(msg)
            raise ValueError(msg)
        self.active = True

    def tick(self) -> models.VerificationResult:
        """Verify the current challenge against the latest sensor snapshot.

        Returns:
            The verdict of this tick. Neutral while no challenge is active.
        """
        if not self.active:
            return models.VerificationResult.neutral()

        result = self.engine.verify(self.sensors.snapshot(), self.thresholds)
        if result.completed and self.challenge is not None:
            outcome = self.aggregator.record_completed(
                self.challenge, result.performance, self.time_left
            )
            self._finish()
            notifications.safe_notify(
                self.notifier, models.SoundEvent.CHALLENGE_COMPLETE
            )
            logger.info(
                "Challenge completed: %s, %d points",
                self.challenge.instruction,
                outcome.score,
            )
        return result

    def countdown(self) -> int:
        """Count down one second, failing the challenge when time runs out.

        Returns:
            The seconds left.
        """
        if not self.active:
            return self.time_left
        self.time_left = max(0, self.time_left - 1)
        if self.time_left == 0:
            self.fail()
        return self.time_left

    def fail(self) -> None:
        """End the current challenge as failed."""
        if self.challenge is None or not self._pending:
            return
        self.aggregator.record_failed(self.challenge)
        self.time_left = 0
        self._finish()
        notifications.safe_notify(self.notifier, models.SoundEvent.CHALLENGE_FAIL)
        logger.info("Challenge failed: %s", self.challenge.instruction)

    def skip(self) -> models.ChallengeTemplate:
        """Record the current challenge as skipped and prepare the next one.

        Returns:
            The next challenge.
        """
        if self.challenge is not None and self._pending:
            self.aggregator.record_skipped(self.challenge, self.time_left)
            logger.info("Challenge skipped: %s", self.challenge.instruction)
        self._finish()
        return self.next_challenge()

    @property
    def paused(self) -> bool:
        """Whether a started challenge is waiting to be resumed."""
        return self._pending and self._started and not self.active

    @property
    def last_outcome(self) -> Optional[models.ChallengeOutcome]:
        """The most recently recorded outcome."""
        outcomes = self.aggregator.outcomes
        return outcomes[-1] if outcomes else None

    def end(self) -> Optional[models.SessionRecord]:
        """End the session and hand its record to the store.

        Returns:
            The session record, or None if no challenge was played.

        Raises:
            PersistenceError: If the store fails to save the record. The recorded
                outcomes are left untouched.
        """
        self._finish()
        record = self.aggregator.build_record()
        if record is None:
            logger.info("Session ended without challenges.")
            return None

        if self.store is not None:
            try:
                self.store.save_session(record)
            except exceptions.PersistenceError:
                raise
            except Exception as e:
                raise exceptions.PersistenceError(
                    f"Failed to save session results: {e}"
                ) from e
        logger.info(
            "Session ended: %d challenges, %d points",
            record.total_challenges,
            record.score,
        )
        return record

    def _finish(self) -> None:
        self.active = False
        self._pending = False
        self._started = False
        self.engine.stop()


async def run_live(
    challenge_session: ChallengeSession,
    poll_interval: float = POLL_INTERVAL_SECONDS,
    countdown_interval: float = COUNTDOWN_INTERVAL_SECONDS,
) -> Optional[models.ChallengeOutcome]:
    """Play the prepared challenge until it is completed or runs out of time.

    The poll and the countdown run as two tasks on the event loop. Whichever ends
    the challenge first cancels the other one. Cancelling this coroutine cancels
    both tasks and pauses the session. Playing a paused challenge again resumes it
    with its progress kept.

    Args:
        challenge_session: The session holding the prepared challenge.
        poll_interval: Seconds between two verification ticks.
        countdown_interval: Seconds between two countdown steps.

    Returns:
        The outcome of the challenge, or None if it did not end.
    """
    if challenge_session.paused:
        challenge_session.resume()
    elif not challenge_session.active:
        challenge_session.start()
    outcomes_before = len(challenge_session.aggregator.outcomes)

    async def poll() -> None:
        while challenge_session.active:
            challenge_session.tick()
            await asyncio.sleep(poll_interval)

    async def count_down() -> None:
        while challenge_session.active:
            await asyncio.sleep(countdown_interval)
            challenge_session.countdown()

    tasks = [asyncio.create_task(poll()), asyncio.create_task(count_down())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        challenge_session.pause()

    if len(challenge_session.aggregator.outcomes) == outcomes_before:
        return None
    return challenge_session.last_outcome


def replay(
    challenge_session: ChallengeSession,
    source: sensors.RecordedSensorSource,
) -> Optional[models.ChallengeOutcome]:
    """Play the prepared challenge against a recording, sample by sample.

    The countdown follows the recording's timestamps. The session must have been
    created with `source` as its sensor source and `source.clock` as its clock. If
    the recording ends before the challenge does, the challenge fails.

    Args:
        challenge_session: The session holding the prepared challenge.
        source: The recording to replay.

    Returns:
        The outcome of the challenge.
    """
    challenge_session.start()
    next_countdown: Optional[float] = None

    while challenge_session.active and source.advance():
        now = source.clock()
        if next_countdown is None:
            next_countdown = now + COUNTDOWN_INTERVAL_SECONDS
        while challenge_session.active and now >= next_countdown:
            challenge_session.countdown()
            next_countdown += COUNTDOWN_INTERVAL_SECONDS
        if challenge_session.active:
            challenge_session.tick()

    if challenge_session.active:
        logger.warning("Recording ended before the challenge did.")
        challenge_session.fail()
    return challenge_session.last_outcome


def run(
    input: Union[pathlib.Path, str],
    challenge_type: Optional[models.ChallengeType] = None,
    template_index: int = 0,
    seed: Optional[int] = None,
    settings: Optional[models.DifficultySettings] = None,
    notifier: Optional[ports.Notifier] = None,
    store: Optional[ports.SessionStore] = None,
) -> Optional[models.SessionRecord]:
    """Plays a session against a recording or a directory of recordings.

    Every recording is played as one challenge of the same session. When a
    challenge type is given the template is taken from the catalog by index,
    otherwise a random challenge the recording can verify is drawn.

    Args:
        input: Path to a .csv or .parquet recording, or to a directory of them.
        challenge_type: The type of challenge to play. None draws a random one.
        template_index: Position of the template within the challenge type.
        seed: Seed of the random challenge draws.
        settings: Difficulty settings. Defaults to medium difficulty.
        notifier: Receives the challenge and detector events.
        store: Receives the session record.

    Returns:
        The session record, or None if no recording could be played.

    Raises:
        EmptyDirectoryError: If the directory contains no recordings.
        ValueError: If the template index is out of range.
    """
    input = pathlib.Path(input)
    template = (
        catalog.get_template(challenge_type, template_index)
        if challenge_type is not None
        else None
    )

    if input.is_file():
        file_names = [input]
    else:
        file_names = sorted(
            itertools.chain(input.glob("*.csv"), input.glob("*.parquet"))
        )
        if not file_names:
            raise exceptions.EmptyDirectoryError(
                f"Directory {input} contains no .csv or .parquet files."
            )

    challenge_session: Optional[ChallengeSession] = None
    rng = random.Random(seed)
    with progress.Progress(
        progress.SpinnerColumn(),
        progress.TextColumn("[progress.description]{task.description}"),
        progress.BarColumn(),
        progress.TaskProgressColumn(),
        console=None,
        disable=len(file_names) == 1,
    ) as progress_bar:
        task = progress_bar.add_task(
            f"[cyan]Replaying {input.name}...", total=len(file_names)
        )
        for file in file_names:
            logger.debug("Replaying recording: %s", file)
            try:
                recording = readers.read_sensor_recording(file)
            except (
                exceptions.InvalidFileTypeError,
                exceptions.SensorRecordingError,
                ValueError,
            ) as e:
                logger.error("Did not replay file: %s, Error: %s", file, e)
                progress_bar.update(task, advance=1)
                continue

            source = sensors.RecordedSensorSource(recording)
            if challenge_session is None:
                challenge_session = ChallengeSession(
                    source,
                    notifier=notifier,
                    store=store,
                    settings=settings,
                    rng=rng,
                    clock=source.clock,
                )
            else:
                challenge_session.attach(source, clock=source.clock)
            challenge_session.next_challenge(template)
            replay(challenge_session, source)
            progress_bar.update(task, advance=1)

    if challenge_session is None:
        logger.warning("No recording of %s could be replayed.", input)
        return None
    return challenge_session.end()
