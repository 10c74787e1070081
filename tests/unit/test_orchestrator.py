"""Test the orchestrator.py module."""

import asyncio
import logging
import pathlib
import random
from typing import Callable, Dict, Sequence

import pytest
import pytest_mock

from stepmaster import notifications, sensors
from stepmaster.core import exceptions, models, orchestrator
from stepmaster.io.readers import readers
from stepmaster.io.writers import writers
from stepmaster.processing import catalog


class StaticSource:
    """Sensor source returning a sample that tests can change."""

    def __init__(self, availability: models.SensorAvailability) -> None:
        """Start with zero readings."""
        self.sample = models.SensorSample()
        self._availability = availability

    def snapshot(self) -> models.SensorSample:
        """The current sample."""
        return self.sample

    def availability(self) -> models.SensorAvailability:
        """The configured availability."""
        return self._availability


@pytest.fixture
def accelerometer_source() -> StaticSource:
    """A source with an accelerometer only."""
    return StaticSource(models.SensorAvailability(accelerometer=True))


@pytest.fixture
def notifier() -> notifications.RecordingNotifier:
    """Notifier keeping every event."""
    return notifications.RecordingNotifier()


@pytest.fixture
def challenge_session(
    accelerometer_source: StaticSource, notifier: notifications.RecordingNotifier
) -> orchestrator.ChallengeSession:
    """A session on the accelerometer source with a fixed clock."""
    return orchestrator.ChallengeSession(
        accelerometer_source, notifier=notifier, clock=lambda: 0.0
    )


def _step(source: StaticSource, session: orchestrator.ChallengeSession) -> None:
    source.sample = models.SensorSample(accelerometer=models.Vector3(z=2.0))
    session.tick()
    source.sample = models.SensorSample()
    session.tick()


def test_next_challenge_draws_eligible(
    accelerometer_source: StaticSource,
) -> None:
    """Test that drawn challenges match the available sensors."""
    challenge_session = orchestrator.ChallengeSession(
        accelerometer_source, rng=random.Random(3)
    )

    challenge = challenge_session.next_challenge()

    assert challenge.type == models.ChallengeType.RUN
    assert challenge_session.time_left == 10
    assert challenge_session.active is False


def test_next_challenge_time_multiplier(
    accelerometer_source: StaticSource, run_template: models.ChallengeTemplate
) -> None:
    """Test that the difficulty scales the countdown."""
    challenge_session = orchestrator.ChallengeSession(
        accelerometer_source,
        settings=models.DifficultySettings(sensitivity=0.7, time_multiplier=1.3),
    )

    challenge_session.next_challenge(run_template)

    assert challenge_session.time_left == 13


def test_session_thresholds_follow_sensitivity(
    accelerometer_source: StaticSource,
) -> None:
    """Test that the sensitivity adjusts the detection thresholds."""
    challenge_session = orchestrator.ChallengeSession(
        accelerometer_source, settings=models.DifficultySettings(sensitivity=2.0)
    )

    assert challenge_session.thresholds.step_magnitude == pytest.approx(0.6)


def test_start_without_challenge(
    challenge_session: orchestrator.ChallengeSession,
) -> None:
    """Test starting before a challenge was prepared."""
    with pytest.raises(ValueError, match="No challenge prepared."):
        challenge_session.start()


def test_tick_inactive(challenge_session: orchestrator.ChallengeSession) -> None:
    """Test that nothing is verified while no challenge is active."""
    assert challenge_session.tick() == models.VerificationResult.neutral()


def test_tick_completes_challenge(
    accelerometer_source: StaticSource,
    challenge_session: orchestrator.ChallengeSession,
    notifier: notifications.RecordingNotifier,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test completing a challenge through the poll ticks."""
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    challenge_session.countdown()

    for _ in range(3):
        _step(accelerometer_source, challenge_session)

    outcome = challenge_session.last_outcome
    assert outcome is not None
    assert outcome.completed is True
    assert outcome.score == 100
    assert outcome.time_left == 9
    assert challenge_session.active is False
    assert challenge_session.engine.challenge is None
    assert notifier.events == [
        models.SoundEvent.CHALLENGE_START,
        models.SoundEvent.STEP_DETECTED,
        models.SoundEvent.STEP_DETECTED,
        models.SoundEvent.STEP_DETECTED,
        models.SoundEvent.CHALLENGE_COMPLETE,
    ]


def test_countdown_fails_challenge(
    challenge_session: orchestrator.ChallengeSession,
    notifier: notifications.RecordingNotifier,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that running out of time fails the challenge once."""
    challenge_session.next_challenge(run_template)
    challenge_session.start()

    remaining = [challenge_session.countdown() for _ in range(12)]

    assert remaining == list(range(9, -1, -1)) + [0, 0]
    assert len(challenge_session.aggregator.outcomes) == 1
    outcome = challenge_session.last_outcome
    assert outcome is not None
    assert outcome.completed is False
    assert outcome.score == 0
    assert notifier.count(models.SoundEvent.CHALLENGE_FAIL) == 1


def test_countdown_paused(
    challenge_session: orchestrator.ChallengeSession,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that a paused challenge does not count down."""
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    challenge_session.pause()

    assert challenge_session.countdown() == 10
    assert challenge_session.tick() == models.VerificationResult.neutral()


def test_skip(
    challenge_session: orchestrator.ChallengeSession,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test skipping records the time left and prepares the next challenge."""
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    challenge_session.countdown()
    challenge_session.countdown()

    next_challenge = challenge_session.skip()

    outcome = challenge_session.last_outcome
    assert outcome is not None
    assert outcome.skipped is True
    assert outcome.time_left == 8
    assert challenge_session.challenge == next_challenge
    assert challenge_session.time_left == 10
    assert challenge_session.active is False


def test_skip_after_completion(
    accelerometer_source: StaticSource,
    challenge_session: orchestrator.ChallengeSession,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that a completed challenge is not recorded again when skipped."""
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    for _ in range(3):
        _step(accelerometer_source, challenge_session)

    challenge_session.skip()

    assert len(challenge_session.aggregator.outcomes) == 1


def test_new_challenge_starts_without_progress(
    accelerometer_source: StaticSource,
    challenge_session: orchestrator.ChallengeSession,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that progress of a skipped challenge does not carry over."""
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    _step(accelerometer_source, challenge_session)
    _step(accelerometer_source, challenge_session)

    challenge_session.skip()
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    _step(accelerometer_source, challenge_session)

    assert challenge_session.engine.state.step_count == 1
    assert challenge_session.active is True


def test_end_without_challenges(mocker: pytest_mock.MockerFixture) -> None:
    """Test that an empty session is not stored."""
    store = mocker.Mock()
    challenge_session = orchestrator.ChallengeSession(
        StaticSource(models.SensorAvailability()), store=store
    )

    assert challenge_session.end() is None
    store.save_session.assert_not_called()


def test_end_saves_record(
    mocker: pytest_mock.MockerFixture,
    accelerometer_source: StaticSource,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test handing the record to the store."""
    store = mocker.Mock()
    challenge_session = orchestrator.ChallengeSession(accelerometer_source, store=store)
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    challenge_session.fail()

    record = challenge_session.end()

    assert record is not None
    assert record.total_challenges == 1
    assert record.score == 0
    store.save_session.assert_called_once_with(record)


def test_end_store_failure(
    mocker: pytest_mock.MockerFixture,
    accelerometer_source: StaticSource,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that store failures are reported and the outcomes are kept."""
    store = mocker.Mock()
    store.save_session.side_effect = OSError("read-only file system")
    challenge_session = orchestrator.ChallengeSession(accelerometer_source, store=store)
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    challenge_session.fail()

    with pytest.raises(
        exceptions.PersistenceError, match="Failed to save session results"
    ):
        challenge_session.end()
    assert len(challenge_session.aggregator.outcomes) == 1


def test_run_live_completes() -> None:
    """Test playing a challenge on the event loop until it is completed."""
    source = StaticSource(models.SensorAvailability())
    source.sample = models.SensorSample(accelerometer=models.Vector3(z=3.0))
    challenge_session = orchestrator.ChallengeSession(source)
    challenge_session.next_challenge()

    outcome = asyncio.run(
        orchestrator.run_live(
            challenge_session, poll_interval=0.001, countdown_interval=10.0
        )
    )

    assert outcome is not None
    assert outcome.completed is True
    assert outcome.score == 70
    assert outcome.challenge == catalog.FALLBACK_CHALLENGE


def test_run_live_times_out(
    challenge_session: orchestrator.ChallengeSession,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test playing a challenge on the event loop until time runs out."""
    challenge_session.next_challenge(run_template)

    outcome = asyncio.run(
        orchestrator.run_live(
            challenge_session, poll_interval=0.001, countdown_interval=0.001
        )
    )

    assert outcome is not None
    assert outcome.completed is False
    assert challenge_session.time_left == 0
    assert challenge_session.active is False


async def _play_then_cancel(
    challenge_session: orchestrator.ChallengeSession,
    poll_interval: float,
    countdown_interval: float,
    play_for: float,
) -> None:
    task = asyncio.create_task(
        orchestrator.run_live(
            challenge_session,
            poll_interval=poll_interval,
            countdown_interval=countdown_interval,
        )
    )
    await asyncio.sleep(play_for)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


def test_resume_keeps_progress(
    accelerometer_source: StaticSource,
    challenge_session: orchestrator.ChallengeSession,
    notifier: notifications.RecordingNotifier,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that pausing and resuming keeps the steps taken so far."""
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    _step(accelerometer_source, challenge_session)
    _step(accelerometer_source, challenge_session)
    challenge_session.pause()

    paused = challenge_session.paused
    challenge_session.resume()
    _step(accelerometer_source, challenge_session)

    assert paused is True
    assert challenge_session.last_outcome is not None
    assert challenge_session.last_outcome.completed is True
    assert notifier.count(models.SoundEvent.CHALLENGE_START) == 1


def test_resume_without_started_challenge(
    challenge_session: orchestrator.ChallengeSession,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that only a started challenge can be resumed."""
    challenge_session.next_challenge(run_template)

    with pytest.raises(ValueError, match="No paused challenge"):
        challenge_session.resume()


def test_run_live_resumes_paused_challenge(
    accelerometer_source: StaticSource,
    challenge_session: orchestrator.ChallengeSession,
    notifier: notifications.RecordingNotifier,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that playing a paused challenge again does not reset its tracking."""
    challenge_session.next_challenge(run_template)
    challenge_session.start()
    _step(accelerometer_source, challenge_session)
    _step(accelerometer_source, challenge_session)
    challenge_session.pause()

    asyncio.run(
        _play_then_cancel(
            challenge_session,
            poll_interval=0.001,
            countdown_interval=10.0,
            play_for=0.05,
        )
    )

    assert challenge_session.engine.state.step_count == 2
    assert notifier.count(models.SoundEvent.CHALLENGE_START) == 1
    assert challenge_session.paused is True


def test_run_live_cancelled(
    challenge_session: orchestrator.ChallengeSession,
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that cancelling stops the poll and the countdown together."""
    challenge_session.next_challenge(run_template)

    async def cancel_then_wait() -> int:
        await _play_then_cancel(
            challenge_session,
            poll_interval=0.001,
            countdown_interval=0.01,
            play_for=0.035,
        )
        time_left = challenge_session.time_left
        await asyncio.sleep(0.05)
        return time_left

    time_left_at_cancel = asyncio.run(cancel_then_wait())

    assert 0 < time_left_at_cancel < 10
    assert challenge_session.time_left == time_left_at_cancel
    assert challenge_session.aggregator.outcomes == ()
    assert challenge_session.active is False
    assert challenge_session.paused is True


def test_replay_completes(
    create_recording_file: Callable[..., pathlib.Path],
    running_columns: Dict[str, Sequence[float]],
    run_template: models.ChallengeTemplate,
) -> None:
    """Test replaying a recording that completes the challenge."""
    recording = readers.read_sensor_recording(create_recording_file(running_columns))
    source = sensors.RecordedSensorSource(recording)
    challenge_session = orchestrator.ChallengeSession(source, clock=source.clock)
    challenge_session.next_challenge(run_template)

    outcome = orchestrator.replay(challenge_session, source)

    assert outcome is not None
    assert outcome.completed is True
    assert outcome.score == 100
    assert outcome.time_left == 10
    assert source.clock() == pytest.approx(0.5)


def test_replay_times_out(
    create_recording_file: Callable[..., pathlib.Path],
    still_columns: Dict[str, Sequence[float]],
    run_template: models.ChallengeTemplate,
) -> None:
    """Test that the countdown follows the recorded timestamps."""
    recording = readers.read_sensor_recording(create_recording_file(still_columns))
    source = sensors.RecordedSensorSource(recording)
    challenge_session = orchestrator.ChallengeSession(source, clock=source.clock)
    challenge_session.next_challenge(run_template)

    outcome = orchestrator.replay(challenge_session, source)

    assert outcome is not None
    assert outcome.completed is False
    assert source.clock() == pytest.approx(10.0)


def test_replay_recording_too_short(
    run_template: models.ChallengeTemplate, caplog: pytest.LogCaptureFixture
) -> None:
    """Test that the challenge fails when the recording ends first."""
    caplog.set_level(logging.WARNING)
    recording = models.SensorRecording(
        time=[0.0, 0.5, 1.0],
        samples=[models.SensorSample()] * 3,
        availability=models.SensorAvailability(accelerometer=True),
    )
    source = sensors.RecordedSensorSource(recording)
    challenge_session = orchestrator.ChallengeSession(source, clock=source.clock)
    challenge_session.next_challenge(run_template)

    outcome = orchestrator.replay(challenge_session, source)

    assert outcome is not None
    assert outcome.completed is False
    assert "Recording ended before the challenge did." in caplog.text


def test_run_single_file(
    create_recording_file: Callable[..., pathlib.Path],
    running_columns: Dict[str, Sequence[float]],
) -> None:
    """Test playing a single recording with a catalog template."""
    path = create_recording_file(running_columns)

    record = orchestrator.run(path, challenge_type=models.ChallengeType.RUN)

    assert record is not None
    assert record.total_challenges == 1
    assert record.challenges[0].challenge == catalog.get_template(
        models.ChallengeType.RUN, 0
    )
    assert record.score == 100


def test_run_directory(
    create_recording_file: Callable[..., pathlib.Path],
    running_columns: Dict[str, Sequence[float]],
    still_columns: Dict[str, Sequence[float]],
    tmp_path: pathlib.Path,
) -> None:
    """Test playing every recording of a directory as one session."""
    create_recording_file(running_columns, name="a_running.csv")
    create_recording_file(still_columns, name="b_still.parquet")
    store = writers.HistoryStore(tmp_path / "history.json")

    record = orchestrator.run(
        tmp_path, challenge_type=models.ChallengeType.RUN, store=store
    )

    assert record is not None
    assert [outcome.completed for outcome in record.challenges] == [True, False]
    assert store.get_history() == [record]


def test_run_skips_unreadable_files(
    create_recording_file: Callable[..., pathlib.Path],
    running_columns: Dict[str, Sequence[float]],
    tmp_path: pathlib.Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that unreadable recordings are logged and skipped."""
    caplog.set_level(logging.ERROR)
    create_recording_file(running_columns, name="a_running.csv")
    create_recording_file({"accel_x": [0.0]}, name="b_broken.csv")

    record = orchestrator.run(tmp_path, seed=0)

    assert record is not None
    assert record.total_challenges == 1
    assert "Did not replay file" in caplog.text


def test_run_nothing_playable(
    create_recording_file: Callable[..., pathlib.Path],
) -> None:
    """Test that a session without playable recordings has no record."""
    path = create_recording_file({"time": [0.0], "other": [1.0]})

    assert orchestrator.run(path) is None


def test_run_empty_directory(tmp_path: pathlib.Path) -> None:
    """Test playing a directory without recordings."""
    empty = tmp_path / "empty"
    empty.mkdir()

    with pytest.raises(exceptions.EmptyDirectoryError):
        orchestrator.run(empty)


def test_run_invalid_template_index(
    create_recording_file: Callable[..., pathlib.Path],
    running_columns: Dict[str, Sequence[float]],
) -> None:
    """Test selecting a template that does not exist."""
    path = create_recording_file(running_columns)

    with pytest.raises(ValueError, match="Invalid template index 9"):
        orchestrator.run(
            path, challenge_type=models.ChallengeType.RUN, template_index=9
        )
