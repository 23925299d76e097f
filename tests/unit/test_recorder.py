"""Unit tests for the demonstration recorder.

Covers:
- demonstrations/recorder.py: DemonstrationRecorder (file layout, collision-free
  naming, statistics, close-time episode bump, sensors, sequencing errors,
  directory/file/seek/write failures, metadata capacity, context manager)
"""
from __future__ import annotations

import io
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from agent_demo_recorder.config import RecorderConfig
from agent_demo_recorder.demonstrations.codec import (
    DemonstrationMetaProto,
    SessionParametersProto,
    StepRecordProto,
    read_delimited,
)
from agent_demo_recorder.demonstrations.models import (
    RecordingMetadata,
    SessionParameters,
    StepRecord,
)
from agent_demo_recorder.demonstrations.reader import DemonstrationReader
from agent_demo_recorder.demonstrations.recorder import (
    DemonstrationRecorder,
    RecorderState,
)
from agent_demo_recorder.errors import (
    DirectoryCreationError,
    FileCreationError,
    InvalidSequencingError,
    MetadataOverflowError,
    SeekError,
    WriteError,
)
from agent_demo_recorder.filesystem import FileSystem, InMemoryFileSystem, LocalFileSystem
from agent_demo_recorder.sensors.base import EncodedObservation, VectorSensor

_DIR = "Demonstrations"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _params() -> SessionParameters:
    return SessionParameters(brain_name="Walker", action_shape=(2,))


def _step(reward: float = 1.0, done: bool = False) -> StepRecord:
    return StepRecord(action=[0.5, -0.5], reward=reward, done=done)


def _recorder(fs: InMemoryFileSystem | None = None) -> tuple[DemonstrationRecorder, InMemoryFileSystem]:
    fs = fs if fs is not None else InMemoryFileSystem()
    return DemonstrationRecorder(file_system=fs), fs


class _FlakyStream(io.BytesIO):
    """BytesIO whose seek or write can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_seek = False
        self.fail_write = False

    def seek(self, offset: int, whence: int = 0) -> int:
        if self.fail_seek:
            raise OSError("seek refused")
        return super().seek(offset, whence)

    def write(self, data: bytes) -> int:  # type: ignore[override]
        if self.fail_write:
            raise OSError("disk full")
        return super().write(data)


def _flaky_fs(stream: _FlakyStream) -> MagicMock:
    fs = MagicMock(spec=FileSystem)
    fs.exists.return_value = False
    fs.create_file.return_value = stream
    return fs


# ---------------------------------------------------------------------------
# File layout
# ---------------------------------------------------------------------------


class TestFileLayout:
    def test_metadata_params_and_steps_at_expected_offsets(self) -> None:
        recorder, fs = _recorder()
        path = recorder.initialize("demo", _params())
        recorder.record(_step(1.0))
        recorder.record(_step(2.0, done=True))
        recorder.close()

        data = fs.read_bytes(path)
        meta, meta_end = read_delimited(data, 0, DemonstrationMetaProto)
        assert meta_end <= 33
        assert data[meta_end:33] == bytes(33 - meta_end)
        params, position = read_delimited(data, 33, SessionParametersProto)
        assert params.brain_name == "Walker"

        rewards = []
        while position < len(data):
            step, position = read_delimited(data, position, StepRecordProto)
            rewards.append(step.reward)
        assert position == len(data)
        assert rewards == [1.0, 2.0]

    def test_parameter_offset_is_fixed_regardless_of_name_length(self) -> None:
        recorder_a, fs_a = _recorder()
        path_a = recorder_a.initialize("a", _params())
        recorder_a.close()
        recorder_b, fs_b = _recorder()
        path_b = recorder_b.initialize("abcdefghijk", _params())
        recorder_b.close()

        for fs, path in ((fs_a, path_a), (fs_b, path_b)):
            params, _ = read_delimited(fs.read_bytes(path), 33, SessionParametersProto)
            assert params.brain_name == "Walker"

    def test_placeholder_header_has_zero_counters(self) -> None:
        stream = _FlakyStream()
        recorder = DemonstrationRecorder(file_system=_flaky_fs(stream))
        recorder.initialize("demo", _params())
        recorder.record(_step(3.0, done=True))
        meta, _ = read_delimited(stream.getvalue(), 0, DemonstrationMetaProto)
        assert meta.demonstration_name == "demo"
        assert meta.number_steps == 0
        assert meta.number_episodes == 0
        assert meta.mean_reward == 0.0

    def test_finalized_header_does_not_append_bytes(self) -> None:
        stream = _FlakyStream()
        recorder = DemonstrationRecorder(file_system=_flaky_fs(stream))
        recorder.initialize("demo", _params())
        recorder.record(_step())
        size_before_close = len(stream.getvalue())
        stream.close = lambda: None  # type: ignore[method-assign]
        recorder.close()
        assert len(stream.getvalue()) == size_before_close

    def test_custom_metadata_capacity_moves_parameter_block(self) -> None:
        fs = InMemoryFileSystem()
        config = RecorderConfig(metadata_capacity=200)
        recorder = DemonstrationRecorder(file_system=fs, config=config)
        path = recorder.initialize("a-much-longer-session-name", _params())
        recorder.close()
        data = fs.read_bytes(path)
        assert config.parameter_offset == 202
        params, _ = read_delimited(data, 202, SessionParametersProto)
        assert params.brain_name == "Walker"


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


class TestNaming:
    def test_uses_plain_name_when_free(self) -> None:
        recorder, _ = _recorder()
        path = recorder.initialize("foo", _params())
        assert Path(path) == Path(_DIR) / "foo.demo"
        assert recorder.path == path

    def test_existing_file_gets_suffix_zero(self) -> None:
        fs = InMemoryFileSystem(files={f"{_DIR}/foo.demo": b""}, directories=[_DIR])
        recorder, _ = _recorder(fs)
        path = recorder.initialize("foo", _params())
        assert Path(path) == Path(_DIR) / "foo_0.demo"

    def test_suffixes_increase_sequentially(self) -> None:
        fs = InMemoryFileSystem(
            files={f"{_DIR}/foo.demo": b"", f"{_DIR}/foo_0.demo": b"", f"{_DIR}/foo_1.demo": b""},
            directories=[_DIR],
        )
        recorder, _ = _recorder(fs)
        path = recorder.initialize("foo", _params())
        assert Path(path) == Path(_DIR) / "foo_2.demo"

    def test_first_free_suffix_wins(self) -> None:
        fs = InMemoryFileSystem(
            files={f"{_DIR}/foo.demo": b"", f"{_DIR}/foo_1.demo": b""},
            directories=[_DIR],
        )
        recorder, _ = _recorder(fs)
        path = recorder.initialize("foo", _params())
        assert Path(path) == Path(_DIR) / "foo_0.demo"

    def test_two_sessions_with_same_name_do_not_collide(self) -> None:
        fs = InMemoryFileSystem()
        first = DemonstrationRecorder(file_system=fs)
        first_path = first.initialize("foo", _params())
        first.close()
        second = DemonstrationRecorder(file_system=fs)
        second_path = second.initialize("foo", _params())
        second.close()
        assert first_path != second_path
        assert fs.files == [f"{_DIR}/foo.demo", f"{_DIR}/foo_0.demo"]

    def test_exhausted_name_attempts_raise(self) -> None:
        fs = InMemoryFileSystem(
            files={f"{_DIR}/foo.demo": b"", f"{_DIR}/foo_0.demo": b"", f"{_DIR}/foo_1.demo": b""},
            directories=[_DIR],
        )
        recorder = DemonstrationRecorder(
            file_system=fs, config=RecorderConfig(max_name_attempts=2)
        )
        with pytest.raises(FileCreationError):
            recorder.initialize("foo", _params())
        assert recorder.state is RecorderState.NEW

    def test_custom_directory_and_extension(self) -> None:
        fs = InMemoryFileSystem()
        config = RecorderConfig(directory=Path("out/demos"), extension="trace")
        recorder = DemonstrationRecorder(file_system=fs, config=config)
        path = recorder.initialize("foo", _params())
        assert Path(path) == Path("out/demos/foo.trace")
        assert fs.exists("out/demos")
        assert fs.exists("out")


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class TestStatistics:
    def test_experience_count_equals_record_calls(self) -> None:
        recorder, _ = _recorder()
        recorder.initialize("demo", _params())
        for i in range(7):
            recorder.record(_step(done=(i % 3 == 2)))
        metadata = recorder.close()
        assert metadata.experience_count == 7

    def test_mean_reward_includes_close_time_episode(self) -> None:
        recorder, fs = _recorder()
        path = recorder.initialize("demo", _params())
        recorder.record(_step(1.0))
        recorder.record(_step(1.0))
        recorder.record(_step(1.0, done=True))
        recorder.record(_step(2.0))
        recorder.record(_step(2.0, done=True))
        metadata = recorder.close()

        assert metadata.episode_count == 3
        assert metadata.mean_reward == pytest.approx(7.0 / 3.0)
        decoded = DemonstrationReader(fs.read_bytes(path)).metadata
        assert decoded.episode_count == 3
        assert decoded.experience_count == 5
        assert decoded.mean_reward == pytest.approx(7.0 / 3.0, rel=1e-6)

    def test_zero_terminal_steps_count_as_one_episode(self) -> None:
        recorder, _ = _recorder()
        recorder.initialize("demo", _params())
        for _ in range(4):
            recorder.record(_step(0.5))
        metadata = recorder.close()
        assert metadata.episode_count == 1
        assert metadata.mean_reward == pytest.approx(2.0)

    def test_close_without_steps(self) -> None:
        recorder, fs = _recorder()
        path = recorder.initialize("empty", _params())
        metadata = recorder.close()
        assert metadata.experience_count == 0
        assert metadata.episode_count == 1
        assert metadata.mean_reward == 0.0
        assert DemonstrationReader(fs.read_bytes(path)).load().steps == []

    def test_terminal_on_empty_episode_is_counted(self) -> None:
        recorder, _ = _recorder()
        recorder.initialize("demo", _params())
        recorder.record(_step(0.0, done=True))
        recorder.record(_step(0.0, done=True))
        assert recorder.metadata is not None
        assert recorder.metadata.episode_count == 2

    def test_running_metadata_before_close(self) -> None:
        recorder, _ = _recorder()
        assert recorder.metadata is None
        recorder.initialize("demo", _params())
        recorder.record(_step(1.5))
        snapshot = recorder.metadata
        assert snapshot is not None
        assert snapshot.experience_count == 1
        assert snapshot.episode_count == 0
        assert snapshot.mean_reward == 0.0
        assert recorder.cumulative_reward == pytest.approx(1.5)

    def test_metadata_snapshot_is_a_copy(self) -> None:
        recorder, _ = _recorder()
        recorder.initialize("demo", _params())
        snapshot = recorder.metadata
        assert snapshot is not None
        snapshot.experience_count = 99
        assert recorder.metadata is not None
        assert recorder.metadata.experience_count == 0


# ---------------------------------------------------------------------------
# Step content
# ---------------------------------------------------------------------------


class TestStepContent:
    def test_steps_round_trip_in_write_order(self) -> None:
        recorder, fs = _recorder()
        path = recorder.initialize("demo", _params())
        recorder.record(StepRecord(action=[1.0, 2.0], reward=0.25, agent_id=3))
        recorder.record(
            StepRecord(action=[3.0, 4.0], reward=-1.0, done=True, max_step_reached=True)
        )
        recorder.close()

        steps = DemonstrationReader(fs.read_bytes(path)).load().steps
        assert len(steps) == 2
        np.testing.assert_array_equal(steps[0].action, [1.0, 2.0])
        assert steps[0].reward == pytest.approx(0.25)
        assert steps[0].agent_id == 3
        assert steps[0].done is False
        np.testing.assert_array_equal(steps[1].action, [3.0, 4.0])
        assert steps[1].done is True
        assert steps[1].max_step_reached is True

    def test_sensor_observations_attached_in_sensor_order(self) -> None:
        first = VectorSensor("first", size=1)
        second = VectorSensor("second", size=3)
        first.observe([7.0])
        second.observe([1.0, 2.0, 3.0])
        recorder, fs = _recorder()
        path = recorder.initialize(
            "demo", SessionParameters.from_sensors("Walker", [first, second])
        )
        recorder.record(_step(), sensors=[first, second])
        recorder.close()

        demonstration = DemonstrationReader(fs.read_bytes(path)).load()
        assert [spec.name for spec in demonstration.parameters.observation_specs] == [
            "first",
            "second",
        ]
        observations = demonstration.steps[0].observations
        assert [obs.shape for obs in observations] == [(1,), (3,)]
        np.testing.assert_array_equal(observations[1].to_array(), [1.0, 2.0, 3.0])

    def test_sensor_observations_follow_existing_ones(self) -> None:
        sensor = VectorSensor("late", size=1)
        sensor.observe([5.0])
        early = EncodedObservation(shape=(2,), float_data=np.array([1.0, 2.0]))
        recorder, fs = _recorder()
        path = recorder.initialize("demo", _params())
        recorder.record(
            StepRecord(observations=[early], action=[0.0], reward=0.0), sensors=[sensor]
        )
        recorder.close()
        step = DemonstrationReader(fs.read_bytes(path)).load().steps[0]
        assert [obs.shape for obs in step.observations] == [(2,), (1,)]

    def test_record_does_not_mutate_caller_step(self) -> None:
        sensor = VectorSensor("s", size=1)
        step = _step()
        recorder, _ = _recorder()
        recorder.initialize("demo", _params())
        recorder.record(step, sensors=[sensor])
        assert step.observations == []


# ---------------------------------------------------------------------------
# Sequencing
# ---------------------------------------------------------------------------


class TestSequencing:
    def test_record_before_initialize_raises(self) -> None:
        recorder, fs = _recorder()
        with pytest.raises(InvalidSequencingError):
            recorder.record(_step())
        assert fs.files == []

    def test_close_before_initialize_raises(self) -> None:
        recorder, _ = _recorder()
        with pytest.raises(InvalidSequencingError):
            recorder.close()

    def test_double_initialize_raises(self) -> None:
        recorder, _ = _recorder()
        recorder.initialize("demo", _params())
        with pytest.raises(InvalidSequencingError):
            recorder.initialize("demo", _params())

    def test_double_close_raises_and_keeps_file(self) -> None:
        recorder, fs = _recorder()
        path = recorder.initialize("demo", _params())
        recorder.record(_step(1.0, done=True))
        recorder.close()
        finalized = fs.read_bytes(path)

        with pytest.raises(InvalidSequencingError) as excinfo:
            recorder.close()
        assert excinfo.value.operation == "close"
        assert excinfo.value.state == "closed"
        assert fs.read_bytes(path) == finalized
        assert DemonstrationReader(finalized).metadata.episode_count == 2

    def test_record_after_close_raises(self) -> None:
        recorder, fs = _recorder()
        path = recorder.initialize("demo", _params())
        recorder.close()
        finalized = fs.read_bytes(path)
        with pytest.raises(InvalidSequencingError):
            recorder.record(_step())
        assert fs.read_bytes(path) == finalized

    def test_state_transitions(self) -> None:
        recorder, _ = _recorder()
        assert recorder.state is RecorderState.NEW
        recorder.initialize("demo", _params())
        assert recorder.is_recording
        recorder.close()
        assert recorder.is_closed
        assert not recorder.is_recording


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_directory_creation_failure(self) -> None:
        fs = MagicMock(spec=FileSystem)
        fs.exists.return_value = False
        fs.create_directory.side_effect = PermissionError("denied")
        recorder = DemonstrationRecorder(file_system=fs)
        with pytest.raises(DirectoryCreationError) as excinfo:
            recorder.initialize("demo", _params())
        assert isinstance(excinfo.value.__cause__, PermissionError)
        fs.create_file.assert_not_called()

    def test_existing_directory_is_not_recreated(self) -> None:
        fs = MagicMock(spec=FileSystem)
        fs.exists.side_effect = lambda path: Path(path) == Path(_DIR)
        fs.create_file.return_value = io.BytesIO()
        recorder = DemonstrationRecorder(file_system=fs)
        recorder.initialize("demo", _params())
        fs.create_directory.assert_not_called()

    def test_file_creation_failure(self) -> None:
        fs = MagicMock(spec=FileSystem)
        fs.exists.return_value = False
        fs.create_file.side_effect = OSError("read-only file system")
        recorder = DemonstrationRecorder(file_system=fs)
        with pytest.raises(FileCreationError) as excinfo:
            recorder.initialize("demo", _params())
        assert excinfo.value.path == Path(_DIR) / "demo.demo"

    def test_seek_failure_during_initialize(self) -> None:
        stream = _FlakyStream()
        stream.fail_seek = True
        recorder = DemonstrationRecorder(file_system=_flaky_fs(stream))
        with pytest.raises(SeekError):
            recorder.initialize("demo", _params())
        assert recorder.is_closed
        assert stream.closed

    def test_write_failure_during_record(self) -> None:
        stream = _FlakyStream()
        recorder = DemonstrationRecorder(file_system=_flaky_fs(stream))
        recorder.initialize("demo", _params())
        stream.fail_write = True
        with pytest.raises(WriteError) as excinfo:
            recorder.record(_step())
        assert isinstance(excinfo.value.__cause__, OSError)

    def test_seek_failure_during_close_is_surfaced(self) -> None:
        stream = _FlakyStream()
        recorder = DemonstrationRecorder(file_system=_flaky_fs(stream))
        recorder.initialize("demo", _params())
        recorder.record(_step())
        stream.fail_seek = True
        with pytest.raises(SeekError):
            recorder.close()
        assert recorder.is_closed
        assert stream.closed

    def test_write_failure_during_close_is_surfaced(self) -> None:
        stream = _FlakyStream()
        recorder = DemonstrationRecorder(file_system=_flaky_fs(stream))
        recorder.initialize("demo", _params())
        stream.fail_write = True
        with pytest.raises(WriteError):
            recorder.close()
        assert recorder.is_closed

    def test_unencodable_parameters_leave_no_session(self) -> None:
        recorder, fs = _recorder()
        parameters = SessionParameters.model_construct(brain_name="W", action_shape=(2**31,))
        with pytest.raises(ValueError):
            recorder.initialize("demo", parameters)
        assert recorder.state is RecorderState.NEW
        assert fs.files == []
        with pytest.raises(InvalidSequencingError):
            recorder.record(_step())

    def test_unexpected_error_while_writing_header_closes_stream(self) -> None:
        stream = _FlakyStream()
        stream.write = MagicMock(side_effect=RuntimeError("interrupted"))  # type: ignore[method-assign]
        recorder = DemonstrationRecorder(file_system=_flaky_fs(stream))
        with pytest.raises(RuntimeError, match="interrupted"):
            recorder.initialize("demo", _params())
        assert recorder.is_closed
        assert stream.closed
        with pytest.raises(InvalidSequencingError):
            recorder.close()


# ---------------------------------------------------------------------------
# Metadata capacity
# ---------------------------------------------------------------------------


class TestMetadataCapacity:
    def test_name_too_long_for_header_is_rejected_before_file_creation(self) -> None:
        recorder, fs = _recorder()
        with pytest.raises(MetadataOverflowError) as excinfo:
            recorder.initialize("a-very-long-demonstration-name", _params())
        assert excinfo.value.capacity == 32
        assert excinfo.value.size > 32
        assert fs.files == []
        assert recorder.state is RecorderState.NEW

    def test_longest_name_that_fits(self) -> None:
        recorder, _ = _recorder()
        name = "x" * 11
        assert RecordingMetadata.worst_case_size(name) == 32
        recorder.initialize(name, _params())
        recorder.close()

    def test_overflow_error_is_a_value_error(self) -> None:
        recorder, _ = _recorder()
        with pytest.raises(ValueError):
            recorder.initialize("x" * 12, _params())


# ---------------------------------------------------------------------------
# Context manager and local disk
# ---------------------------------------------------------------------------


class TestContextManagerAndDisk:
    def test_context_manager_closes_session(self) -> None:
        fs = InMemoryFileSystem()
        with DemonstrationRecorder(file_system=fs) as recorder:
            path = recorder.initialize("demo", _params())
            recorder.record(_step(4.0))
        assert recorder.is_closed
        metadata = DemonstrationReader(fs.read_bytes(path)).metadata
        assert metadata.episode_count == 1
        assert metadata.mean_reward == pytest.approx(4.0)

    def test_context_manager_error_leaves_header_unfinalized(self) -> None:
        fs = InMemoryFileSystem()
        with pytest.raises(KeyError, match="boom"):
            with DemonstrationRecorder(file_system=fs) as recorder:
                path = recorder.initialize("demo", _params())
                recorder.record(_step(4.0, done=True))
                raise KeyError("boom")
        assert recorder.is_closed
        reader = DemonstrationReader(fs.read_bytes(path))
        assert reader.metadata.experience_count == 0
        assert reader.metadata.episode_count == 0
        assert len(list(reader.iter_steps())) == 1

    def test_context_manager_without_initialize(self) -> None:
        with DemonstrationRecorder(file_system=InMemoryFileSystem()) as recorder:
            pass
        assert recorder.state is RecorderState.NEW

    def test_local_file_system_writes_to_disk(self, tmp_path: Path) -> None:
        config = RecorderConfig(directory=tmp_path / "demos")
        recorder = DemonstrationRecorder(file_system=LocalFileSystem(), config=config)
        path = recorder.initialize("disk", _params())
        recorder.record(_step(1.0, done=True))
        recorder.close()

        assert Path(path) == tmp_path / "demos" / "disk.demo"
        demonstration = DemonstrationReader(path).load()
        assert demonstration.metadata.experience_count == 1
        assert demonstration.path == Path(path)

    def test_default_file_system_is_local(self) -> None:
        recorder = DemonstrationRecorder()
        assert isinstance(recorder._file_system, LocalFileSystem)

    def test_repr(self) -> None:
        recorder, _ = _recorder()
        assert "DemonstrationRecorder" in repr(recorder)
        assert "new" in repr(recorder)
