"""DemonstrationRecorder — stream agent steps into a demonstration file.

File layout
-----------
::

    [0, parameter_offset)      reserved metadata region
    [parameter_offset, X)      SessionParameters, length-delimited
    [X, EOF)                   StepRecord*, length-delimited, in write order

The metadata region is written twice.  ``initialize`` writes a placeholder
with zeroed counters; ``close`` seeks back to offset 0 and overwrites it with
the finalized statistics.  The parameter block always starts at the fixed
``parameter_offset`` so a reader can locate it without knowing how long the
metadata message actually is.
"""
from __future__ import annotations

import logging
from enum import Enum
from pathlib import PurePath
from typing import BinaryIO, Sequence

from google.protobuf.message import Message

from agent_demo_recorder.config import RecorderConfig
from agent_demo_recorder.demonstrations.codec import encode_delimited, write_delimited
from agent_demo_recorder.demonstrations.models import (
    RecordingMetadata,
    SessionParameters,
    StepRecord,
)
from agent_demo_recorder.errors import (
    DirectoryCreationError,
    FileCreationError,
    InvalidSequencingError,
    MetadataOverflowError,
    SeekError,
    WriteError,
)
from agent_demo_recorder.filesystem import FileSystem, LocalFileSystem
from agent_demo_recorder.sensors.base import Sensor

logger = logging.getLogger(__name__)


class RecorderState(str, Enum):
    """Lifecycle of a :class:`DemonstrationRecorder`."""

    NEW = "new"
    RECORDING = "recording"
    CLOSED = "closed"


class DemonstrationRecorder:
    """Writes one demonstration file per recording session.

    Parameters
    ----------
    file_system:
        Capability used to create the directory and the file.  Defaults to
        :class:`~agent_demo_recorder.filesystem.LocalFileSystem`.
    config:
        Output directory, extension, and header size.

    Usage
    -----
    ::

        recorder = DemonstrationRecorder()
        recorder.initialize("expert", parameters)
        for step in steps:
            recorder.record(step, sensors=sensors)
        recorder.close()

    Episodes
    --------
    ``close`` always counts one more episode, even when the last recorded
    step was already terminal.  A session without any terminal step
    therefore finalizes with ``episode_count == 1``.

    Context manager
    ---------------
    Leaving a ``with`` block normally calls :meth:`close`.  When the block
    raises, the stream is closed without patching the header, so the file
    keeps its zeroed placeholder counters and the original exception
    propagates unchanged.
    """

    def __init__(
        self,
        file_system: FileSystem | None = None,
        config: RecorderConfig | None = None,
    ) -> None:
        self._file_system = file_system if file_system is not None else LocalFileSystem()
        self._config = config if config is not None else RecorderConfig()
        self._state = RecorderState.NEW
        self._metadata: RecordingMetadata | None = None
        self._writer: BinaryIO | None = None
        self._path: PurePath | None = None
        self._cumulative_reward: float = 0.0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> RecorderConfig:
        return self._config

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is RecorderState.RECORDING

    @property
    def is_closed(self) -> bool:
        return self._state is RecorderState.CLOSED

    @property
    def path(self) -> PurePath | None:
        """Path of the demonstration file, once initialized."""
        return self._path

    @property
    def metadata(self) -> RecordingMetadata | None:
        """Snapshot of the running metadata (``None`` before ``initialize``)."""
        if self._metadata is None:
            return None
        return self._metadata.model_copy()

    @property
    def cumulative_reward(self) -> float:
        return self._cumulative_reward

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, name: str, parameters: SessionParameters) -> PurePath:
        """Create the demonstration file and write its header.

        Parameters
        ----------
        name:
            Session name.  The file is ``<directory>/<name><extension>``, or
            ``<name>_<n><extension>`` for the lowest ``n`` (counting from 0)
            whose file does not exist.  A free slot below higher taken
            suffixes is reused, so with ``foo_1`` present and ``foo_0``
            deleted the next session gets ``foo_0``.
        parameters:
            Session parameters written once at the fixed parameter offset.

        Returns
        -------
        PurePath
            Path of the created file.

        Raises
        ------
        InvalidSequencingError
            If the recorder was already initialized.
        MetadataOverflowError
            If the metadata for *name* could outgrow the reserved region.
        ValueError
            If *parameters* cannot be encoded.  Nothing is created.
        DirectoryCreationError, FileCreationError, SeekError, WriteError
            If the file cannot be set up.
        """
        if self._state is not RecorderState.NEW:
            raise InvalidSequencingError("initialize", self._state.value)

        worst_case = RecordingMetadata.worst_case_size(name)
        if worst_case > self._config.metadata_capacity:
            raise MetadataOverflowError(worst_case, self._config.metadata_capacity)

        parameters_proto = parameters.to_proto()

        self._create_directory()
        self._path = self._resolve_file_path(name)
        try:
            self._writer = self._file_system.create_file(self._path)
        except OSError as exc:
            raise FileCreationError(
                f"Could not create demonstration file {self._path}: {exc}",
                path=self._path,
            ) from exc

        self._metadata = RecordingMetadata(name=name)
        self._cumulative_reward = 0.0
        self._state = RecorderState.RECORDING
        try:
            self._write_metadata()
            self._write_parameters(parameters_proto)
        except Exception:
            self._abort()
            raise

        logger.info(
            "Recording demonstration %r to %s (brain=%r)",
            name,
            self._path,
            parameters.brain_name,
        )
        return self._path

    def record(self, step: StepRecord, sensors: Sequence[Sensor] | None = None) -> None:
        """Update the running statistics and append *step* to the file.

        Parameters
        ----------
        step:
            The step to store.  Its ``done`` flag closes the current episode.
        sensors:
            Optional sensors whose current encodings are appended to the
            step's observations, in the given order.
        """
        if self._state is not RecorderState.RECORDING:
            raise InvalidSequencingError("record", self._state.value)
        assert self._metadata is not None

        if sensors:
            step = step.with_observations([sensor.encode() for sensor in sensors])
        proto = step.to_proto()

        self._metadata.experience_count += 1
        self._cumulative_reward += step.reward
        if step.done:
            self._end_episode()

        self._write(proto, "step record")
        logger.debug(
            "Recorded step %d (reward=%.4f, done=%s)",
            self._metadata.experience_count,
            step.reward,
            step.done,
        )

    def close(self) -> RecordingMetadata:
        """Finalize the statistics, patch the header, and close the file.

        Returns
        -------
        RecordingMetadata
            The finalized metadata written to the header.

        Raises
        ------
        InvalidSequencingError
            If the recorder is not recording (never initialized or already
            closed).
        SeekError, WriteError
            If the header cannot be patched.  The file is closed anyway and
            must be considered corrupt.
        """
        if self._state is not RecorderState.RECORDING:
            raise InvalidSequencingError("close", self._state.value)
        assert self._metadata is not None

        self._end_episode()
        self._metadata.mean_reward = (
            self._cumulative_reward / self._metadata.episode_count
        )
        try:
            self._write_metadata()
        finally:
            self._abort()

        logger.info(
            "Closed demonstration %s: %d steps, %d episodes, mean reward %.4f",
            self._path,
            self._metadata.experience_count,
            self._metadata.episode_count,
            self._metadata.mean_reward,
        )
        return self._metadata.model_copy()

    # ------------------------------------------------------------------
    # Context manager support
    # ------------------------------------------------------------------

    def __enter__(self) -> "DemonstrationRecorder":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._state is not RecorderState.RECORDING:
            return
        if exc_type is not None:
            # Leave the placeholder header so the file reads as unfinished.
            logger.warning(
                "Abandoning demonstration %s after %s; header not finalized",
                self._path,
                exc_type.__name__,
            )
            self._abort()
            return
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _end_episode(self) -> None:
        assert self._metadata is not None
        self._metadata.episode_count += 1

    def _create_directory(self) -> None:
        directory = self._config.directory
        try:
            if not self._file_system.exists(directory):
                self._file_system.create_directory(directory)
        except OSError as exc:
            raise DirectoryCreationError(
                f"Could not create demonstration directory {directory}: {exc}",
                path=directory,
            ) from exc

    def _resolve_file_path(self, name: str) -> PurePath:
        directory = self._config.directory
        extension = self._config.extension
        candidate = directory / f"{name}{extension}"
        counter = 0
        while self._file_system.exists(candidate):
            if counter >= self._config.max_name_attempts:
                raise FileCreationError(
                    f"No free file name for {name!r} in {directory} after "
                    f"{counter} suffixed attempts.",
                    path=directory,
                )
            logger.debug("Demonstration file %s exists, trying next suffix", candidate)
            candidate = directory / f"{name}_{counter}{extension}"
            counter += 1
        return candidate

    def _seek(self, offset: int) -> None:
        assert self._writer is not None
        try:
            self._writer.seek(offset, 0)
        except (OSError, ValueError) as exc:
            raise SeekError(
                f"Could not seek to offset {offset} in {self._path}: {exc}",
                path=self._path,
            ) from exc

    def _write(self, proto: Message, what: str) -> None:
        assert self._writer is not None
        try:
            write_delimited(self._writer, proto)
        except (OSError, ValueError) as exc:
            raise WriteError(
                f"Could not write {what} to {self._path}: {exc}", path=self._path
            ) from exc

    def _write_metadata(self) -> None:
        assert self._metadata is not None
        proto = self._metadata.to_proto()
        size = len(encode_delimited(proto))
        if size > self._config.parameter_offset:
            raise MetadataOverflowError(size, self._config.parameter_offset)
        self._seek(0)
        self._write(proto, "metadata")

    def _write_parameters(self, proto: Message) -> None:
        self._seek(self._config.parameter_offset)
        self._write(proto, "session parameters")

    def _abort(self) -> None:
        """Close the stream and mark the recorder closed."""
        writer, self._writer = self._writer, None
        self._state = RecorderState.CLOSED
        if writer is not None:
            try:
                writer.close()
            except OSError as exc:
                raise WriteError(
                    f"Could not close {self._path}: {exc}", path=self._path
                ) from exc

    def __repr__(self) -> str:
        return (
            f"DemonstrationRecorder(path={str(self._path) if self._path else None!r}, "
            f"state={self._state.value!r})"
        )
