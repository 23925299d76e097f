"""DemonstrationReader — decode demonstration files written by the recorder.

The reader needs only the ``metadata_capacity`` the file was written with:
the metadata is decoded at offset 0, the session parameters at the fixed
parameter offset, and step records follow until end of file.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from agent_demo_recorder.config import DEFAULT_METADATA_CAPACITY, parameter_offset
from agent_demo_recorder.demonstrations.codec import (
    DemonstrationMetaProto,
    SessionParametersProto,
    StepRecordProto,
    read_delimited,
)
from agent_demo_recorder.demonstrations.models import (
    API_VERSION,
    RecordingMetadata,
    SessionParameters,
    StepRecord,
)
from agent_demo_recorder.errors import DemonstrationFormatError

logger = logging.getLogger(__name__)


@dataclass
class Demonstration:
    """A fully decoded demonstration file.

    Attributes
    ----------
    metadata:
        Finalized header statistics.
    parameters:
        Session parameters.
    steps:
        All step records in write order.
    path:
        Source file, if loaded from disk.
    """

    metadata: RecordingMetadata
    parameters: SessionParameters
    steps: list[StepRecord] = field(default_factory=list)
    path: Path | None = None

    @property
    def total_reward(self) -> float:
        return float(sum(step.reward for step in self.steps))

    def episodes(self) -> list[list[StepRecord]]:
        """Split the steps at terminal steps.  A trailing open episode is kept."""
        episodes: list[list[StepRecord]] = []
        current: list[StepRecord] = []
        for step in self.steps:
            current.append(step)
            if step.done:
                episodes.append(current)
                current = []
        if current:
            episodes.append(current)
        return episodes

    def summary(self) -> dict[str, object]:
        """Return key facts as a plain dict."""
        return {
            "name": self.metadata.name,
            "brain_name": self.parameters.brain_name,
            "experience_count": self.metadata.experience_count,
            "episode_count": self.metadata.episode_count,
            "mean_reward": self.metadata.mean_reward,
            "steps_in_file": len(self.steps),
        }


class DemonstrationReader:
    """Parses a demonstration file held in memory.

    Parameters
    ----------
    source:
        Path of the file, or its raw bytes.
    metadata_capacity:
        Size of the reserved metadata region the file was written with.
    """

    def __init__(
        self,
        source: str | Path | bytes,
        metadata_capacity: int = DEFAULT_METADATA_CAPACITY,
    ) -> None:
        if isinstance(source, (bytes, bytearray)):
            self._path: Path | None = None
            self._buffer = bytes(source)
        else:
            self._path = Path(source)
            self._buffer = self._path.read_bytes()
        self._parameter_offset = parameter_offset(metadata_capacity)
        if len(self._buffer) < self._parameter_offset:
            raise DemonstrationFormatError(
                f"File is {len(self._buffer)} bytes, shorter than the "
                f"{self._parameter_offset}-byte metadata region.",
                path=self._path,
            )
        self._metadata: RecordingMetadata | None = None
        self._parameters: SessionParameters | None = None
        self._steps_offset: int | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def metadata(self) -> RecordingMetadata:
        if self._metadata is None:
            proto, end = read_delimited(self._buffer, 0, DemonstrationMetaProto)
            if end > self._parameter_offset:
                raise DemonstrationFormatError(
                    f"Metadata overruns the reserved region ({end} > "
                    f"{self._parameter_offset} bytes).",
                    path=self._path,
                )
            if proto.api_version != API_VERSION:
                logger.warning(
                    "Demonstration %s has api_version %d, expected %d",
                    self._path,
                    proto.api_version,
                    API_VERSION,
                )
            self._metadata = self._convert(RecordingMetadata.from_proto, proto)
        return self._metadata

    @property
    def parameters(self) -> SessionParameters:
        if self._parameters is None:
            self._steps_offset = self._parse_parameters()
        assert self._parameters is not None
        return self._parameters

    def _parse_parameters(self) -> int:
        proto, end = read_delimited(
            self._buffer, self._parameter_offset, SessionParametersProto
        )
        self._parameters = self._convert(SessionParameters.from_proto, proto)
        return end

    def iter_steps(self) -> Iterator[StepRecord]:
        """Yield the step records in write order."""
        if self._steps_offset is None:
            self._steps_offset = self._parse_parameters()
        position = self._steps_offset
        while position < len(self._buffer):
            proto, position = read_delimited(self._buffer, position, StepRecordProto)
            yield self._convert(StepRecord.from_proto, proto)

    def load(self) -> Demonstration:
        """Decode the whole file."""
        demonstration = Demonstration(
            metadata=self.metadata,
            parameters=self.parameters,
            steps=list(self.iter_steps()),
            path=self._path,
        )
        if demonstration.metadata.experience_count != len(demonstration.steps):
            logger.warning(
                "Demonstration %s declares %d steps but contains %d",
                self._path,
                demonstration.metadata.experience_count,
                len(demonstration.steps),
            )
        logger.info(
            "Loaded %d steps from %s", len(demonstration.steps), self._path or "<bytes>"
        )
        return demonstration

    def _convert(self, factory, proto):  # type: ignore[no-untyped-def]
        try:
            return factory(proto)
        except (ValidationError, ValueError) as exc:
            raise DemonstrationFormatError(
                f"Invalid {proto.DESCRIPTOR.name}: {exc}", path=self._path
            ) from exc


def load_demonstration(
    path: str | Path,
    metadata_capacity: int = DEFAULT_METADATA_CAPACITY,
) -> Demonstration:
    """Read and decode the demonstration file at *path*."""
    return DemonstrationReader(path, metadata_capacity=metadata_capacity).load()
