"""Data model of a demonstration file.

Three kinds of records live in a demonstration file:

* :class:`RecordingMetadata` — aggregate statistics in the reserved header.
* :class:`SessionParameters` — observation/action space description, written
  once right after the header.
* :class:`StepRecord` — one per recorded simulation step.

Each model converts to and from its wire message in
:mod:`agent_demo_recorder.demonstrations.codec`.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Sequence

import numpy as np
from google.protobuf.message import Message
from numpy.typing import NDArray
from pydantic import BaseModel, Field, InstanceOf, field_validator

from agent_demo_recorder.demonstrations.codec import (
    DemonstrationMetaProto,
    ObservationProto,
    ObservationSpecProto,
    SessionParametersProto,
    StepRecordProto,
)
from agent_demo_recorder.sensors.base import (
    CompressionType,
    EncodedObservation,
    Sensor,
)

API_VERSION: int = 1
INT32_MAX: int = 2**31 - 1
INT32_MIN: int = -(2**31)

# Shape entries are stored as int32 on the wire.
Dimension = Annotated[int, Field(ge=0, le=INT32_MAX)]


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class RecordingMetadata(BaseModel):
    """Aggregate statistics of a recording session.

    Attributes
    ----------
    name:
        Session name as given to ``initialize`` (without collision suffix).
    episode_count:
        Number of completed episodes.
    experience_count:
        Number of step records written.
    mean_reward:
        Cumulative reward divided by :attr:`episode_count`.  Only meaningful
        in the finalized header written on close; ``0.0`` before that.
    api_version:
        Version of the file format that produced this header.
    """

    name: str
    episode_count: int = Field(default=0, ge=0, le=INT32_MAX)
    experience_count: int = Field(default=0, ge=0, le=INT32_MAX)
    mean_reward: float = 0.0
    api_version: int = API_VERSION

    model_config = {"validate_assignment": True}

    def to_proto(self) -> Message:
        proto = DemonstrationMetaProto()
        proto.api_version = self.api_version
        proto.demonstration_name = self.name
        proto.number_steps = self.experience_count
        proto.number_episodes = self.episode_count
        proto.mean_reward = self.mean_reward
        return proto

    @classmethod
    def from_proto(cls, proto: Message) -> "RecordingMetadata":
        return cls(
            name=proto.demonstration_name,
            episode_count=proto.number_episodes,
            experience_count=proto.number_steps,
            mean_reward=proto.mean_reward,
            api_version=proto.api_version,
        )

    @classmethod
    def worst_case_size(cls, name: str) -> int:
        """Largest serialized size the metadata for *name* can ever reach.

        Counters at their maximum and a non-zero reward force every field
        onto the wire at its widest encoding.
        """
        widest = cls(
            name=name,
            episode_count=INT32_MAX,
            experience_count=INT32_MAX,
            mean_reward=-1.0,
        )
        return widest.to_proto().ByteSize()


# ---------------------------------------------------------------------------
# Session parameters
# ---------------------------------------------------------------------------


class ActionSpaceType(str, Enum):
    """Kind of action space the recorded agent acts in."""

    DISCRETE = "discrete"
    CONTINUOUS = "continuous"


_ACTION_SPACE_WIRE: dict[ActionSpaceType, int] = {
    ActionSpaceType.DISCRETE: 0,
    ActionSpaceType.CONTINUOUS: 1,
}
_ACTION_SPACE_FROM_WIRE = {value: key for key, value in _ACTION_SPACE_WIRE.items()}


class ObservationSpec(BaseModel):
    """Shape and encoding of one sensor's observations."""

    name: str = ""
    shape: tuple[Dimension, ...]
    compression: CompressionType = CompressionType.NONE

    model_config = {"frozen": True}

    @classmethod
    def from_sensor(cls, sensor: Sensor) -> "ObservationSpec":
        return cls(
            name=sensor.name,
            shape=sensor.observation_shape,
            compression=sensor.compression,
        )


class SessionParameters(BaseModel):
    """Observation and action space description of the recorded agent.

    Attributes
    ----------
    brain_name:
        Name of the behaviour being demonstrated.
    observation_specs:
        One entry per sensor, in the order observations appear in each step.
    action_shape:
        Continuous: ``(action_size,)``.  Discrete: one entry per branch
        holding that branch's number of choices.
    action_space_type:
        Discrete or continuous actions.
    action_descriptions:
        Optional human-readable label per action dimension.
    is_training:
        Whether the session was produced by a training run.
    """

    brain_name: str
    observation_specs: list[ObservationSpec] = Field(default_factory=list)
    action_shape: tuple[Dimension, ...] = ()
    action_space_type: ActionSpaceType = ActionSpaceType.CONTINUOUS
    action_descriptions: list[str] = Field(default_factory=list)
    is_training: bool = False

    model_config = {"frozen": True}

    @classmethod
    def from_sensors(
        cls,
        brain_name: str,
        sensors: Sequence[Sensor],
        **kwargs: Any,
    ) -> "SessionParameters":
        """Build parameters whose observation specs follow *sensors* order."""
        specs = [ObservationSpec.from_sensor(sensor) for sensor in sensors]
        return cls(brain_name=brain_name, observation_specs=specs, **kwargs)

    def to_proto(self) -> Message:
        proto = SessionParametersProto()
        proto.brain_name = self.brain_name
        for spec in self.observation_specs:
            spec_proto = ObservationSpecProto()
            spec_proto.name = spec.name
            spec_proto.shape.extend(spec.shape)
            spec_proto.compression_type = int(spec.compression)
            proto.observation_specs.add().CopyFrom(spec_proto)
        proto.action_shape.extend(self.action_shape)
        proto.action_space_type = _ACTION_SPACE_WIRE[self.action_space_type]
        proto.action_descriptions.extend(self.action_descriptions)
        proto.is_training = self.is_training
        return proto

    @classmethod
    def from_proto(cls, proto: Message) -> "SessionParameters":
        try:
            action_space_type = _ACTION_SPACE_FROM_WIRE[proto.action_space_type]
        except KeyError:
            raise ValueError(
                f"Unknown action space type {proto.action_space_type} in parameters."
            ) from None
        return cls(
            brain_name=proto.brain_name,
            observation_specs=[
                ObservationSpec(
                    name=spec.name,
                    shape=tuple(spec.shape),
                    compression=CompressionType(spec.compression_type),
                )
                for spec in proto.observation_specs
            ],
            action_shape=tuple(proto.action_shape),
            action_space_type=action_space_type,
            action_descriptions=list(proto.action_descriptions),
            is_training=proto.is_training,
        )


# ---------------------------------------------------------------------------
# Step records
# ---------------------------------------------------------------------------


def observation_to_proto(observation: EncodedObservation) -> Message:
    proto = ObservationProto()
    proto.shape.extend(observation.shape)
    proto.compression_type = int(observation.compression)
    if observation.compression is CompressionType.NONE:
        assert observation.float_data is not None
        proto.float_data.extend(observation.float_data.tolist())
    else:
        proto.compressed_data = observation.compressed_data
    return proto


def observation_from_proto(proto: Message) -> EncodedObservation:
    compression = CompressionType(proto.compression_type)
    if compression is CompressionType.NONE:
        return EncodedObservation(
            shape=tuple(proto.shape),
            float_data=np.array(proto.float_data, dtype=np.float32),
        )
    return EncodedObservation(
        shape=tuple(proto.shape),
        compressed_data=bytes(proto.compressed_data),
        compression=compression,
    )


class StepRecord(BaseModel):
    """One agent step as stored in the demonstration file.

    Attributes
    ----------
    observations:
        Encoded observations, one per sensor, in sensor registration order.
    action:
        Action taken at this step.
    reward:
        Reward received for this step.
    done:
        True when this step ends an episode.
    max_step_reached:
        True when the episode ended because of a step limit.
    agent_id:
        Identifier of the recorded agent.
    action_mask:
        Optional mask of the discrete actions available at this step.
    """

    model_config = {"arbitrary_types_allowed": True}

    observations: list[InstanceOf[EncodedObservation]] = Field(default_factory=list)
    action: NDArray[np.float32] = Field(
        default_factory=lambda: np.zeros(0, dtype=np.float32)
    )
    reward: float = 0.0
    done: bool = False
    max_step_reached: bool = False
    agent_id: int = Field(default=0, ge=INT32_MIN, le=INT32_MAX)
    action_mask: list[bool] = Field(default_factory=list)

    @field_validator("action", mode="before")
    @classmethod
    def _coerce_action(cls, value: Any) -> NDArray[np.float32]:
        return np.asarray(value, dtype=np.float32).reshape(-1)

    def with_observations(self, observations: Sequence[EncodedObservation]) -> "StepRecord":
        """Return a copy with *observations* appended in the given order."""
        return self.model_copy(
            update={"observations": [*self.observations, *observations]}
        )

    def to_proto(self) -> Message:
        proto = StepRecordProto()
        for observation in self.observations:
            proto.observations.add().CopyFrom(observation_to_proto(observation))
        proto.action.extend(self.action.tolist())
        proto.reward = self.reward
        proto.done = self.done
        proto.max_step_reached = self.max_step_reached
        proto.agent_id = self.agent_id
        proto.action_mask.extend(self.action_mask)
        return proto

    @classmethod
    def from_proto(cls, proto: Message) -> "StepRecord":
        return cls(
            observations=[observation_from_proto(obs) for obs in proto.observations],
            action=np.array(proto.action, dtype=np.float32),
            reward=proto.reward,
            done=proto.done,
            max_step_reached=proto.max_step_reached,
            agent_id=proto.agent_id,
            action_mask=list(proto.action_mask),
        )
