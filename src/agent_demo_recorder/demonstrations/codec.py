"""Wire schema and length-delimited framing for demonstration files.

Messages are protobuf (proto3) messages whose descriptors are built at import
time, so no ``protoc`` step is needed.  Each message is framed the way
protobuf's ``writeDelimitedTo`` does it: a varint length prefix followed by
the serialized message.

Schema
------
::

    DemonstrationMetaProto   api_version, demonstration_name, number_steps,
                             number_episodes, mean_reward
    ObservationSpecProto     name, shape, compression_type
    SessionParametersProto   brain_name, observation_specs, action_shape,
                             action_space_type, action_descriptions, is_training
    ObservationProto         shape, compression_type, compressed_data, float_data
    StepRecordProto          observations, action, reward, done,
                             max_step_reached, agent_id, action_mask

Field numbers are part of the file format and must never be reused.
"""
from __future__ import annotations

from typing import BinaryIO, TypeVar

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.internal.decoder import _DecodeVarint32
from google.protobuf.internal.encoder import _VarintBytes
from google.protobuf.message import DecodeError, Message

from agent_demo_recorder.errors import DemonstrationFormatError

_PACKAGE = "agent_demo_recorder"
_FIELD = descriptor_pb2.FieldDescriptorProto

MessageT = TypeVar("MessageT", bound=Message)


def _add_field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    field_type: int,
    repeated: bool = False,
    type_name: str | None = None,
) -> None:
    field = message.field.add()
    field.name = name
    field.number = number
    field.type = field_type  # type: ignore[assignment]
    field.label = _FIELD.LABEL_REPEATED if repeated else _FIELD.LABEL_OPTIONAL  # type: ignore[assignment]
    if type_name is not None:
        field.type_name = f".{_PACKAGE}.{type_name}"


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = f"{_PACKAGE}/demonstration.proto"
    file_proto.package = _PACKAGE
    file_proto.syntax = "proto3"

    meta = file_proto.message_type.add()
    meta.name = "DemonstrationMetaProto"
    _add_field(meta, "api_version", 1, _FIELD.TYPE_INT32)
    _add_field(meta, "demonstration_name", 2, _FIELD.TYPE_STRING)
    _add_field(meta, "number_steps", 3, _FIELD.TYPE_INT32)
    _add_field(meta, "number_episodes", 4, _FIELD.TYPE_INT32)
    _add_field(meta, "mean_reward", 5, _FIELD.TYPE_FLOAT)

    spec = file_proto.message_type.add()
    spec.name = "ObservationSpecProto"
    _add_field(spec, "name", 1, _FIELD.TYPE_STRING)
    _add_field(spec, "shape", 2, _FIELD.TYPE_INT32, repeated=True)
    _add_field(spec, "compression_type", 3, _FIELD.TYPE_INT32)

    params = file_proto.message_type.add()
    params.name = "SessionParametersProto"
    _add_field(params, "brain_name", 1, _FIELD.TYPE_STRING)
    _add_field(
        params,
        "observation_specs",
        2,
        _FIELD.TYPE_MESSAGE,
        repeated=True,
        type_name="ObservationSpecProto",
    )
    _add_field(params, "action_shape", 3, _FIELD.TYPE_INT32, repeated=True)
    _add_field(params, "action_space_type", 4, _FIELD.TYPE_INT32)
    _add_field(params, "action_descriptions", 5, _FIELD.TYPE_STRING, repeated=True)
    _add_field(params, "is_training", 6, _FIELD.TYPE_BOOL)

    observation = file_proto.message_type.add()
    observation.name = "ObservationProto"
    _add_field(observation, "shape", 1, _FIELD.TYPE_INT32, repeated=True)
    _add_field(observation, "compression_type", 2, _FIELD.TYPE_INT32)
    _add_field(observation, "compressed_data", 3, _FIELD.TYPE_BYTES)
    _add_field(observation, "float_data", 4, _FIELD.TYPE_FLOAT, repeated=True)

    step = file_proto.message_type.add()
    step.name = "StepRecordProto"
    _add_field(
        step,
        "observations",
        1,
        _FIELD.TYPE_MESSAGE,
        repeated=True,
        type_name="ObservationProto",
    )
    _add_field(step, "action", 2, _FIELD.TYPE_FLOAT, repeated=True)
    _add_field(step, "reward", 3, _FIELD.TYPE_FLOAT)
    _add_field(step, "done", 4, _FIELD.TYPE_BOOL)
    _add_field(step, "max_step_reached", 5, _FIELD.TYPE_BOOL)
    _add_field(step, "agent_id", 6, _FIELD.TYPE_INT32)
    _add_field(step, "action_mask", 7, _FIELD.TYPE_BOOL, repeated=True)

    return file_proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_build_file_descriptor().SerializeToString())


def _message_class(name: str) -> type[Message]:
    return message_factory.GetMessageClass(
        _POOL.FindMessageTypeByName(f"{_PACKAGE}.{name}")
    )


DemonstrationMetaProto = _message_class("DemonstrationMetaProto")
ObservationSpecProto = _message_class("ObservationSpecProto")
SessionParametersProto = _message_class("SessionParametersProto")
ObservationProto = _message_class("ObservationProto")
StepRecordProto = _message_class("StepRecordProto")


# ---------------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------------


def varint_size(value: int) -> int:
    """Number of bytes the varint encoding of *value* takes."""
    return len(_VarintBytes(value))


def encode_delimited(message: Message) -> bytes:
    """Serialize *message* with a varint length prefix."""
    payload = message.SerializeToString()
    return _VarintBytes(len(payload)) + payload


def write_delimited(stream: BinaryIO, message: Message) -> int:
    """Write *message* length-delimited at the current stream position.

    Returns the number of bytes written, prefix included.
    """
    data = encode_delimited(message)
    stream.write(data)
    return len(data)


def read_delimited(
    buffer: bytes | memoryview,
    position: int,
    message_class: type[MessageT],
) -> tuple[MessageT, int]:
    """Decode one length-delimited message starting at *position*.

    Returns
    -------
    tuple
        The decoded message and the position right after it.

    Raises
    ------
    DemonstrationFormatError
        If the prefix or the message body is truncated or malformed.
    """
    try:
        length, start = _DecodeVarint32(buffer, position)
    except (IndexError, DecodeError) as exc:
        raise DemonstrationFormatError(
            f"Truncated length prefix at offset {position}."
        ) from exc
    end = start + length
    if end > len(buffer):
        raise DemonstrationFormatError(
            f"{message_class.DESCRIPTOR.name} at offset {position} declares "
            f"{length} bytes but only {len(buffer) - start} remain."
        )
    message = message_class()
    try:
        message.ParseFromString(bytes(buffer[start:end]))
    except DecodeError as exc:
        raise DemonstrationFormatError(
            f"Could not decode {message_class.DESCRIPTOR.name} at offset {position}."
        ) from exc
    return message, end
