"""RecorderConfig — where and how demonstration files are written.

The defaults reproduce the classic ``Demonstrations/<name>.demo`` layout with
a 32-byte metadata header.  Readers must use the same ``metadata_capacity``
as the writer, since the parameter block offset is derived from it.

Configs can be kept in YAML files::

    directory: recordings/expert
    extension: .demo
    metadata_capacity: 64
"""
from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_METADATA_CAPACITY: int = 32


class RecorderConfig(BaseModel):
    """Static configuration shared by the recorder and the reader.

    Attributes
    ----------
    directory:
        Directory that receives the demonstration files.  Created on
        ``initialize`` if it does not exist.
    extension:
        File extension, including the leading dot.
    metadata_capacity:
        Number of bytes reserved for the serialized metadata message (not
        counting its length prefix).
    max_name_attempts:
        Upper bound on the number of ``<name>_<n>`` candidates tried before
        giving up on finding a free file name.
    """

    directory: Path = Path("Demonstrations")
    extension: str = ".demo"
    metadata_capacity: int = Field(default=DEFAULT_METADATA_CAPACITY, gt=0)
    max_name_attempts: int = Field(default=10_000, gt=0)

    model_config = {"frozen": True}

    @field_validator("extension")
    @classmethod
    def _normalise_extension(cls, value: str) -> str:
        if value and not value.startswith("."):
            return f".{value}"
        return value

    @property
    def framing_overhead(self) -> int:
        """Size of the length prefix of a message filling the whole region."""
        return framing_overhead(self.metadata_capacity)

    @property
    def parameter_offset(self) -> int:
        """Fixed byte offset of the session parameter block."""
        return parameter_offset(self.metadata_capacity)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "RecorderConfig":
        """Load a config from a YAML mapping.  An empty file yields defaults."""
        source = Path(path)
        with source.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(
                f"Recorder config {source} must contain a mapping, "
                f"got {type(data).__name__}."
            )
        logger.debug("Loaded recorder config from %s", source)
        return cls.model_validate(data)


def framing_overhead(metadata_capacity: int) -> int:
    """Bytes taken by the varint length prefix for *metadata_capacity*."""
    # The demonstrations package imports this module, so import late.
    from agent_demo_recorder.demonstrations.codec import varint_size

    return varint_size(metadata_capacity)


def parameter_offset(metadata_capacity: int) -> int:
    """Return the offset right after the reserved metadata region."""
    return metadata_capacity + framing_overhead(metadata_capacity)
