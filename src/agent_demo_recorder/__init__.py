"""agent-demo-recorder — Record agent demonstrations into binary trace files.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Quick-start example
-------------------
>>> import agent_demo_recorder as adr
>>> adr.__version__
'0.1.0'

Subpackages
-----------
demonstrations:
    File data model, wire codec, recorder, and reader.
sensors:
    Sensor ABC and encoded observations.
cli:
    Command line inspection of demonstration files.
"""
from __future__ import annotations

__version__: str = "0.1.0"

from agent_demo_recorder.config import RecorderConfig
from agent_demo_recorder.convenience import quick_recorder

# -- Demonstrations -------------------------------------------------------
from agent_demo_recorder.demonstrations import (
    ActionSpaceType,
    Demonstration,
    DemonstrationReader,
    DemonstrationRecorder,
    ObservationSpec,
    RecorderState,
    RecordingMetadata,
    SessionParameters,
    StepRecord,
    load_demonstration,
)

# -- Errors ---------------------------------------------------------------
from agent_demo_recorder.errors import (
    DemonstrationFormatError,
    DirectoryCreationError,
    FileCreationError,
    InvalidSequencingError,
    MetadataOverflowError,
    RecordingError,
    SeekError,
    WriteError,
)

# -- File system ----------------------------------------------------------
from agent_demo_recorder.filesystem import FileSystem, InMemoryFileSystem, LocalFileSystem

# -- Sensors --------------------------------------------------------------
from agent_demo_recorder.sensors import (
    CompressionType,
    EncodedObservation,
    Sensor,
    VectorSensor,
)

__all__: list[str] = [
    "__version__",
    # convenience
    "quick_recorder",
    # config
    "RecorderConfig",
    # demonstrations
    "ActionSpaceType",
    "Demonstration",
    "DemonstrationReader",
    "DemonstrationRecorder",
    "ObservationSpec",
    "RecorderState",
    "RecordingMetadata",
    "SessionParameters",
    "StepRecord",
    "load_demonstration",
    # errors
    "RecordingError",
    "DirectoryCreationError",
    "FileCreationError",
    "WriteError",
    "SeekError",
    "InvalidSequencingError",
    "MetadataOverflowError",
    "DemonstrationFormatError",
    # file system
    "FileSystem",
    "LocalFileSystem",
    "InMemoryFileSystem",
    # sensors
    "CompressionType",
    "EncodedObservation",
    "Sensor",
    "VectorSensor",
]
