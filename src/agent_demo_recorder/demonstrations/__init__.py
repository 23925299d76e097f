"""Demonstration file format: data model, wire codec, recorder, and reader."""
from __future__ import annotations

from agent_demo_recorder.demonstrations.models import (
    API_VERSION,
    ActionSpaceType,
    ObservationSpec,
    RecordingMetadata,
    SessionParameters,
    StepRecord,
)
from agent_demo_recorder.demonstrations.reader import (
    Demonstration,
    DemonstrationReader,
    load_demonstration,
)
from agent_demo_recorder.demonstrations.recorder import (
    DemonstrationRecorder,
    RecorderState,
)

__all__ = [
    "API_VERSION",
    "ActionSpaceType",
    "ObservationSpec",
    "RecordingMetadata",
    "SessionParameters",
    "StepRecord",
    "Demonstration",
    "DemonstrationReader",
    "load_demonstration",
    "DemonstrationRecorder",
    "RecorderState",
]
