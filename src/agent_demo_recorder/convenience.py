"""Convenience API for agent-demo-recorder.

One call gets a recorder that is ready to accept steps::

    from agent_demo_recorder import SessionParameters, quick_recorder

    recorder = quick_recorder("expert", SessionParameters(brain_name="Walker"))
    recorder.record(step)
    recorder.close()
"""
from __future__ import annotations

from pathlib import Path

from agent_demo_recorder.config import RecorderConfig
from agent_demo_recorder.demonstrations.models import SessionParameters
from agent_demo_recorder.demonstrations.recorder import DemonstrationRecorder
from agent_demo_recorder.filesystem import FileSystem


def quick_recorder(
    name: str,
    parameters: SessionParameters,
    directory: str | Path | None = None,
    file_system: FileSystem | None = None,
) -> DemonstrationRecorder:
    """Create and initialize a :class:`DemonstrationRecorder`.

    Parameters
    ----------
    name:
        Session name; the file becomes ``<directory>/<name>.demo``.
    parameters:
        Session parameters written to the file header.
    directory:
        Output directory.  Defaults to the :class:`RecorderConfig` default.
    file_system:
        Optional file system override (e.g. an in-memory one for tests).

    Returns
    -------
    DemonstrationRecorder
        A recorder in the recording state.
    """
    config = RecorderConfig() if directory is None else RecorderConfig(directory=Path(directory))
    recorder = DemonstrationRecorder(file_system=file_system, config=config)
    recorder.initialize(name, parameters)
    return recorder
