"""Sensor ABC, encoded observations, and the vector sensor."""
from __future__ import annotations

from agent_demo_recorder.sensors.base import (
    CompressionType,
    EncodedObservation,
    Sensor,
    VectorSensor,
)

__all__ = [
    "CompressionType",
    "EncodedObservation",
    "Sensor",
    "VectorSensor",
]
