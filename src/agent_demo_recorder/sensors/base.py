"""Sensor ABC and the EncodedObservation it produces.

A sensor renders the current state of one observation source into an
:class:`EncodedObservation`.  The recorder attaches the encodings of all
active sensors to each step in sensor registration order; readers rely on
that order to match observations with the specs in the session parameters.

CompressionType enum
--------------------
``NONE`` observations carry raw float32 data.  Any other value means the
payload is an opaque, already-compressed byte string (e.g. a PNG frame)
produced outside this package.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from math import prod

import numpy as np
from numpy.typing import NDArray


class CompressionType(IntEnum):
    """Encoding of an observation payload.  Values are stored in the file."""

    NONE = 0
    PNG = 1


@dataclass
class EncodedObservation:
    """One rendered observation, ready to be written to a step record.

    Attributes
    ----------
    shape:
        Logical shape of the observation, e.g. ``(8,)`` or ``(84, 84, 3)``.
    float_data:
        Flattened float32 values for uncompressed observations.
    compressed_data:
        Opaque payload for compressed observations.
    compression:
        How the payload is encoded.
    """

    shape: tuple[int, ...]
    float_data: NDArray[np.float32] | None = None
    compressed_data: bytes = b""
    compression: CompressionType = CompressionType.NONE

    def __post_init__(self) -> None:
        self.shape = tuple(int(dim) for dim in self.shape)
        self.compression = CompressionType(self.compression)
        if any(dim < 0 for dim in self.shape):
            raise ValueError(f"Observation shape must be non-negative, got {self.shape}.")
        if self.compression is CompressionType.NONE:
            if self.compressed_data:
                raise ValueError("Uncompressed observations must not carry compressed_data.")
            values = np.asarray(
                self.float_data if self.float_data is not None else [],
                dtype=np.float32,
            ).reshape(-1)
            if values.size != prod(self.shape):
                raise ValueError(
                    f"float_data has {values.size} values but shape {self.shape} "
                    f"requires {prod(self.shape)}."
                )
            self.float_data = values
        else:
            if self.float_data is not None:
                raise ValueError("Compressed observations must not carry float_data.")
            if not self.compressed_data:
                raise ValueError("Compressed observations need a non-empty payload.")

    def to_array(self) -> NDArray[np.float32]:
        """Return uncompressed data reshaped to :attr:`shape`."""
        if self.compression is not CompressionType.NONE or self.float_data is None:
            raise ValueError(
                f"Cannot convert a {self.compression.name} observation to an array."
            )
        return self.float_data.reshape(self.shape)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EncodedObservation):
            return NotImplemented
        if (
            self.shape != other.shape
            or self.compression != other.compression
            or self.compressed_data != other.compressed_data
        ):
            return False
        if self.float_data is None or other.float_data is None:
            return self.float_data is None and other.float_data is None
        return bool(np.array_equal(self.float_data, other.float_data))


class Sensor(ABC):
    """Abstract base class for observation sources.

    Subclasses must implement :attr:`observation_shape` and :meth:`encode`.

    Parameters
    ----------
    name:
        Identifier of this sensor, stored in the session parameters.
    compression:
        Encoding the sensor produces.
    """

    def __init__(
        self, name: str, compression: CompressionType = CompressionType.NONE
    ) -> None:
        self._name = name
        self._compression = CompressionType(compression)

    @property
    def name(self) -> str:
        """Sensor identifier."""
        return self._name

    @property
    def compression(self) -> CompressionType:
        """Encoding of the observations this sensor produces."""
        return self._compression

    @property
    @abstractmethod
    def observation_shape(self) -> tuple[int, ...]:
        """Shape of every observation this sensor produces."""

    @abstractmethod
    def encode(self) -> EncodedObservation:
        """Render the current observation."""

    def reset(self) -> None:
        """Optional: clear any per-episode state.  Default is a no-op."""

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"name={self._name!r}, "
            f"shape={self.observation_shape})"
        )


class VectorSensor(Sensor):
    """Sensor that emits the most recent float vector passed to :meth:`observe`.

    Parameters
    ----------
    name:
        Sensor identifier.
    size:
        Length of the observation vector.

    Usage
    -----
    ::

        sensor = VectorSensor("proprioception", size=3)
        sensor.observe([0.1, 0.2, 0.3])
        recorder.record(step, sensors=[sensor])
    """

    def __init__(self, name: str, size: int) -> None:
        if size <= 0:
            raise ValueError(f"VectorSensor size must be positive, got {size}.")
        super().__init__(name)
        self._size = size
        self._values: NDArray[np.float32] = np.zeros(size, dtype=np.float32)

    @property
    def observation_shape(self) -> tuple[int, ...]:
        return (self._size,)

    def observe(self, values: NDArray[np.float32] | list[float]) -> None:
        """Replace the buffered observation with *values*."""
        array = np.asarray(values, dtype=np.float32).reshape(-1)
        if array.size != self._size:
            raise ValueError(
                f"VectorSensor {self._name!r} expects {self._size} values, "
                f"got {array.size}."
            )
        self._values = array.copy()

    def encode(self) -> EncodedObservation:
        return EncodedObservation(shape=(self._size,), float_data=self._values.copy())

    def reset(self) -> None:
        self._values = np.zeros(self._size, dtype=np.float32)
