"""File system capability used by the recorder.

The recorder never touches ``os`` or ``pathlib`` directly; it goes through a
:class:`FileSystem` so that tests can substitute :class:`InMemoryFileSystem`
and inspect the produced bytes without touching the disk.
"""
from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePath
from typing import BinaryIO

logger = logging.getLogger(__name__)


class FileSystem(ABC):
    """Minimal file system interface needed to create a demonstration file."""

    @abstractmethod
    def exists(self, path: str | PurePath) -> bool:
        """Return True if a file or directory exists at *path*."""

    @abstractmethod
    def create_directory(self, path: str | PurePath) -> None:
        """Create *path* and any missing parents.  Must be idempotent."""

    @abstractmethod
    def create_file(self, path: str | PurePath) -> BinaryIO:
        """Create or truncate *path* and return a seekable read-write stream."""


class LocalFileSystem(FileSystem):
    """:class:`FileSystem` backed by the local disk."""

    def exists(self, path: str | PurePath) -> bool:
        return Path(path).exists()

    def create_directory(self, path: str | PurePath) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def create_file(self, path: str | PurePath) -> BinaryIO:
        return Path(path).open("w+b")

    def __repr__(self) -> str:
        return "LocalFileSystem()"


class _RetainedBytesIO(io.BytesIO):
    """BytesIO that hands its contents back to the owning file system on close."""

    def __init__(self, owner: "InMemoryFileSystem", key: str) -> None:
        super().__init__()
        self._owner = owner
        self._key = key

    def flush(self) -> None:
        super().flush()
        if not self.closed:
            self._owner._files[self._key] = self.getvalue()

    def close(self) -> None:
        if not self.closed:
            self._owner._files[self._key] = self.getvalue()
        super().close()


class InMemoryFileSystem(FileSystem):
    """In-memory :class:`FileSystem` for tests.

    Paths are normalised to POSIX strings.  File contents survive the stream
    being closed and are available through :meth:`read_bytes`.

    Parameters
    ----------
    files:
        Optional mapping of pre-existing file paths to their contents.
    directories:
        Optional iterable of pre-existing directories.
    """

    def __init__(
        self,
        files: dict[str, bytes] | None = None,
        directories: list[str] | None = None,
    ) -> None:
        self._files: dict[str, bytes] = {
            self._key(path): data for path, data in (files or {}).items()
        }
        self._directories: set[str] = {self._key(d) for d in (directories or [])}

    @staticmethod
    def _key(path: str | PurePath) -> str:
        return PurePath(path).as_posix()

    def exists(self, path: str | PurePath) -> bool:
        key = self._key(path)
        return key in self._files or key in self._directories

    def create_directory(self, path: str | PurePath) -> None:
        current = PurePath(path)
        for parent in [current, *current.parents]:
            key = self._key(parent)
            if key != ".":
                self._directories.add(key)

    def create_file(self, path: str | PurePath) -> BinaryIO:
        key = self._key(path)
        parent = self._key(PurePath(key).parent)
        if parent != "." and parent not in self._directories:
            raise FileNotFoundError(f"No such directory: {parent!r}")
        self._files[key] = b""
        return _RetainedBytesIO(self, key)

    def read_bytes(self, path: str | PurePath) -> bytes:
        """Return the last flushed or closed contents of *path*."""
        key = self._key(path)
        if key not in self._files:
            raise FileNotFoundError(f"No such file: {key!r}")
        return self._files[key]

    @property
    def files(self) -> list[str]:
        """Sorted list of file paths currently known."""
        return sorted(self._files)

    def __repr__(self) -> str:
        return (
            f"InMemoryFileSystem(files={len(self._files)}, "
            f"directories={len(self._directories)})"
        )
