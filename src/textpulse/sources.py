"""Byte sources the line reader pulls from."""

from __future__ import annotations

import os
from pathlib import Path
from typing import IO, Protocol, Union, runtime_checkable

from .exceptions import SourceUnavailableError
from .logs import get_logger

log = get_logger("sources")


@runtime_checkable
class ByteSource(Protocol):
    """Minimal readable byte stream.

    Implementations must never block: ``read()`` returns whatever is
    available right now (possibly nothing), and ``ready()`` tells whether
    a read would currently return data.
    """

    def ready(self) -> bool:
        """True if at least one byte can be read without waiting."""
        ...

    def read(self, size: int) -> bytes:
        """Read up to size currently available bytes."""
        ...

    def skip(self, size: int) -> int:
        """Skip forward up to size bytes. Returns the number skipped."""
        ...

    def close(self) -> None:
        ...


class FileByteSource:
    """ByteSource over a regular file that may still be growing.

    Readiness is decided by comparing the handle position with the current
    file size, so bytes appended by another writer become visible on the
    next ``ready()`` call.

    Example:
        >>> source = FileByteSource("app.log")
        >>> while source.ready():
        ...     chunk = source.read(4096)
    """

    def __init__(self, file_path: Union[str, Path]) -> None:
        """Open the file for binary reading.

        Raises:
            SourceUnavailableError: If the file can't be opened
        """
        self._file_path = Path(file_path).resolve()
        try:
            log.debug("Opening file %s", self._file_path)
            self._handle: IO[bytes] | None = open(self._file_path, "rb")
        except OSError as e:
            raise SourceUnavailableError(self._file_path, e.strerror or str(e)) from e

    @property
    def file_path(self) -> Path:
        return self._file_path

    @property
    def closed(self) -> bool:
        return self._handle is None

    def _require_handle(self) -> IO[bytes]:
        if self._handle is None:
            raise SourceUnavailableError(self._file_path, "source is closed")
        return self._handle

    def size(self) -> int:
        """Current size of the underlying file in bytes."""
        handle = self._require_handle()
        try:
            return os.fstat(handle.fileno()).st_size
        except OSError as e:
            raise SourceUnavailableError(self._file_path, str(e)) from e

    def ready(self) -> bool:
        if self._handle is None:
            return False
        return self._handle.tell() < self.size()

    def read(self, size: int) -> bytes:
        handle = self._require_handle()
        try:
            return handle.read(size)
        except OSError as e:
            raise SourceUnavailableError(self._file_path, str(e)) from e

    def skip(self, size: int) -> int:
        handle = self._require_handle()
        try:
            current = handle.tell()
            # Never skip past the end; the caller must see the shortfall
            target = min(current + size, self.size())
            handle.seek(target)
            return target - current
        except OSError as e:
            raise SourceUnavailableError(self._file_path, str(e)) from e

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            log.debug("Closed file %s", self._file_path)

    def __repr__(self) -> str:
        return f"FileByteSource({str(self._file_path)!r})"
