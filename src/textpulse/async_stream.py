"""Async tailing of a live file."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Union

from .exceptions import FileDeletedError, FileTruncatedError
from .logs import get_logger
from .models import TextBlock
from .reader import DEFAULT_INITIAL_CAPACITY, DEFAULT_MAX_RECORDS, IncrementalLineReader

log = get_logger("tail")


class AsyncTailContext:
    """Async context manager that follows a file as it grows.

    Polls an IncrementalLineReader from a worker thread and sleeps between
    polls when nothing new is available, so many files can be tailed from
    one event loop. Partial lines are held until their terminator arrives.

    Provides:
    - File existence/truncation validation on entry and while idle
    - Guaranteed cleanup on exit (even on break/exception)
    - Progress tracking (position, yielded_count)

    Example:
        >>> async with AsyncTailContext("app.log", start_offset=saved) as tail:
        ...     async for block in tail:
        ...         await publish(block.content)
        ...     saved = tail.position
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        start_offset: int = 0,
        *,
        batch_size: int = DEFAULT_MAX_RECORDS,
        poll_interval: float = 0.25,
        idle_timeout: float | None = 1.0,
        flush_on_idle: bool = False,
        encoding: str = "utf-8",
        initial_capacity: int = DEFAULT_INITIAL_CAPACITY,
    ) -> None:
        """Initialize the tail context.

        Args:
            file_path: File to follow
            start_offset: Byte offset to resume from
            batch_size: Maximum lines read per thread hop
            poll_interval: Seconds to sleep when no complete line is available
            idle_timeout: Stop after this many idle seconds (None = until closed)
            flush_on_idle: On idle timeout, emit a trailing partial line
                as a final block before stopping
            encoding: Text encoding of the file
            initial_capacity: Initial reader buffer size in bytes
        """
        self._file_path = Path(file_path).resolve()
        self._start_offset = start_offset
        self._batch_size = batch_size
        self._poll_interval = poll_interval
        self._idle_timeout = idle_timeout
        self._flush_on_idle = flush_on_idle
        self._encoding = encoding
        self._initial_capacity = initial_capacity

        self._reader: IncrementalLineReader | None = None
        self._closed = False
        self._yielded_count = 0
        self._position = start_offset
        self._iterator: AsyncIterator[TextBlock] | None = None

    async def __aenter__(self) -> "AsyncTailContext":
        """Enter async context, validating file state and opening the reader.

        Raises:
            FileDeletedError: If the file doesn't exist
            FileTruncatedError: If the file is shorter than start_offset
        """
        if not self._file_path.exists():
            raise FileDeletedError(self._file_path)

        current_size = self._file_path.stat().st_size
        if current_size < self._start_offset:
            raise FileTruncatedError(self._file_path, self._start_offset, current_size)

        self._reader = IncrementalLineReader.open(
            self._file_path,
            encoding=self._encoding,
            initial_capacity=self._initial_capacity,
            auto_flush=False,
        )
        self._reader.seek(self._start_offset)
        self._position = self._reader.position
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context, ensuring cleanup."""
        self._closed = True
        if self._iterator is not None and hasattr(self._iterator, "aclose"):
            await self._iterator.aclose()
            self._iterator = None
        if self._reader is not None:
            self._reader.close()

    def __aiter__(self) -> AsyncIterator[TextBlock]:
        """Return async iterator."""
        self._iterator = self._iterate()
        return self._iterator

    async def _iterate(self) -> AsyncIterator[TextBlock]:
        """Internal iteration logic."""
        if self._closed or self._reader is None:
            return

        reader = self._reader
        idle = 0.0
        while not self._closed:
            blocks = await asyncio.to_thread(reader.poll, self._batch_size)
            if blocks:
                idle = 0.0
                for block in blocks:
                    self._yielded_count += 1
                    self._position = block.end_offset
                    yield block
                continue

            self._check_file()
            if self._idle_timeout is not None and idle >= self._idle_timeout:
                if self._flush_on_idle and reader.remaining():
                    reader.set_auto_flush(True)
                    tail = await asyncio.to_thread(reader.poll, self._batch_size)
                    for block in tail:
                        self._yielded_count += 1
                        self._position = block.end_offset
                        yield block
                log.debug("No new data in %s for %.2fs, stopping", self._file_path, idle)
                return

            await asyncio.sleep(self._poll_interval)
            idle += self._poll_interval

    def _check_file(self) -> None:
        if not self._file_path.exists():
            raise FileDeletedError(self._file_path)
        size = self._file_path.stat().st_size
        consumed = self.position
        if size < consumed:
            raise FileTruncatedError(self._file_path, consumed, size)

    @property
    def position(self) -> int:
        """Offset just past the last yielded block."""
        return self._position

    @property
    def yielded_count(self) -> int:
        """Number of blocks yielded so far."""
        return self._yielded_count

    @property
    def closed(self) -> bool:
        """Whether the context has been closed."""
        return self._closed

    @property
    def file_path(self) -> Path:
        return self._file_path
