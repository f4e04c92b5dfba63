"""Non-blocking incremental line extraction with exact byte offsets."""

from __future__ import annotations

import codecs
from pathlib import Path
from typing import Iterator, Union

from .exceptions import SourceUnavailableError
from .logs import get_logger
from .models import TextBlock
from .sources import ByteSource, FileByteSource

log = get_logger("reader")

DEFAULT_INITIAL_CAPACITY = 4096
DEFAULT_MAX_RECORDS = 100

_LF = 0x0A
_CR = 0x0D


class IncrementalLineReader:
    """Resumable line reader over a byte source that may still be growing.

    A blocking ``readline()`` is unusable on a file another process keeps
    appending to: it would wait for a terminator that may never come.
    Instead, each ``poll()`` reads only the bytes available right now into
    a growable buffer and returns the complete lines found there. A
    partial line stays buffered until its terminator arrives (or until it
    is flushed at end of stream when auto-flush is on).

    Lines end at ``\\n``, ``\\r\\n`` or a lone ``\\r``. A ``\\r`` that is the
    last buffered byte is held back, since the matching ``\\n`` may still
    be on its way.

    Every block carries its absolute byte span, and ``position`` is always
    the end offset of the last emitted block: persisting it and calling
    ``seek()`` on a fresh reader resumes without loss or duplication.

    Example:
        >>> with IncrementalLineReader.open("app.log") as reader:
        ...     reader.seek(saved_offset)
        ...     for block in reader.poll(max_records=500):
        ...         handle(block.content)
        ...     saved_offset = reader.position
    """

    def __init__(
        self,
        source: ByteSource,
        encoding: str = "utf-8",
        initial_capacity: int = DEFAULT_INITIAL_CAPACITY,
        auto_flush: bool = True,
        errors: str = "strict",
    ) -> None:
        """Create a reader owning the given source.

        Args:
            source: Byte source to read from. The reader takes ownership and
                closes it on close().
            encoding: Text encoding of the source. Must encode ``\\n`` and
                ``\\r`` as the single ASCII bytes (utf-8, latin-1, ascii, ...)
            initial_capacity: Initial buffer size in bytes. The buffer
                doubles whenever a single line doesn't fit.
            auto_flush: Emit the unterminated tail as a final block once the
                source has no more data
            errors: Decoding error handler passed to bytes.decode()

        Raises:
            ValueError: If the encoding is unknown or not ASCII-compatible,
                or initial_capacity < 1
        """
        if initial_capacity < 1:
            raise ValueError("initial_capacity must be >= 1")
        try:
            codecs.lookup(encoding)
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {encoding!r}") from e
        if "\n".encode(encoding) != b"\n" or "\r".encode(encoding) != b"\r":
            raise ValueError(
                f"Encoding {encoding!r} is not ASCII-compatible; "
                "line terminators can't be located in its byte stream"
            )

        self._source: ByteSource | None = source
        self._encoding = encoding
        self._errors = errors
        self._initial_capacity = initial_capacity
        self._auto_flush = auto_flush

        self._buffer = bytearray(initial_capacity)
        self._fill = 0
        self._position = 0

    @classmethod
    def open(cls, file_path: Union[str, Path], **kwargs) -> "IncrementalLineReader":
        """Open a reader over a file on disk.

        Raises:
            SourceUnavailableError: If the file can't be opened
            ValueError: If the reader options are invalid
        """
        source = FileByteSource(file_path)
        try:
            return cls(source, **kwargs)
        except BaseException:
            source.close()
            raise

    # ─────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────

    @property
    def position(self) -> int:
        """Absolute offset of the first byte not yet attributed to a block."""
        return self._position

    @property
    def encoding(self) -> str:
        return self._encoding

    @property
    def capacity(self) -> int:
        """Current buffer capacity in bytes."""
        return len(self._buffer)

    @property
    def auto_flush(self) -> bool:
        return self._auto_flush

    @auto_flush.setter
    def auto_flush(self, enabled: bool) -> None:
        self._auto_flush = enabled

    def set_auto_flush(self, enabled: bool) -> None:
        """Enable or disable flushing of the unterminated tail at end of stream."""
        self._auto_flush = enabled

    @property
    def closed(self) -> bool:
        return self._source is None

    def remaining(self) -> bool:
        """True if bytes have been read that don't belong to any block yet."""
        return self._fill != 0

    def has_more(self) -> bool:
        """True if the next poll() can make progress right now.

        That is the case when the source has unread bytes, a complete
        line is already waiting in the buffer, or auto-flush will emit the
        buffered tail.
        """
        if self._source is None:
            return False
        if self._auto_flush and self._fill:
            return True
        return self._find_terminator() is not None or self._source.ready()

    # ─────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────

    def poll(self, max_records: int = DEFAULT_MAX_RECORDS) -> list[TextBlock]:
        """Return up to max_records complete lines available now.

        Never waits for data. Returns an empty list when no complete line
        can be formed from the bytes available.

        Raises:
            ValueError: If max_records < 1
            SourceUnavailableError: If the reader is closed or the source fails
            UnicodeDecodeError: If a line can't be decoded (strict errors)
        """
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        source = self._require_source()

        blocks: list[TextBlock] = []
        self._extract(blocks, max_records)

        while len(blocks) < max_records and source.ready():
            if self._fill == len(self._buffer):
                # Full buffer with no terminator in it: the line is longer
                self._grow()
            chunk = source.read(len(self._buffer) - self._fill)
            if not chunk:
                break
            end = self._fill + len(chunk)
            self._buffer[self._fill:end] = chunk
            self._fill = end
            self._extract(blocks, max_records)

        if (
            len(blocks) < max_records
            and self._auto_flush
            and self._fill
            and not source.ready()
        ):
            blocks.append(self._flush_tail())

        return blocks

    def __iter__(self) -> Iterator[TextBlock]:
        """Iterate blocks until no further line is available right now."""
        while True:
            blocks = self.poll()
            if not blocks:
                return
            yield from blocks

    def seek(self, offset: int | None) -> None:
        """Resume reading at an absolute byte offset.

        The source is forward-only, so the offset is reached by skipping
        bytes from the current stream position; buffered bytes before the
        offset are discarded. Seeking to 0 or None on a fresh reader is a
        no-op.

        If the source ends before the offset is reached, ``position``
        reflects the bytes actually skipped.

        Raises:
            ValueError: If offset is negative or behind the current position
            SourceUnavailableError: If skipping fails; ``position`` is left at
                the last byte skipped successfully
        """
        source = self._require_source()
        target = offset or 0
        if target < 0:
            raise ValueError(f"Offset must be >= 0, got {target}")

        if target < self._position:
            raise ValueError(
                f"Can't seek back to {target}: source is forward-only and "
                f"already at {self._position}"
            )

        stream_position = self._position + self._fill
        if target <= stream_position:
            # Target already read: drop the buffered bytes before it
            drop = target - self._position
            rest = self._fill - drop
            self._buffer[:rest] = self._buffer[drop:self._fill]
            self._fill = rest
            self._position = target
            return

        self._buffer = bytearray(self._initial_capacity)
        self._fill = 0
        self._position = stream_position

        log.debug("Skipping to offset %d", target)
        try:
            while self._position < target:
                skipped = source.skip(target - self._position)
                if skipped <= 0:
                    log.warning(
                        "Source ended at %d before reaching offset %d",
                        self._position,
                        target,
                    )
                    break
                self._position += skipped
        except SourceUnavailableError:
            log.error("Failed to skip to offset %d (stopped at %d)", target, self._position)
            raise
        log.debug("Skipped to offset %d", self._position)

    # ─────────────────────────────────────────────────────────────────
    # Buffer handling
    # ─────────────────────────────────────────────────────────────────

    def _find_terminator(self) -> tuple[int, int] | None:
        """Locate the first line terminator in the buffer.

        Returns:
            (content_end, next_start) or None if no complete line is buffered
        """
        buf, fill = self._buffer, self._fill
        lf = buf.find(b"\n", 0, fill)
        cr = buf.find(b"\r", 0, fill if lf == -1 else lf)
        if cr != -1:
            if cr + 1 >= fill:
                # Can't tell \r from \r\n yet
                return None
            return cr, (cr + 2 if buf[cr + 1] == _LF else cr + 1)
        if lf != -1:
            return lf, lf + 1
        return None

    def _extract(self, blocks: list[TextBlock], max_records: int) -> None:
        while len(blocks) < max_records:
            found = self._find_terminator()
            if found is None:
                return
            until, next_start = found
            blocks.append(self._take(until, next_start))

    def _take(self, until: int, next_start: int) -> TextBlock:
        """Emit buffer[:until] as a block and drop buffer[:next_start]."""
        content = self._buffer[:until].decode(self._encoding, self._errors)
        block = TextBlock(
            content=content,
            start_offset=self._position,
            end_offset=self._position + next_start,
            length=until,
        )
        rest = self._fill - next_start
        self._buffer[:rest] = self._buffer[next_start:self._fill]
        self._fill = rest
        self._position += next_start
        return block

    def _flush_tail(self) -> TextBlock:
        log.info(
            "End of stream reached - flushing %d remaining bytes from reader buffer",
            self._fill,
        )
        until = self._fill
        if self._buffer[until - 1] == _CR:
            # No \n will ever follow: the \r terminates the line
            until -= 1
        return self._take(until, self._fill)

    def _grow(self) -> None:
        size = len(self._buffer)
        self._buffer.extend(bytes(size))
        log.debug("Grew reader buffer from %d to %d bytes", size, len(self._buffer))

    def _require_source(self) -> ByteSource:
        if self._source is None:
            raise SourceUnavailableError(repr(self), "reader is closed")
        return self._source

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Close the source and discard unflushed bytes. Idempotent."""
        source, self._source = self._source, None
        self._fill = 0
        if source is not None:
            try:
                source.close()
            except OSError as e:
                log.error("Failed to close reader source: %s", e)

    def __enter__(self) -> "IncrementalLineReader":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"IncrementalLineReader(position={self._position}, "
            f"buffered={self._fill}, encoding={self._encoding!r})"
        )
