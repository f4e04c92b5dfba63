"""Data models for textpulse."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Literal, Mapping


@dataclass(frozen=True, slots=True)
class TextBlock:
    """A single line extracted from a byte stream.

    Attributes:
        content: Decoded line content, terminator stripped
        start_offset: Absolute byte offset of the line's first byte
        end_offset: Absolute byte offset just past the consumed terminator
            (the offset a resume would seek to)
        length: Length in bytes of the content (terminator excluded)
    """

    content: str
    start_offset: int
    end_offset: int
    length: int

    @property
    def span(self) -> int:
        """Bytes consumed by this block, terminator included."""
        return self.end_offset - self.start_offset


@dataclass(frozen=True)
class Record:
    """A record flowing through a filter chain.

    Attributes:
        value: Record fields. Records built from a block hold ``{"message": ...}``
        block: The block this record originates from (None if synthesized)
        errors: Recoverable errors attached while filtering
    """

    value: dict[str, Any]
    block: TextBlock | None = None
    errors: tuple[str, ...] = ()

    @classmethod
    def from_block(cls, block: TextBlock, field_name: str = "message") -> "Record":
        """Wrap a block as a record with a single text field."""
        return cls(value={field_name: block.content}, block=block)

    def with_value(self, value: dict[str, Any], block: TextBlock | None = None) -> "Record":
        """Return a copy carrying a new value (and optionally a new block)."""
        return replace(self, value=value, block=block if block is not None else self.block)

    def with_error(self, message: str) -> "Record":
        return replace(self, errors=self.errors + (message,))

    @property
    def offset(self) -> int | None:
        """End offset of the originating block, usable as a checkpoint."""
        return self.block.end_offset if self.block else None


@dataclass(frozen=True)
class FileContext:
    """Initialization context handed to every stage of a chain.

    Attributes:
        path: Absolute path of the input file
        name: File name
        size: File size in bytes when processing started
        hints: Free-form hints (partitioning, source tags, ...)
    """

    path: str
    name: str
    size: int = 0
    hints: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RecordFailure:
    """A recoverable failure of one stage on one record."""

    record: Record
    stage: str
    error: Exception

    def __str__(self) -> str:
        where = f"@{self.record.block.start_offset}" if self.record.block else ""
        return f"[{self.stage}]{where} {self.error}"


@dataclass
class ChainResult:
    """Output of one FilterChain.apply() call.

    Attributes:
        records: Records emitted by the last stage, in order
        failures: Per-record recoverable failures
    """

    records: list[Record] = field(default_factory=list)
    failures: list[RecordFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class Checkpoint:
    """Persisted read position for one file.

    Attributes:
        path: Absolute path of the file
        offset: Next byte offset to read from
        file_size: File size in bytes when the checkpoint was saved
        status: Current processing status
        updated_at: ISO timestamp of the last update
    """

    path: str
    offset: int
    file_size: int
    status: Literal["in_progress", "completed"] = "in_progress"
    updated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
