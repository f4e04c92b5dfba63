"""Shared fixtures and test doubles."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import Iterable

import pytest

from textpulse.exceptions import SourceUnavailableError


class ChunkedSource:
    """In-memory ByteSource delivering data in explicit chunks.

    Each read returns bytes from the current chunk only, so tests control
    exactly where read boundaries fall. ``feed()`` simulates a writer
    appending data later.
    """

    def __init__(self, chunks: Iterable[bytes] = (), skip_failures_after: int | None = None):
        self.chunks: deque[bytes] = deque(c for c in chunks if c)
        self.skip_failures_after = skip_failures_after
        self.skip_calls = 0
        self.close_calls = 0

    def feed(self, data: bytes) -> None:
        if data:
            self.chunks.append(data)

    def ready(self) -> bool:
        return bool(self.chunks)

    def read(self, size: int) -> bytes:
        if not self.chunks:
            return b""
        chunk = self.chunks[0]
        out, rest = chunk[:size], chunk[size:]
        if rest:
            self.chunks[0] = rest
        else:
            self.chunks.popleft()
        return out

    def skip(self, size: int) -> int:
        if self.skip_failures_after is not None and self.skip_calls >= self.skip_failures_after:
            raise SourceUnavailableError("memory", "skip failed")
        self.skip_calls += 1
        return len(self.read(size))

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def write_file(tmp_path: Path):
    """Write raw bytes to a file under tmp_path and return its path."""

    def _write(data: bytes, name: str = "input.txt") -> Path:
        file_path = tmp_path / name
        file_path.write_bytes(data)
        return file_path

    return _write


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    """Create a small CSV-like file with 20 lines."""
    file_path = tmp_path / "people.csv"
    with open(file_path, "w", newline="") as f:
        for i in range(20):
            f.write(f"user_{i},{20 + i}\n")
    return file_path
