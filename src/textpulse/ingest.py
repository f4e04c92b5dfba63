"""Per-file ingestion: reader + filter chain + checkpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping, Union

from .chain import FilterChain
from .checkpoint import CheckpointStore
from .logs import get_logger
from .models import ChainResult, Checkpoint, FileContext, Record
from .reader import DEFAULT_INITIAL_CAPACITY, DEFAULT_MAX_RECORDS, IncrementalLineReader

log = get_logger("ingest")


class FileIngestor:
    """Resumable ingestion of one file through a filter chain.

    Opens the file, resumes from its saved checkpoint (if a checkpoint
    store is configured), and turns each reader poll into a
    ``ChainResult``. When the file is exhausted the chain is drained, so
    stages that buffer release what they hold.

    With ``auto_flush=False`` the file is treated as live: a trailing
    partial line stays buffered and the chain is never drained
    implicitly. Call ``finish()`` once the writer is known to be done.

    Example:
        >>> chain = load_chain_config("plan.yaml")
        >>> with FileIngestor("app.log", chain, checkpoint_path="app.ckpt") as ingestor:
        ...     for result in ingestor.run(batch_size=500):
        ...         send(result.records)
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        chain: FilterChain,
        checkpoint_path: Union[str, Path, None] = None,
        *,
        encoding: str = "utf-8",
        initial_capacity: int = DEFAULT_INITIAL_CAPACITY,
        auto_flush: bool = True,
        message_field: str = "message",
        hints: Mapping[str, Any] | None = None,
    ) -> None:
        """Create an ingestor. Nothing is opened until the context is entered.

        Args:
            file_path: File to ingest
            chain: Chain instance dedicated to this file
            checkpoint_path: Checkpoint store. None disables checkpointing.
            encoding: Text encoding of the file
            initial_capacity: Initial reader buffer size in bytes
            auto_flush: Treat the end of data as the end of the file
            message_field: Field name lines are stored under
            hints: Extra context handed to stages on init
        """
        self._file_path = Path(file_path).resolve()
        self._chain = chain
        self._store = CheckpointStore(checkpoint_path) if checkpoint_path else None
        self._encoding = encoding
        self._initial_capacity = initial_capacity
        self._auto_flush = auto_flush
        self._message_field = message_field
        self._hints = dict(hints or {})

        self._reader: IncrementalLineReader | None = None
        self._context: FileContext | None = None
        self._finished = False

    def __enter__(self) -> "FileIngestor":
        """Open the reader, resume from the checkpoint, init the chain.

        Raises:
            SourceUnavailableError: If the file can't be opened
            StaleCheckpointError: If the file shrank below the saved offset
            InvalidCheckpointError: If the saved offset is negative
            ChainInitializationError: If a stage fails to initialize
        """
        reader = IncrementalLineReader.open(
            self._file_path,
            encoding=self._encoding,
            initial_capacity=self._initial_capacity,
            auto_flush=self._auto_flush,
        )
        try:
            size = self._file_path.stat().st_size
            reader.seek(self._resume_offset(size))
            self._context = FileContext(
                path=str(self._file_path),
                name=self._file_path.name,
                size=size,
                hints=self._hints,
            )
            self._chain.init(self._context)
        except BaseException:
            reader.close()
            raise

        self._reader = reader
        self._finished = False
        log.debug("Ingesting %s from offset %d", self._file_path, reader.position)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Mark the file completed if it was fully drained, then close."""
        try:
            if exc_type is None and self._finished:
                self._save("completed")
        finally:
            if self._reader is not None:
                self._reader.close()
                self._reader = None

    def _resume_offset(self, size: int) -> int:
        if self._store is None:
            return 0
        offset = self._store.resume_offset(self._file_path, size)
        if offset:
            log.info("Resuming %s from offset %d", self._file_path, offset)
        return offset

    def _require_reader(self) -> IncrementalLineReader:
        if self._reader is None:
            raise RuntimeError(
                "FileIngestor must be used as a context manager. "
                "Use 'with FileIngestor(path, chain) as ingestor:'"
            )
        return self._reader

    def poll(self, max_records: int = DEFAULT_MAX_RECORDS) -> ChainResult:
        """Read up to max_records lines and run them through the chain.

        The chain sees ``has_next=False`` together with the last lines of
        the file, or alone if the file ended exactly at a poll boundary.
        Returns an empty result once the file is finished.

        Raises:
            FatalChainError: If a stage fails structurally
            SourceUnavailableError: If the file can't be read
        """
        reader = self._require_reader()
        if self._finished:
            return ChainResult()

        blocks = reader.poll(max_records)
        has_next = reader.has_more() or not self._auto_flush
        if not blocks and has_next:
            return ChainResult()

        records = [Record.from_block(b, self._message_field) for b in blocks]
        result = self._chain.apply(records, has_next)
        if not has_next:
            self._finished = True
        return result

    def finish(self) -> ChainResult:
        """Drain the chain: no more input will arrive for this file."""
        self._require_reader()
        if self._finished:
            return ChainResult()
        self._finished = True
        return self._chain.apply([], has_next=False)

    def run(self, batch_size: int = DEFAULT_MAX_RECORDS) -> Iterator[ChainResult]:
        """Yield chain results until no more data is available.

        A checkpoint is saved after each result has been consumed, i.e.
        when the loop asks for the next one.
        """
        reader = self._require_reader()
        while not self._finished:
            result = self.poll(batch_size)
            if not result.records and not result.failures and not self._finished:
                if not reader.has_more():
                    return
                continue
            yield result
            self.checkpoint()

    def checkpoint(self) -> None:
        """Persist the resume offset (no-op without a store).

        Lines a stage still buffers are not delivered yet, so the saved
        offset never passes the first of them.
        """
        self._require_reader()
        self._save("in_progress")

    @property
    def resume_offset(self) -> int:
        """Offset a restarted ingestion must read from to lose no line."""
        if self._reader is None:
            return 0
        held = self._chain.pending_offset()
        if held is None:
            return self._reader.position
        return min(self._reader.position, held)

    def _save(self, status: str) -> None:
        if self._store is None or self._reader is None:
            return
        self._store.save(
            Checkpoint(
                path=str(self._file_path),
                offset=self.resume_offset,
                file_size=self._file_path.stat().st_size,
                status=status,
                updated_at=datetime.now(timezone.utc).isoformat(),
            )
        )

    @property
    def position(self) -> int:
        """Current absolute read offset."""
        return self._reader.position if self._reader else 0

    @property
    def finished(self) -> bool:
        """True once the chain has been drained for this file."""
        return self._finished

    @property
    def context(self) -> FileContext | None:
        return self._context

    @property
    def file_path(self) -> Path:
        return self._file_path
