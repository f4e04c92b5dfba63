"""textpulse: incremental, resumable line ingestion through filter chains.

Example:
    >>> from textpulse import IncrementalLineReader
    >>> with IncrementalLineReader.open("app.log") as reader:
    ...     reader.seek(saved_offset)
    ...     for block in reader.poll(max_records=500):
    ...         print(block.start_offset, block.content)
    ...     saved_offset = reader.position
    >>>
    >>> # Filter chain built from a plan
    >>> chain = build_chain([
    ...     {"type": "multi_row", "params": {"pattern": r"^\\d{4}-"}},
    ...     {"type": "drop", "params": {"field": "level", "equals": "DEBUG"}},
    ... ])
    >>>
    >>> # Resumable ingestion with checkpoints
    >>> with FileIngestor("app.log", chain, checkpoint_path="app.ckpt") as ingestor:
    ...     for result in ingestor.run(batch_size=500):
    ...         send(result.records)
    >>>
    >>> # Async tailing of a live file
    >>> async with AsyncTailContext("app.log", idle_timeout=None) as tail:
    ...     async for block in tail:
    ...         await publish(block.content)
"""

from .async_stream import AsyncTailContext
from .chain import FilterChain
from .checkpoint import CheckpointStore
from .exceptions import (
    AsyncTailError,
    ChainInitializationError,
    FatalChainError,
    FileDeletedError,
    FileTruncatedError,
    InvalidCheckpointError,
    MissingArgumentError,
    RecordTransformError,
    SourceUnavailableError,
    StaleCheckpointError,
    TextPulseError,
)
from .ingest import FileIngestor
from .models import ChainResult, Checkpoint, FileContext, Record, RecordFailure, TextBlock
from .reader import IncrementalLineReader
from .registry import build_chain, create_stage, load_chain_config
from .sources import ByteSource, FileByteSource
from .stages import STAGES, FilterStage, register_stage

__version__ = "0.1.0"
__all__ = [
    # Reading
    "IncrementalLineReader",
    "TextBlock",
    "ByteSource",
    "FileByteSource",
    # Filtering
    "FilterChain",
    "FilterStage",
    "Record",
    "FileContext",
    "ChainResult",
    "RecordFailure",
    "STAGES",
    "register_stage",
    "create_stage",
    "build_chain",
    "load_chain_config",
    # Ingestion
    "FileIngestor",
    "Checkpoint",
    "CheckpointStore",
    "AsyncTailContext",
    # Exceptions
    "TextPulseError",
    "SourceUnavailableError",
    "MissingArgumentError",
    "ChainInitializationError",
    "FatalChainError",
    "RecordTransformError",
    "StaleCheckpointError",
    "InvalidCheckpointError",
    "AsyncTailError",
    "FileDeletedError",
    "FileTruncatedError",
]
