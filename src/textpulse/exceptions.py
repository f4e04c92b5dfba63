"""Custom exceptions for textpulse."""

from pathlib import Path


class TextPulseError(Exception):
    """Base class for all textpulse errors."""


class SourceUnavailableError(TextPulseError):
    """Raised when the underlying byte source can't be opened, read or skipped.

    Fatal for the file concerned. The reader never retries on its own;
    retry policy belongs to whoever schedules the reads.

    Attributes:
        path: Path (or description) of the unavailable source
    """

    def __init__(self, path: Path | str, reason: str = "") -> None:
        self.path = str(path)
        self.reason = reason
        message = f"Source unavailable: {self.path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


# ─────────────────────────────────────────────────────────────────────
# Filter Chain Exceptions
# ─────────────────────────────────────────────────────────────────────


class MissingArgumentError(TextPulseError):
    """A stage's required argument is absent at prepare time.

    Attributes:
        stage: Registered name of the stage
        argument: Name of the missing argument
    """

    def __init__(self, stage: str, argument: str) -> None:
        self.stage = stage
        self.argument = argument
        super().__init__(f"Missing required argument '{argument}' for stage '{stage}'")


class ChainInitializationError(TextPulseError):
    """A stage failed to initialize; the chain can't process the file.

    Attributes:
        stage: Name of the failing stage
    """

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        super().__init__(f"Failed to initialize stage '{stage}': {cause}")


class FatalChainError(TextPulseError):
    """A structural failure aborted the current chain invocation.

    Attributes:
        stage: Name of the failing stage
    """

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        super().__init__(f"Stage '{stage}' failed: {cause}")


class RecordTransformError(TextPulseError):
    """Recoverable failure while transforming a single record.

    Raised by stages for bad input (a malformed row, invalid JSON, ...).
    The chain records it against the record and carries on with the rest
    of the batch.
    """


# ─────────────────────────────────────────────────────────────────────
# Checkpoint Exceptions
# ─────────────────────────────────────────────────────────────────────


class StaleCheckpointError(TextPulseError):
    """Raised when a file no longer matches its saved checkpoint.

    The file shrank below the checkpointed offset, so the checkpoint can't
    describe a position in it anymore. Delete the checkpoint and restart
    from the beginning.
    """


class InvalidCheckpointError(TextPulseError):
    """Raised when a checkpoint offset is negative or otherwise unusable."""


# ─────────────────────────────────────────────────────────────────────
# Async Tailing Exceptions
# ─────────────────────────────────────────────────────────────────────


class AsyncTailError(TextPulseError):
    """Base class for errors raised while tailing a file asynchronously."""


class FileDeletedError(AsyncTailError):
    """File was deleted while being tailed.

    Attributes:
        file_path: Path to the deleted file
    """

    def __init__(self, file_path: Path | str) -> None:
        self.file_path = Path(file_path)
        super().__init__(f"File was deleted during tailing: {self.file_path}")


class FileTruncatedError(AsyncTailError):
    """File shrank below the current read position.

    Attributes:
        file_path: Path to the truncated file
        expected_size: Minimum size in bytes implied by the read position
        actual_size: Current size in bytes
    """

    def __init__(
        self, file_path: Path | str, expected_size: int, actual_size: int
    ) -> None:
        self.file_path = Path(file_path)
        self.expected_size = expected_size
        self.actual_size = actual_size
        super().__init__(
            f"File was truncated during tailing: {self.file_path} "
            f"(expected at least {expected_size} bytes, got {actual_size} bytes)"
        )
