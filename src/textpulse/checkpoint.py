"""Per-file read offsets persisted as JSON, for resuming ingestion."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Union

from .exceptions import InvalidCheckpointError, StaleCheckpointError
from .logs import get_logger
from .models import Checkpoint

log = get_logger("checkpoint")

# Checkpoint file format version
FORMAT_VERSION = "1.0"


class CheckpointStore:
    """JSON file holding one checkpoint per ingested file.

    The store is small and rewritten whole on every update. Writes go to a
    sibling ``.tmp`` file that is renamed over the store, so a crash
    mid-write leaves the previous checkpoints readable.

    A store that is missing, unreadable or written by another format
    version reads as empty: ingestion then starts from the beginning of
    every file.

    Example:
        >>> store = CheckpointStore("ingest.checkpoint")
        >>> offset = store.resume_offset("/data/app.log", size=4096)
        >>> store.save(Checkpoint(path="/data/app.log", offset=2048, file_size=4096))
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Checkpoint]:
        """Read every checkpoint in the store, keyed by file path."""
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Ignoring unreadable checkpoint store %s: %s", self._path, e)
            return {}

        if not isinstance(data, dict) or data.get("format_version") != FORMAT_VERSION:
            log.warning("Ignoring checkpoint store %s with unknown format", self._path)
            return {}

        try:
            return {
                path: Checkpoint(path=path, **entry)
                for path, entry in data.get("files", {}).items()
            }
        except (TypeError, AttributeError) as e:
            log.warning("Ignoring malformed checkpoint store %s: %s", self._path, e)
            return {}

    def get(self, file_path: Union[str, Path]) -> Checkpoint | None:
        return self.load().get(str(file_path))

    def save(self, checkpoint: Checkpoint) -> None:
        """Add or replace one file's checkpoint, keeping the others."""
        checkpoints = self.load()
        checkpoints[checkpoint.path] = checkpoint
        self._write(checkpoints)

    def delete(self, file_path: Union[str, Path]) -> bool:
        """Forget a file's checkpoint. Returns False if there was none."""
        checkpoints = self.load()
        if checkpoints.pop(str(file_path), None) is None:
            return False
        self._write(checkpoints)
        return True

    def resume_offset(self, file_path: Union[str, Path], size: int) -> int:
        """Offset to resume a file of the given size from (0 without a checkpoint).

        Raises:
            InvalidCheckpointError: If the saved offset is negative
            StaleCheckpointError: If the file is now shorter than the saved offset
        """
        cp = self.get(file_path)
        if cp is None:
            return 0
        if cp.offset < 0:
            raise InvalidCheckpointError(
                f"Checkpoint offset {cp.offset} for {file_path} is negative"
            )
        if cp.offset > size:
            raise StaleCheckpointError(
                f"File {file_path} is {size} bytes but its checkpoint is at "
                f"offset {cp.offset}. Delete the checkpoint to start over."
            )
        return cp.offset

    def _write(self, checkpoints: dict[str, Checkpoint]) -> None:
        files = {}
        for path, cp in checkpoints.items():
            entry = asdict(cp)
            del entry["path"]
            files[path] = entry

        tmp = self._path.with_name(self._path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({"format_version": FORMAT_VERSION, "files": files}, f, separators=(",", ":"))
        tmp.replace(self._path)

    def __repr__(self) -> str:
        return f"CheckpointStore({str(self._path)!r})"
