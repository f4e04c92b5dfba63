"""Ordered filter chain execution."""

from __future__ import annotations

from typing import Iterable, Iterator

from .exceptions import ChainInitializationError, FatalChainError, RecordTransformError
from .logs import get_logger
from .models import ChainResult, FileContext, Record, RecordFailure
from .stages import FilterStage

log = get_logger("chain")


class FilterChain:
    """Runs records through a fixed sequence of stages.

    Stage *i*'s output list is the whole input of stage *i+1*, so a
    record may fan out or disappear at any stage. Stage order is fixed at
    construction.

    The ``has_next`` flag tells stages whether more input follows. Within
    a batch every record but the last is applied with ``has_next=True``;
    the last one gets the caller's flag. When the flag is False each
    stage is drained once after its input, and whatever it releases flows
    through the stages after it. Stages are drained at most once per
    init(); later calls with has_next=False only pass records through.

    Example:
        >>> chain = FilterChain([JsonStage(), DropStage()])
        >>> chain.init(FileContext(path="/data/app.log", name="app.log"))
        >>> result = chain.apply(records, has_next=reader.has_more())
        >>> for record in result.records:
        ...     send(record.value)
    """

    def __init__(self, stages: Iterable[FilterStage]) -> None:
        self._stages = tuple(stages)
        self._context: FileContext | None = None
        self._drained = False

    @property
    def stages(self) -> tuple[FilterStage, ...]:
        return self._stages

    @property
    def context(self) -> FileContext | None:
        return self._context

    @property
    def drained(self) -> bool:
        """True once the chain has been applied with has_next=False."""
        return self._drained

    def init(self, context: FileContext) -> None:
        """Initialize every stage, in order, for a new input file.

        Raises:
            ChainInitializationError: If any stage fails to initialize
        """
        for stage in self._stages:
            try:
                stage.init(context)
            except Exception as e:
                raise ChainInitializationError(stage.label, e) from e
        self._context = context
        self._drained = False
        log.debug("Initialized %d stages for %s", len(self._stages), context.path)

    def apply(self, records: Iterable[Record], has_next: bool) -> ChainResult:
        """Run a batch of records through all stages.

        Args:
            records: Input records, in offset order
            has_next: False if these are the last records of the input file

        Returns:
            Output records plus the recoverable per-record failures

        Raises:
            RuntimeError: If init() wasn't called
            FatalChainError: If a stage fails structurally; the rest of the
                batch is abandoned
        """
        if self._context is None:
            raise RuntimeError("FilterChain.init() must be called before apply()")

        result = ChainResult()
        batch = list(records)
        drain = not has_next and not self._drained
        for stage in self._stages:
            batch = self._run_stage(stage, batch, has_next, drain, result.failures)
        result.records = batch

        if not has_next:
            self._drained = True
        return result

    def _run_stage(
        self,
        stage: FilterStage,
        records: list[Record],
        has_next: bool,
        drain: bool,
        failures: list[RecordFailure],
    ) -> list[Record]:
        out: list[Record] = []
        last = len(records) - 1

        for i, record in enumerate(records):
            try:
                if not stage.accept(record):
                    out.append(record)
                    continue
                out.extend(stage.apply(record, has_next if i == last else True))
            except RecordTransformError as e:
                failed = record.with_error(f"{stage.label}: {e}")
                failures.append(RecordFailure(failed, stage.label, e))
                log.warning("Stage '%s' failed on record: %s", stage.label, e)
                if stage.ignore_failure:
                    out.append(failed)
            except Exception as e:
                raise FatalChainError(stage.label, e) from e

        if drain:
            try:
                out.extend(stage.drain())
            except Exception as e:
                raise FatalChainError(stage.label, e) from e
        return out

    def pending_offset(self) -> int | None:
        """Start offset of the earliest line any stage still holds, if any."""
        offsets = [o for o in (s.pending_offset() for s in self._stages) if o is not None]
        return min(offsets, default=None)

    def __len__(self) -> int:
        return len(self._stages)

    def __iter__(self) -> Iterator[FilterStage]:
        return iter(self._stages)

    def __repr__(self) -> str:
        return f"FilterChain({[s.label for s in self._stages]!r})"
