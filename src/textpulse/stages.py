"""Filter stages.

A stage receives records one at a time through ``apply(record, has_next)``
and returns 0..N output records. Stages that hold records back (e.g. to
group lines) must hand them over in ``drain()``, which the chain calls once
the input file is exhausted.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, ClassVar, Mapping

from .exceptions import MissingArgumentError, RecordTransformError
from .logs import get_logger
from .models import FileContext, Record, TextBlock

log = get_logger("stages")

PreparedArgs = dict[str, Any]

# Stage key -> stage class. Filled at import time by @register_stage.
STAGES: dict[str, type["FilterStage"]] = {}

def register_stage(name: str) -> Callable[[type[FilterStage]], type[FilterStage]]:
    """Class decorator registering a stage under a configuration key."""

    def decorator(cls: type[FilterStage]) -> type[FilterStage]:
        key = name.lower()
        if key in STAGES and STAGES[key] is not cls:
            raise ValueError(f"Stage type '{key}' is already registered")
        cls.name = key
        STAGES[key] = cls
        return cls

    return decorator


def field_exists(value: Any, path: str) -> bool:
    """Check whether a dotted field path resolves inside a dict-shaped value."""
    found, _ = _lookup(value, path)
    return found


def _lookup(value: Any, path: str) -> tuple[bool, Any]:
    current = value
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return False, None
        current = current[part]
    return True, current


def _as_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


class FilterStage:
    """Base stage: passes every record through unchanged.

    Subclasses declare ``required_args``/``default_args`` and override
    ``configure()`` to validate prepared arguments, ``apply()`` to
    transform, and ``drain()`` if they buffer.
    """

    name: ClassVar[str] = "stage"
    required_args: ClassVar[tuple[str, ...]] = ()
    default_args: ClassVar[Mapping[str, Any]] = {}

    def __init__(self, label: str | None = None, ignore_failure: bool = False) -> None:
        self.label = label or self.name
        self.ignore_failure = ignore_failure
        self.args: PreparedArgs | None = None
        self.context: FileContext | None = None

    def prepare(self, arguments: Mapping[str, Any]) -> PreparedArgs:
        """Resolve arguments against defaults and validate them.

        Raises:
            MissingArgumentError: If a required argument is absent
        """
        args: PreparedArgs = dict(self.default_args)
        args.update(arguments or {})
        for key in self.required_args:
            if args.get(key) is None:
                raise MissingArgumentError(self.name, key)
        self.args = self.configure(args)
        return self.args

    def configure(self, args: PreparedArgs) -> PreparedArgs:
        return args

    def init(self, context: FileContext) -> None:
        """Bind the stage to an input file. Called before the first apply()."""
        if self.args is None:
            raise RuntimeError(f"Stage '{self.label}' not prepared. Call prepare() before init().")
        self.context = context

    def accept(self, record: Record) -> bool:
        """Whether this stage applies to the record. Rejected records pass through."""
        return True

    def apply(self, record: Record, has_next: bool) -> list[Record]:
        return [record]

    def drain(self) -> list[Record]:
        """Flush records held back by the stage. Nothing more will be applied."""
        return []

    def pending_offset(self) -> int | None:
        """Start offset of the earliest line the stage holds back, if any.

        Stages that buffer records across apply() calls must override this,
        otherwise a checkpoint taken while they hold records skips them.
        """
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(label={self.label!r}, args={self.args!r})"


@register_stage("delimited_row")
class DelimitedRowStage(FilterStage):
    """Split a text field into named columns.

    Args:
        columns: Column names (list or comma separated string)
        separator: Field separator (default ",")
        trim: Strip whitespace around values
        source: Field holding the text (default "message")
        keep_source: Keep the source field in the output
    """

    required_args = ("columns",)
    default_args = {"separator": ",", "trim": False, "source": "message", "keep_source": False}

    def configure(self, args: PreparedArgs) -> PreparedArgs:
        args["columns"] = _as_list(args["columns"])
        if not args["columns"]:
            raise MissingArgumentError(self.name, "columns")
        if not args["separator"]:
            raise ValueError("separator must not be empty")
        return args

    def accept(self, record: Record) -> bool:
        return isinstance(record.value.get(self.args["source"]), str)

    def apply(self, record: Record, has_next: bool) -> list[Record]:
        args = self.args
        parts = record.value[args["source"]].split(args["separator"])
        columns = args["columns"]
        if len(parts) != len(columns):
            raise RecordTransformError(
                f"Expected {len(columns)} columns, got {len(parts)}"
            )
        if args["trim"]:
            parts = [p.strip() for p in parts]

        value = dict(record.value)
        if not args["keep_source"]:
            del value[args["source"]]
        value.update(zip(columns, parts))
        return [record.with_value(value)]


@register_stage("json")
class JsonStage(FilterStage):
    """Parse a text field as JSON.

    Objects are merged into the record; with ``target`` set, the parsed
    value is stored under that field instead.
    """

    default_args = {"source": "message", "target": None, "keep_source": False}

    def accept(self, record: Record) -> bool:
        return isinstance(record.value.get(self.args["source"]), str)

    def apply(self, record: Record, has_next: bool) -> list[Record]:
        source, target = self.args["source"], self.args["target"]
        try:
            parsed = json.loads(record.value[source])
        except json.JSONDecodeError as e:
            raise RecordTransformError(f"Invalid JSON in '{source}': {e}") from e

        value = dict(record.value)
        if not self.args["keep_source"]:
            del value[source]
        if target:
            value[target] = parsed
        elif isinstance(parsed, dict):
            value.update(parsed)
        else:
            raise RecordTransformError(
                f"JSON in '{source}' is a {type(parsed).__name__}, not an object; "
                "set 'target' to store it"
            )
        return [record.with_value(value)]


@register_stage("drop")
class DropStage(FilterStage):
    """Drop records matching a condition.

    Args:
        if_exists: Drop records where this (dotted) field exists
        field: Drop records where this field equals ``equals``
        equals: Value compared against ``field``
        invert: Keep matching records and drop everything else
    """

    default_args = {"if_exists": None, "field": None, "equals": None, "invert": False}

    def configure(self, args: PreparedArgs) -> PreparedArgs:
        if args["if_exists"] is None and args["field"] is None:
            raise MissingArgumentError(self.name, "if_exists")
        return args

    def accept(self, record: Record) -> bool:
        return isinstance(record.value, dict)

    def _matches(self, record: Record) -> bool:
        args = self.args
        if args["if_exists"] is not None:
            return field_exists(record.value, args["if_exists"])
        found, current = _lookup(record.value, args["field"])
        return found and current == args["equals"]

    def apply(self, record: Record, has_next: bool) -> list[Record]:
        if self._matches(record) != bool(self.args["invert"]):
            return []
        return [record]


@register_stage("exclude")
class ExcludeStage(FilterStage):
    """Remove fields from records."""

    required_args = ("fields",)

    def configure(self, args: PreparedArgs) -> PreparedArgs:
        args["fields"] = _as_list(args["fields"])
        return args

    def apply(self, record: Record, has_next: bool) -> list[Record]:
        fields = self.args["fields"]
        value = {k: v for k, v in record.value.items() if k not in fields}
        return [record.with_value(value)]


@register_stage("explode")
class ExplodeStage(FilterStage):
    """Fan a list-valued field out into one record per element.

    An empty list yields no records.
    """

    required_args = ("source",)

    def accept(self, record: Record) -> bool:
        return isinstance(record.value.get(self.args["source"]), list)

    def apply(self, record: Record, has_next: bool) -> list[Record]:
        source = self.args["source"]
        out = []
        for item in record.value[source]:
            value = dict(record.value)
            value[source] = item
            out.append(record.with_value(value))
        return out


@register_stage("multi_row")
class MultiRowStage(FilterStage):
    """Group consecutive lines into one record.

    A line matching ``pattern`` starts a new group and the following
    non-matching lines are appended to it (``negate`` swaps the roles).
    Typical use is folding stack traces into the log line that raised
    them. The open group is only complete once the next group starts, so
    the last one is emitted by ``drain()``.

    The grouped record spans from the first line's start offset to the
    last line's end offset.
    """

    required_args = ("pattern",)
    default_args = {"negate": False, "separator": "\n", "source": "message", "max_lines": None}

    def __init__(self, label: str | None = None, ignore_failure: bool = False) -> None:
        super().__init__(label, ignore_failure)
        self._group: list[Record] = []

    def configure(self, args: PreparedArgs) -> PreparedArgs:
        try:
            args["pattern"] = re.compile(args["pattern"])
        except re.error as e:
            raise ValueError(f"Invalid multi_row pattern: {e}") from e
        if args["max_lines"] is not None and int(args["max_lines"]) < 1:
            raise ValueError("max_lines must be >= 1")
        return args

    def init(self, context: FileContext) -> None:
        super().init(context)
        self._group = []

    def accept(self, record: Record) -> bool:
        return isinstance(record.value.get(self.args["source"]), str)

    @property
    def pending(self) -> int:
        """Number of lines held in the open group."""
        return len(self._group)

    def _starts_group(self, record: Record) -> bool:
        matched = self.args["pattern"].search(record.value[self.args["source"]]) is not None
        return matched != bool(self.args["negate"])

    def apply(self, record: Record, has_next: bool) -> list[Record]:
        out: list[Record] = []
        if self._group and self._starts_group(record):
            out.append(self._emit())
        self._group.append(record)

        max_lines = self.args["max_lines"]
        if max_lines is not None and len(self._group) >= int(max_lines):
            out.append(self._emit())
        return out

    def drain(self) -> list[Record]:
        if not self._group:
            return []
        log.debug("Draining %d buffered lines from '%s'", len(self._group), self.label)
        return [self._emit()]

    def pending_offset(self) -> int | None:
        offsets = [r.block.start_offset for r in self._group if r.block is not None]
        return min(offsets, default=None)

    def _emit(self) -> Record:
        group, self._group = self._group, []
        source = self.args["source"]
        text = self.args["separator"].join(r.value[source] for r in group)

        first = group[0]
        value = dict(first.value)
        value[source] = text

        blocks = [r.block for r in group if r.block is not None]
        block = None
        if blocks:
            head, tail = blocks[0], blocks[-1]
            block = TextBlock(
                content=text,
                start_offset=head.start_offset,
                end_offset=tail.end_offset,
                length=tail.start_offset + tail.length - head.start_offset,
            )
        return first.with_value(value, block=block)
