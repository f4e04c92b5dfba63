"""Tests for the built-in filter stages."""

from __future__ import annotations

import pytest

from textpulse import FileContext, MissingArgumentError, Record, RecordTransformError, TextBlock
from textpulse.stages import (
    DelimitedRowStage,
    DropStage,
    ExcludeStage,
    ExplodeStage,
    FilterStage,
    JsonStage,
    MultiRowStage,
    field_exists,
)

CONTEXT = FileContext(path="/data/in.log", name="in.log")


def stage_for(cls: type[FilterStage], **args) -> FilterStage:
    stage = cls()
    stage.prepare(args)
    stage.init(CONTEXT)
    return stage


def line(text: str, start: int = 0) -> Record:
    return Record.from_block(TextBlock(text, start, start + len(text) + 1, len(text)))


class TestFieldExists:
    """Tests for dotted-path field checks."""

    def test_top_level(self):
        assert field_exists({"a": None}, "a")
        assert not field_exists({"a": 1}, "b")

    def test_nested(self):
        value = {"http": {"status": 500}}
        assert field_exists(value, "http.status")
        assert not field_exists(value, "http.method")
        assert not field_exists(value, "http.status.code")

    def test_non_dict_value(self):
        assert not field_exists("text", "a")


class TestPrepare:
    """Tests for argument preparation."""

    def test_missing_required_argument(self):
        with pytest.raises(MissingArgumentError) as exc_info:
            DelimitedRowStage().prepare({})

        assert exc_info.value.stage == "delimited_row"
        assert exc_info.value.argument == "columns"

    def test_none_counts_as_missing(self):
        with pytest.raises(MissingArgumentError):
            ExplodeStage().prepare({"source": None})

    def test_defaults_applied(self):
        stage = DelimitedRowStage()
        args = stage.prepare({"columns": "a, b"})

        assert args["columns"] == ["a", "b"]
        assert args["separator"] == ","
        assert stage.args is args

    def test_label_defaults_to_name(self):
        assert JsonStage().label == "json"
        assert JsonStage(label="parse").label == "parse"


class TestDelimitedRowStage:
    """Tests for delimited_row."""

    def test_splits_columns(self):
        stage = stage_for(DelimitedRowStage, columns=["name", "age"])

        (out,) = stage.apply(line("alice,30"), has_next=True)

        assert out.value == {"name": "alice", "age": "30"}
        assert out.block == line("alice,30").block

    def test_custom_separator_and_trim(self):
        stage = stage_for(DelimitedRowStage, columns="a,b,c", separator=";", trim=True, keep_source=True)

        (out,) = stage.apply(line(" 1 ; 2;3 "), has_next=True)

        assert out.value == {"message": " 1 ; 2;3 ", "a": "1", "b": "2", "c": "3"}

    def test_wrong_column_count_is_recoverable(self):
        stage = stage_for(DelimitedRowStage, columns=["a", "b"])

        with pytest.raises(RecordTransformError, match="Expected 2 columns, got 3"):
            stage.apply(line("1,2,3"), has_next=True)

    def test_accepts_only_text_source(self):
        stage = stage_for(DelimitedRowStage, columns=["a"])

        assert stage.accept(line("x"))
        assert not stage.accept(Record(value={"message": 5}))

    def test_empty_separator_rejected(self):
        with pytest.raises(ValueError):
            DelimitedRowStage().prepare({"columns": ["a"], "separator": ""})


class TestJsonStage:
    """Tests for json."""

    def test_merges_object(self):
        stage = stage_for(JsonStage)

        (out,) = stage.apply(line('{"level": "INFO", "n": 2}'), has_next=True)

        assert out.value == {"level": "INFO", "n": 2}

    def test_target_field(self):
        stage = stage_for(JsonStage, target="payload", keep_source=True)

        (out,) = stage.apply(line("[1, 2]"), has_next=True)

        assert out.value == {"message": "[1, 2]", "payload": [1, 2]}

    def test_invalid_json(self):
        stage = stage_for(JsonStage)

        with pytest.raises(RecordTransformError, match="Invalid JSON"):
            stage.apply(line("{broken"), has_next=True)

    def test_non_object_without_target(self):
        stage = stage_for(JsonStage)

        with pytest.raises(RecordTransformError, match="not an object"):
            stage.apply(line("42"), has_next=True)


class TestDropStage:
    """Tests for drop."""

    def test_drop_if_exists(self):
        stage = stage_for(DropStage, if_exists="debug")

        assert stage.apply(Record(value={"debug": True}), has_next=True) == []
        kept = Record(value={"info": True})
        assert stage.apply(kept, has_next=True) == [kept]

    def test_drop_if_equals(self):
        stage = stage_for(DropStage, field="level", equals="DEBUG")

        assert stage.apply(Record(value={"level": "DEBUG"}), has_next=True) == []
        assert len(stage.apply(Record(value={"level": "WARN"}), has_next=True)) == 1

    def test_invert_keeps_matches_only(self):
        stage = stage_for(DropStage, field="level", equals="ERROR", invert=True)

        assert len(stage.apply(Record(value={"level": "ERROR"}), has_next=True)) == 1
        assert stage.apply(Record(value={"level": "INFO"}), has_next=True) == []

    def test_requires_a_condition(self):
        with pytest.raises(MissingArgumentError):
            DropStage().prepare({})


class TestExcludeStage:
    def test_removes_fields(self):
        stage = stage_for(ExcludeStage, fields=["secret", "token"])

        (out,) = stage.apply(Record(value={"user": "bob", "secret": "x", "token": "y"}), has_next=True)

        assert out.value == {"user": "bob"}


class TestExplodeStage:
    """Tests for explode."""

    def test_fans_out_list(self):
        stage = stage_for(ExplodeStage, source="tags")
        record = Record(value={"id": 1, "tags": ["a", "b", "c"]})

        out = stage.apply(record, has_next=True)

        assert [r.value for r in out] == [
            {"id": 1, "tags": "a"},
            {"id": 1, "tags": "b"},
            {"id": 1, "tags": "c"},
        ]

    def test_empty_list_yields_nothing(self):
        stage = stage_for(ExplodeStage, source="tags")
        assert stage.apply(Record(value={"tags": []}), has_next=True) == []

    def test_accepts_only_lists(self):
        stage = stage_for(ExplodeStage, source="tags")
        assert not stage.accept(Record(value={"tags": "a"}))


class TestMultiRowStage:
    """Tests for multi_row grouping."""

    def test_groups_continuation_lines(self):
        stage = stage_for(MultiRowStage, pattern=r"^\d{4}-")

        out = []
        offset = 0
        for text in ["2024-01-01 boom", "  at a()", "  at b()", "2024-01-01 ok"]:
            out += stage.apply(line(text, offset), has_next=True)
            offset += len(text) + 1

        assert len(out) == 1
        assert out[0].value["message"] == "2024-01-01 boom\n  at a()\n  at b()"
        assert stage.pending == 1

        (tail,) = stage.drain()
        assert tail.value["message"] == "2024-01-01 ok"
        assert stage.drain() == []

    def test_group_offsets_span_all_lines(self):
        stage = stage_for(MultiRowStage, pattern=r"^\S")
        first = line("head", 10)
        second = line(" body", 15)

        stage.apply(first, has_next=True)
        stage.apply(second, has_next=True)
        (group,) = stage.drain()

        assert group.block.start_offset == 10
        assert group.block.end_offset == 21
        assert group.block.length == 10
        assert group.block.content == "head\n body"

    def test_negate(self):
        """With negate, non-matching lines start groups and matching ones continue."""
        stage = stage_for(MultiRowStage, pattern=r"^\s", negate=True)

        out = []
        for text in ["a", " b", "  c", "d"]:
            out += stage.apply(line(text), has_next=True)
        out += stage.drain()

        assert [r.value["message"] for r in out] == ["a\n b\n  c", "d"]

    def test_max_lines(self):
        stage = stage_for(MultiRowStage, pattern=r"^START", max_lines=2)

        out = []
        for text in ["START", "a", "b", "c"]:
            out += stage.apply(line(text), has_next=True)

        assert [r.value["message"] for r in out] == ["START\na", "b\nc"]
        assert stage.pending == 0

    def test_init_clears_group(self):
        stage = stage_for(MultiRowStage, pattern=r"^\S")
        stage.apply(line("held"), has_next=True)

        stage.init(CONTEXT)

        assert stage.pending == 0

    def test_invalid_pattern(self):
        with pytest.raises(ValueError, match="Invalid multi_row pattern"):
            MultiRowStage().prepare({"pattern": "("})
