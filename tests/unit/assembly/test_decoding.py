"""Unit tests for tolerant decoding of backend payloads."""

import logging

from stubtree.assembly.decoding import decode_ancestor, decode_record, decode_records, decode_target
from stubtree.core.result import Err, Ok
from stubtree.core.types import NodeKind, RawDependencyRecord


class TestDecodeRecord:
    def test_valid_record(self):
        result = decode_record({"name": "Foo", "type": "Class"})

        assert isinstance(result, Ok)
        assert result.unwrap().name == "Foo"

    def test_non_mapping(self):
        result = decode_record(["Foo"])

        assert isinstance(result, Err)
        assert "expected a mapping" in result.error.reason
        assert result.error.value == ["Foo"]

    def test_missing_name(self):
        result = decode_record({"type": "Class"})

        assert result.is_err()
        assert "name" in str(result.error)

    def test_passes_models_through(self):
        record = RawDependencyRecord(name="Foo")
        assert decode_record(record).unwrap() is record


class TestDecodeRecords:
    def test_bad_records_are_skipped(self, caplog):
        with caplog.at_level(logging.WARNING):
            records = decode_records([{"name": "A"}, "junk", {"name": ""}, {"name": "B"}])

        assert [r.name for r in records] == ["A", "B"]
        assert caplog.text.count("Skipping dependency record") == 2

    def test_non_list_is_empty(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert decode_records({"name": "A"}) == []
        assert decode_records(None) == []


class TestDecodeAncestor:
    def test_null_means_unresolved(self):
        assert decode_ancestor(None) is None

    def test_valid_answer(self):
        info = decode_ancestor({"name": "Bar", "type": "Class", "filePath": "bar.py", "startLine": 3})

        assert info.kind == NodeKind.CLASS
        assert info.location.start_line == 3

    def test_junk_is_unresolved(self):
        assert decode_ancestor("Bar") is None
        assert decode_ancestor({"type": "Class"}) is None


class TestDecodeTarget:
    def test_ui_shape(self):
        target = decode_target({"functionName": "handle", "nodeId": "1.h==.S.handle"})
        assert target.name == "handle"

    def test_junk(self):
        assert decode_target(None) is None
        assert decode_target({"nodeId": "x"}) is None
