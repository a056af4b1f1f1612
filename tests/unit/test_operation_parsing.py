"""
Unit tests for oplog entry parsing
Tests the parser module that converts raw oplog documents into Operation objects
"""

import pytest
from bson import Int64, ObjectId, Timestamp

from conftest import make_entry
from mongo_oplog.cdc.parser import decode, encode
from mongo_oplog.errors import MissingFieldError, TypeMismatchError, UnknownKindError
from mongo_oplog.models.operation import (
    ApplyOps,
    Command,
    DbCreate,
    DbDrop,
    Delete,
    Insert,
    Noop,
    OperationKind,
    ReplicaSetInitiated,
    Update,
)
from mongo_oplog.models.timestamp import LogicalTimestamp


class TestOperationParsing:
    """Test decoding of each oplog entry kind"""

    def test_parse_noop(self):
        raw = make_entry("n", seconds=1479419535, ns="", o={"msg": "periodic noop"})

        operation = decode(raw)

        assert type(operation) is Noop
        assert operation.kind == OperationKind.NOOP
        assert operation.timestamp == LogicalTimestamp(1479419535, 0)
        assert operation.message == "periodic noop"
        assert operation.document == {"msg": "periodic noop"}
        assert operation.first_of_term is False

    def test_parse_noop_without_document(self):
        raw = {"ts": Timestamp(1479419535, 3), "op": "n"}

        operation = decode(raw)

        assert isinstance(operation, Noop)
        assert operation.namespace == ""
        assert operation.message is None
        assert operation.document is None
        assert operation.term is None

    def test_parse_initiating_set(self):
        raw = make_entry("n", seconds=1479419535, ns="", o={"msg": "initiating set"})

        operation = decode(raw)

        assert isinstance(operation, ReplicaSetInitiated)
        assert isinstance(operation, Noop)
        assert operation.kind == OperationKind.INITIATE

    def test_parse_new_primary_marks_first_of_term(self):
        raw = make_entry("n", ns="", o={"msg": "new primary"}, t=7)

        operation = decode(raw)

        assert operation.first_of_term is True
        assert operation.term == 7

    def test_parse_insert(self, insert_entry):
        operation = decode(insert_entry)

        assert isinstance(operation, Insert)
        assert operation.timestamp == LogicalTimestamp(1479561394, 0)
        assert operation.namespace == "foo.bar"
        assert operation.database == "foo"
        assert operation.collection == "bar"
        assert operation.document == {"_id": 1, "foo": "bar"}

    def test_parse_update(self, update_entry):
        operation = decode(update_entry)

        assert isinstance(operation, Update)
        assert operation.timestamp == LogicalTimestamp(1479561033, 0)
        assert operation.namespace == "foo.bar"
        assert operation.selector == {"_id": 1}
        assert operation.modification == {"$set": {"foo": "baz"}}

    def test_parse_update_with_diff_descriptor(self):
        raw = make_entry(
            "u",
            ns="foo.bar",
            o2={"_id": ObjectId("5f1e1d1c1b1a191817161514")},
            o={"$v": 2, "diff": {"u": {"count": 3}}},
        )

        operation = decode(raw)

        assert operation.modification == {"$v": 2, "diff": {"u": {"count": 3}}}

    def test_parse_delete(self):
        raw = make_entry("d", seconds=1479421186, ns="foo.bar", o={"_id": 1})

        operation = decode(raw)

        assert isinstance(operation, Delete)
        assert operation.selector == {"_id": 1}

    def test_parse_command(self):
        raw = make_entry("c", seconds=1479553955, ns="test.$cmd", o={"create": "foo"})

        operation = decode(raw)

        assert isinstance(operation, Command)
        assert operation.namespace == "test.$cmd"
        assert operation.command == {"create": "foo"}
        assert operation.command_name == "create"

    def test_parse_drop_database(self):
        raw = make_entry("c", ns="test.$cmd", o={"dropDatabase": 1})

        operation = decode(raw)

        assert isinstance(operation, DbDrop)
        assert operation.database == "test"

    def test_parse_db_declaration(self):
        raw = make_entry("db", ns="test")

        operation = decode(raw)

        assert isinstance(operation, DbCreate)
        assert operation.namespace == "test"

    def test_parse_apply_ops(self):
        raw = make_entry(
            "c",
            seconds=1483789052,
            ns="admin.$cmd",
            o={
                "applyOps": [
                    make_entry("i", ns="foo.bar", o={"_id": 1, "foo": "bar"}),
                    make_entry("d", ns="foo.bar", o={"_id": 2}),
                ]
            },
        )

        operation = decode(raw)

        assert isinstance(operation, ApplyOps)
        assert operation.timestamp == LogicalTimestamp(1483789052, 0)
        assert [type(op) for op in operation.operations] == [Insert, Delete]
        assert operation.operations[0].document == {"_id": 1, "foo": "bar"}

    def test_parse_apply_ops_rejects_non_documents(self):
        raw = make_entry("c", ns="admin.$cmd", o={"applyOps": ["not a document"]})

        with pytest.raises(TypeMismatchError) as exc_info:
            decode(raw)

        assert exc_info.value.field == "o.applyOps"

    def test_parse_transaction_commit(self):
        """Entries inside a committed transaction carry no ts or t of their own"""
        lsid = {"id": "session", "uid": b"\x00" * 32}
        raw = make_entry(
            "c",
            seconds=1600000000,
            increment=2,
            ns="admin.$cmd",
            o={
                "applyOps": [
                    {"op": "i", "ns": "shop.orders", "ui": "uuid-1", "o": {"_id": 1}},
                    {
                        "op": "u",
                        "ns": "shop.stock",
                        "ui": "uuid-2",
                        "o2": {"_id": 7},
                        "o": {"$inc": {"qty": -1}},
                    },
                ]
            },
            t=4,
            lsid=lsid,
            txnNumber=Int64(1),
        )

        operation = decode(raw)

        assert isinstance(operation, ApplyOps)
        insert, update = operation.operations
        assert isinstance(insert, Insert)
        assert isinstance(update, Update)
        assert insert.timestamp == LogicalTimestamp(1600000000, 2)
        assert update.op_id == "1600000000.2@4"
        assert insert.extra == {"ui": "uuid-1"}
        assert operation.extra["lsid"] == lsid

    def test_apply_ops_entry_keeps_its_own_position(self):
        raw = make_entry(
            "c",
            seconds=200,
            ns="admin.$cmd",
            o={"applyOps": [make_entry("d", seconds=150, increment=3, ns="foo.bar", o={"_id": 1})]},
        )

        assert decode(raw).operations[0].timestamp == LogicalTimestamp(150, 3)

    def test_op_id_is_derived_from_position(self):
        raw = make_entry("i", seconds=100, increment=4, ns="a.b", o={}, t=Int64(3))

        operation = decode(raw)

        assert operation.op_id == "100.4@3"
        assert operation.term == 3

    def test_unmodelled_fields_are_kept(self, insert_entry):
        insert_entry["lsid"] = {"id": "session"}
        insert_entry["txnNumber"] = Int64(5)

        operation = decode(insert_entry)

        assert operation.extra["v"] == 2
        assert operation.extra["lsid"] == {"id": "session"}
        assert operation.extra["txnNumber"] == 5
        assert "o" not in operation.extra


class TestParseErrors:
    """Test that malformed entries raise DecodeError subclasses"""

    def test_unknown_kind(self):
        raw = make_entry("x", ns="foo.bar", o={})

        with pytest.raises(UnknownKindError) as exc_info:
            decode(raw)

        assert exc_info.value.kind == "x"

    def test_missing_kind(self):
        with pytest.raises(MissingFieldError) as exc_info:
            decode({"foo": "bar"})

        assert exc_info.value.field == "op"

    def test_missing_timestamp(self):
        with pytest.raises(MissingFieldError) as exc_info:
            decode({"op": "i", "ns": "foo.bar", "o": {}})

        assert exc_info.value.field == "ts"

    @pytest.mark.parametrize(
        "op,fields,missing",
        [
            ("i", {"o": {"_id": 1}}, "ns"),
            ("i", {"ns": "foo.bar"}, "o"),
            ("u", {"ns": "foo.bar", "o2": {"_id": 1}}, "o"),
            ("u", {"ns": "foo.bar", "o": {"$set": {"x": 1}}}, "o2"),
            ("d", {"ns": "foo.bar"}, "o"),
            ("c", {"ns": "foo.$cmd"}, "o"),
            ("db", {}, "ns"),
        ],
    )
    def test_missing_required_field(self, op, fields, missing):
        with pytest.raises(MissingFieldError) as exc_info:
            decode(make_entry(op, **fields))

        assert exc_info.value.field == missing

    def test_timestamp_type_mismatch(self):
        raw = make_entry("i", ns="foo.bar", o={})
        raw["ts"] = 1479561394

        with pytest.raises(TypeMismatchError) as exc_info:
            decode(raw)

        assert exc_info.value.field == "ts"
        assert exc_info.value.expected == "timestamp"

    def test_document_type_mismatch(self):
        raw = make_entry("i", ns="foo.bar", o="not a document")

        with pytest.raises(TypeMismatchError) as exc_info:
            decode(raw)

        assert exc_info.value.field == "o"
        assert exc_info.value.expected == "document"

    def test_term_type_mismatch(self):
        raw = make_entry("i", ns="foo.bar", o={}, t="1")

        with pytest.raises(TypeMismatchError) as exc_info:
            decode(raw)

        assert exc_info.value.field == "t"


class TestEncode:
    """Test rebuilding raw entries from operations"""

    def test_update_round_trip(self):
        raw = make_entry("u", ns="test.things", o2={"_id": 1}, o={"$set": {"x": 2}})

        operation = decode(encode(decode(raw)))

        assert isinstance(operation, Update)
        assert operation.selector == {"_id": 1}
        assert operation.modification == {"$set": {"x": 2}}

    def test_encode_restores_raw_fields(self, insert_entry):
        insert_entry["wall"] = "2016-11-19T13:16:34Z"

        assert encode(decode(insert_entry)) == insert_entry

    def test_encode_apply_ops_keeps_command(self):
        raw = make_entry(
            "c",
            ns="admin.$cmd",
            o={"applyOps": [make_entry("i", ns="foo.bar", o={"_id": 1})], "partialTxn": True},
        )

        assert encode(decode(raw)) == raw

    def test_insert_keeps_document_key(self):
        raw = make_entry("i", ns="shop.orders", o={"_id": 1, "shard": "x"}, o2={"_id": 1, "shard": "x"})

        operation = decode(raw)

        assert operation.extra["o2"] == {"_id": 1, "shard": "x"}
        assert encode(operation) == raw

    def test_command_keeps_o2(self):
        raw = make_entry("c", ns="shop.$cmd", o={"drop": "orders"}, o2={"numRecords": 12})

        operation = decode(raw)

        assert isinstance(operation, Command)
        assert operation.to_dict()["extra"]["o2"] == {"numRecords": 12}
        assert encode(operation) == raw

    def test_delete_keeps_o2(self):
        raw = make_entry("d", ns="shop.orders", o={"_id": 1}, o2={"_id": 1, "shard": "x"})

        assert encode(decode(raw)) == raw

    def test_db_entry_keeps_o(self):
        raw = make_entry("db", ns="shop", o={"note": "declared"})

        operation = decode(raw)

        assert operation.extra["o"] == {"note": "declared"}
        assert encode(operation) == raw

    def test_transaction_round_trip(self):
        raw = make_entry(
            "c",
            ns="admin.$cmd",
            o={"applyOps": [{"op": "i", "ns": "shop.orders", "ui": "uuid-1", "o": {"_id": 1}}]},
        )

        assert encode(decode(raw)) == raw
