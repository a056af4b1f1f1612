"""
Oplog Entry Parser
Converts raw oplog documents into typed Operation objects and back

Decoding is strict: every kind has its own decode function, required fields must
be present with the right BSON type, and an unknown ``op`` is an error rather
than a default.
"""

from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional

from bson import Timestamp

from mongo_oplog.errors import MissingFieldError, TypeMismatchError, UnknownKindError
from mongo_oplog.models.operation import (
    ApplyOps,
    Command,
    DbCreate,
    DbDrop,
    Delete,
    Insert,
    Noop,
    Operation,
    OperationKind,
    ReplicaSetInitiated,
    Update,
)
from mongo_oplog.models.timestamp import LogicalTimestamp

# Top-level fields every decoder consumes; each kind adds the ones it models.
# Anything else lands in Operation.extra.
_COMMON_FIELDS = frozenset({"ts", "op", "ns", "t"})
_DOCUMENT_FIELD = frozenset({"o"})
_UPDATE_FIELDS = frozenset({"o", "o2"})

INITIATE_MESSAGE = "initiating set"
NEW_PRIMARY_MESSAGE = "new primary"

_KIND_CODES = {
    OperationKind.INSERT: "i",
    OperationKind.UPDATE: "u",
    OperationKind.DELETE: "d",
    OperationKind.COMMAND: "c",
    OperationKind.APPLY_OPS: "c",
    OperationKind.DB_DROP: "c",
    OperationKind.NOOP: "n",
    OperationKind.INITIATE: "n",
    OperationKind.DB_CREATE: "db",
}


def _require(raw: Mapping, field: str) -> Any:
    if field not in raw:
        raise MissingFieldError(field)
    return raw[field]


def _get_str(raw: Mapping, field: str) -> str:
    value = _require(raw, field)
    if not isinstance(value, str):
        raise TypeMismatchError(field, "string")
    return value


def _get_document(raw: Mapping, field: str) -> Dict[str, Any]:
    value = _require(raw, field)
    if not isinstance(value, Mapping):
        raise TypeMismatchError(field, "document")
    return dict(value)


def _get_timestamp(raw: Mapping) -> LogicalTimestamp:
    value = _require(raw, "ts")
    if not isinstance(value, Timestamp):
        raise TypeMismatchError("ts", "timestamp")
    return LogicalTimestamp.from_bson(value)


def _get_term(raw: Mapping) -> Optional[int]:
    value = raw.get("t")
    if value is None:
        return None
    # bool is an int subclass but never a valid term
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeMismatchError("t", "int")
    return int(value)


def make_op_id(timestamp: LogicalTimestamp, term: Optional[int]) -> str:
    """Identifier for an entry, derived from its position (optime)"""
    if term is None:
        return str(timestamp)
    return f"{timestamp}@{term}"


def _common(
    raw: Mapping, namespace: str, modelled: frozenset = frozenset(), first_of_term: bool = False
) -> Dict[str, Any]:
    """Fields shared by every variant; ``modelled`` names the extra raw fields the variant keeps"""
    timestamp = _get_timestamp(raw)
    term = _get_term(raw)
    consumed = _COMMON_FIELDS | modelled
    return {
        "timestamp": timestamp,
        "namespace": namespace,
        "op_id": make_op_id(timestamp, term),
        "term": term,
        "first_of_term": first_of_term,
        "extra": {k: v for k, v in raw.items() if k not in consumed},
    }


def _decode_insert(raw: Mapping) -> Operation:
    namespace = _get_str(raw, "ns")
    document = _get_document(raw, "o")
    return Insert(document=document, **_common(raw, namespace, _DOCUMENT_FIELD))


def _decode_update(raw: Mapping) -> Operation:
    namespace = _get_str(raw, "ns")
    modification = _get_document(raw, "o")
    selector = _get_document(raw, "o2")
    return Update(
        selector=selector, modification=modification, **_common(raw, namespace, _UPDATE_FIELDS)
    )


def _decode_delete(raw: Mapping) -> Operation:
    namespace = _get_str(raw, "ns")
    selector = _get_document(raw, "o")
    return Delete(selector=selector, **_common(raw, namespace, _DOCUMENT_FIELD))


def _inherit_position(entry: Mapping, outer: Mapping) -> Mapping:
    """
    Give an applyOps entry the position of the entry containing it

    Transaction commits log their writes without ts or t; they take effect at the
    commit entry's optime. Entries that carry their own ts keep it.
    """
    if "ts" in entry:
        return entry
    inherited = dict(entry)
    inherited["ts"] = outer["ts"]
    if "t" in outer and "t" not in inherited:
        inherited["t"] = outer["t"]
    return inherited


def _decode_command(raw: Mapping) -> Operation:
    """
    Decode a command entry

    Returns ApplyOps for batched operations, DbDrop for dropDatabase and
    Command for everything else.
    """
    namespace = _get_str(raw, "ns")
    command = _get_document(raw, "o")

    if "applyOps" in command:
        entries = command["applyOps"]
        if not isinstance(entries, list):
            raise TypeMismatchError("o.applyOps", "array")
        operations = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                raise TypeMismatchError("o.applyOps", "document")
            operations.append(decode(_inherit_position(entry, raw)))
        return ApplyOps(
            command=command, operations=operations, **_common(raw, namespace, _DOCUMENT_FIELD)
        )

    if "dropDatabase" in command:
        return DbDrop(command=command, **_common(raw, namespace, _DOCUMENT_FIELD))

    return Command(command=command, **_common(raw, namespace, _DOCUMENT_FIELD))


def _decode_noop(raw: Mapping) -> Operation:
    # No-ops do not always carry a namespace or an "o" document
    namespace = raw.get("ns", "")
    if not isinstance(namespace, str):
        raise TypeMismatchError("ns", "string")

    document = None
    message = None
    if "o" in raw:
        document = _get_document(raw, "o")
        msg = document.get("msg")
        if isinstance(msg, str):
            message = msg

    if message == INITIATE_MESSAGE:
        return ReplicaSetInitiated(
            message=message, document=document, **_common(raw, namespace, _DOCUMENT_FIELD)
        )

    first_of_term = message == NEW_PRIMARY_MESSAGE
    return Noop(
        message=message,
        document=document,
        **_common(raw, namespace, _DOCUMENT_FIELD, first_of_term),
    )


def _decode_db_create(raw: Mapping) -> Operation:
    namespace = _get_str(raw, "ns")
    return DbCreate(**_common(raw, namespace))


_DECODERS: Dict[str, Callable[[Mapping], Operation]] = {
    "i": _decode_insert,
    "u": _decode_update,
    "d": _decode_delete,
    "c": _decode_command,
    "n": _decode_noop,
    "db": _decode_db_create,
}


def decode(raw: Mapping) -> Operation:
    """
    Decode a raw oplog document into an Operation

    Args:
        raw: Oplog document as returned by the driver

    Returns:
        The Operation variant for the entry's ``op`` code

    Raises:
        MissingFieldError: If ``op``, ``ts`` or a field required by the kind is absent
        TypeMismatchError: If a field is present with the wrong BSON type
        UnknownKindError: If ``op`` is not a known operation code
    """
    kind = _get_str(raw, "op")
    _get_timestamp(raw)

    decoder = _DECODERS.get(kind)
    if decoder is None:
        raise UnknownKindError(kind)
    return decoder(raw)


def encode(operation: Operation) -> Dict[str, Any]:
    """
    Rebuild the raw oplog document for an Operation

    The result has the same semantic content as the entry it was decoded from,
    though not necessarily the same field order.
    """
    raw: Dict[str, Any] = {
        "ts": operation.timestamp.to_bson(),
        "op": _KIND_CODES[operation.kind],
        "ns": operation.namespace,
    }
    if operation.term is not None:
        raw["t"] = operation.term
    raw.update(operation.extra)

    if isinstance(operation, Insert):
        raw["o"] = operation.document
    elif isinstance(operation, Update):
        raw["o"] = operation.modification
        raw["o2"] = operation.selector
    elif isinstance(operation, Delete):
        raw["o"] = operation.selector
    elif isinstance(operation, (Command, ApplyOps, DbDrop)):
        raw["o"] = operation.command
    elif isinstance(operation, Noop):
        if operation.document is not None:
            raw["o"] = operation.document

    return raw
