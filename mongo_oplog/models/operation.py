"""
Operation Data Model - typed representation of oplog entries

Every raw oplog document maps to exactly one Operation subclass. Fields that are
not modelled explicitly are kept in ``extra`` so the entry can be rebuilt.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from bson import json_util
from bson.json_util import RELAXED_JSON_OPTIONS

from mongo_oplog.models.timestamp import LogicalTimestamp


class OperationKind(str, Enum):
    """Kind of oplog entry"""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    COMMAND = "command"
    APPLY_OPS = "apply_ops"
    NOOP = "noop"
    DB_CREATE = "db_create"
    DB_DROP = "db_drop"
    INITIATE = "initiate"


def _jsonable(value: Any) -> Any:
    """Render BSON values (ObjectId, Timestamp, datetime...) as relaxed extended JSON"""
    if value is None:
        return None
    return json.loads(json_util.dumps(value, json_options=RELAXED_JSON_OPTIONS))


@dataclass(frozen=True)
class Operation:
    """
    Fields shared by every oplog entry

    Attributes:
        timestamp: Logical timestamp of the entry (ts)
        namespace: "database.collection" the entry applies to (ns)
        op_id: Identifier derived from the entry's position (timestamp and term)
        term: Replication term of the primary that wrote the entry (t), if present
        first_of_term: True for the entry a new primary writes after an election
        extra: Remaining top-level fields of the raw entry, verbatim
    """

    kind: ClassVar[OperationKind]

    timestamp: LogicalTimestamp
    namespace: str
    op_id: str
    term: Optional[int]
    first_of_term: bool
    extra: Dict[str, Any]

    @property
    def database(self) -> str:
        return self.namespace.split(".", 1)[0]

    @property
    def collection(self) -> Optional[str]:
        parts = self.namespace.split(".", 1)
        return parts[1] if len(parts) == 2 else None

    def payload(self) -> Dict[str, Any]:
        """Kind-specific fields, keyed by attribute name"""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert Operation to a JSON-compatible dictionary (for diagnostics)"""
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "timestamp": self.timestamp.to_dict(),
            "namespace": self.namespace,
            "op_id": self.op_id,
            "term": self.term,
            "first_of_term": self.first_of_term,
            "extra": _jsonable(self.extra),
        }
        for name, value in self.payload().items():
            if name == "operations":
                data[name] = [op.to_dict() for op in value]
            else:
                data[name] = _jsonable(value)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


@dataclass(frozen=True)
class Insert(Operation):
    """An insert of a document into a collection"""

    kind: ClassVar[OperationKind] = OperationKind.INSERT

    document: Dict[str, Any]

    def payload(self) -> Dict[str, Any]:
        return {"document": self.document}

    def __str__(self) -> str:
        return f"Insert into {self.namespace} at {self.timestamp}: {self.document}"


@dataclass(frozen=True)
class Update(Operation):
    """
    An update of the document matching ``selector``

    ``modification`` is either a replacement document, an update-operator document
    ({"$set": ...}) or a $v:2 diff descriptor; it is kept exactly as logged.
    """

    kind: ClassVar[OperationKind] = OperationKind.UPDATE

    selector: Dict[str, Any]
    modification: Dict[str, Any]

    def payload(self) -> Dict[str, Any]:
        return {"selector": self.selector, "modification": self.modification}

    def __str__(self) -> str:
        return (
            f"Update {self.namespace} with {self.selector} at {self.timestamp}: "
            f"{self.modification}"
        )


@dataclass(frozen=True)
class Delete(Operation):
    """The deletion of the document matching ``selector``"""

    kind: ClassVar[OperationKind] = OperationKind.DELETE

    selector: Dict[str, Any]

    def payload(self) -> Dict[str, Any]:
        return {"selector": self.selector}

    def __str__(self) -> str:
        return f"Delete from {self.namespace} at {self.timestamp}: {self.selector}"


@dataclass(frozen=True)
class Command(Operation):
    """An administrative command such as create, drop or createIndexes"""

    kind: ClassVar[OperationKind] = OperationKind.COMMAND

    command: Dict[str, Any]

    def payload(self) -> Dict[str, Any]:
        return {"command": self.command}

    @property
    def command_name(self) -> Optional[str]:
        return next(iter(self.command), None)

    def __str__(self) -> str:
        return f"Command {self.namespace} at {self.timestamp}: {self.command}"


@dataclass(frozen=True)
class ApplyOps(Operation):
    """
    A batch of operations applied atomically (transactions, chunk migrations)

    ``command`` is the raw command document, ``operations`` its decoded entries.
    """

    kind: ClassVar[OperationKind] = OperationKind.APPLY_OPS

    command: Dict[str, Any]
    operations: List[Operation]

    def payload(self) -> Dict[str, Any]:
        return {"command": self.command, "operations": self.operations}

    def __str__(self) -> str:
        return (
            f"ApplyOps {self.namespace} at {self.timestamp}: "
            f"{len(self.operations)} operations"
        )


@dataclass(frozen=True)
class DbDrop(Operation):
    """A dropDatabase command"""

    kind: ClassVar[OperationKind] = OperationKind.DB_DROP

    command: Dict[str, Any]

    def payload(self) -> Dict[str, Any]:
        return {"command": self.command}

    def __str__(self) -> str:
        return f"Drop database {self.database} at {self.timestamp}"


@dataclass(frozen=True)
class DbCreate(Operation):
    """A database declaration (legacy "db" entry)"""

    kind: ClassVar[OperationKind] = OperationKind.DB_CREATE

    def __str__(self) -> str:
        return f"Create database {self.database} at {self.timestamp}"


@dataclass(frozen=True)
class Noop(Operation):
    """
    An entry with no data effect: heartbeats, election markers, migrations

    The message is ``o.msg`` when the entry carries one; ``document`` is the
    whole ``o`` object, if any.
    """

    kind: ClassVar[OperationKind] = OperationKind.NOOP

    message: Optional[str]
    document: Optional[Dict[str, Any]]

    def payload(self) -> Dict[str, Any]:
        return {"message": self.message, "document": self.document}

    def __str__(self) -> str:
        return f"No-op at {self.timestamp}: {self.message!r}"


@dataclass(frozen=True)
class ReplicaSetInitiated(Noop):
    """The first entry of a freshly initiated replica set"""

    kind: ClassVar[OperationKind] = OperationKind.INITIATE

    def __str__(self) -> str:
        return f"Replica set initiated at {self.timestamp}"
