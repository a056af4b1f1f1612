"""
mongo_oplog - iterate over a MongoDB replica set oplog as typed operations

    >>> from pymongo import MongoClient
    >>> from mongo_oplog import Oplog
    >>> client = MongoClient("mongodb://localhost/?replicaSet=rs0")
    >>> for result in Oplog.builder().filter({"op": "i"}).build(client):
    ...     print(result.unwrap())
"""

from mongo_oplog.cdc import (
    CursorOptions,
    DatabaseClient,
    OffsetTracker,
    Oplog,
    OplogBuilder,
    OplogResult,
    builder,
    decode,
    encode,
)
from mongo_oplog.errors import (
    ConcurrentPollError,
    CursorPositionLostError,
    DecodeError,
    MissingFieldError,
    OplogConnectionError,
    OplogError,
    StreamClosedError,
    TypeMismatchError,
    UnknownKindError,
)
from mongo_oplog.models import (
    ApplyOps,
    Command,
    DbCreate,
    DbDrop,
    Delete,
    Insert,
    LogicalTimestamp,
    Noop,
    Operation,
    OperationKind,
    ReplicaSetInitiated,
    Update,
)

__version__ = "0.1.0"

__all__ = [
    "ApplyOps",
    "Command",
    "ConcurrentPollError",
    "CursorOptions",
    "CursorPositionLostError",
    "DatabaseClient",
    "DbCreate",
    "DbDrop",
    "DecodeError",
    "Delete",
    "Insert",
    "LogicalTimestamp",
    "MissingFieldError",
    "Noop",
    "OffsetTracker",
    "Operation",
    "OperationKind",
    "Oplog",
    "OplogBuilder",
    "OplogConnectionError",
    "OplogError",
    "OplogResult",
    "ReplicaSetInitiated",
    "StreamClosedError",
    "TypeMismatchError",
    "UnknownKindError",
    "Update",
    "builder",
    "decode",
    "encode",
]
