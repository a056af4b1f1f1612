"""
Data models for oplog entries and positions
"""

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

__all__ = [
    "ApplyOps",
    "Command",
    "DbCreate",
    "DbDrop",
    "Delete",
    "Insert",
    "LogicalTimestamp",
    "Noop",
    "Operation",
    "OperationKind",
    "ReplicaSetInitiated",
    "Update",
]
