"""
CDC module for tailing and decoding the MongoDB oplog
"""

from mongo_oplog.cdc.builder import OplogBuilder, builder
from mongo_oplog.cdc.cursor import (
    CursorHandle,
    CursorOptions,
    DatabaseClient,
    MongoClientAdapter,
    MongoCursorHandle,
    PollResult,
    PollStatus,
)
from mongo_oplog.cdc.offset import OffsetTracker, resume_filter
from mongo_oplog.cdc.parser import decode, encode
from mongo_oplog.cdc.stream import Oplog, OplogResult, StreamState

__all__ = [
    "CursorHandle",
    "CursorOptions",
    "DatabaseClient",
    "MongoClientAdapter",
    "MongoCursorHandle",
    "OffsetTracker",
    "Oplog",
    "OplogBuilder",
    "OplogResult",
    "PollResult",
    "PollStatus",
    "StreamState",
    "builder",
    "decode",
    "encode",
    "resume_filter",
]
