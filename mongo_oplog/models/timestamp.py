"""
LogicalTimestamp Data Model - position of an entry in the oplog
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from bson import Timestamp


@dataclass(frozen=True, order=True)
class LogicalTimestamp:
    """
    Oplog timestamp: seconds since the epoch plus a per-second counter

    Ordering compares seconds first, then increment. This is the total order
    of the oplog and the token a consumer persists to resume a stream.

    Attributes:
        seconds: Seconds since the Unix epoch
        increment: Ordinal of the operation within that second
    """

    seconds: int
    increment: int

    def __post_init__(self) -> None:
        if self.seconds < 0 or self.increment < 0:
            raise ValueError("timestamp components must be non-negative")

    @classmethod
    def from_bson(cls, ts: Timestamp) -> "LogicalTimestamp":
        return cls(seconds=ts.time, increment=ts.inc)

    def to_bson(self) -> Timestamp:
        return Timestamp(self.seconds, self.increment)

    def as_datetime(self) -> datetime:
        """UTC wall-clock time of the entry (second precision)"""
        return datetime.fromtimestamp(self.seconds, tz=timezone.utc)

    def to_dict(self) -> Dict[str, int]:
        return {"seconds": self.seconds, "increment": self.increment}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogicalTimestamp":
        return cls(seconds=int(data["seconds"]), increment=int(data["increment"]))

    def __str__(self) -> str:
        return f"{self.seconds}.{self.increment}"
