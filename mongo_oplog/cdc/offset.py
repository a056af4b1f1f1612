"""
Resume Position Management
Helpers for consumers that checkpoint their position in the oplog

The stream itself persists nothing. A consumer records the timestamp of the last
operation it handled and passes it back to OplogBuilder.start_after() on restart.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from mongo_oplog.models.operation import Operation
from mongo_oplog.models.timestamp import LogicalTimestamp

logger = structlog.get_logger(__name__)


def resume_filter(
    filter: Optional[Mapping[str, Any]],
    after: Optional[LogicalTimestamp],
) -> Optional[Dict[str, Any]]:
    """
    Restrict a filter to entries strictly after ``after``

    Args:
        filter: User filter (None matches every entry)
        after: Exclusive lower bound on ``ts`` (None leaves the filter unchanged)

    Returns:
        Filter document to pass to the driver
    """
    if after is None:
        return dict(filter) if filter is not None else None

    clause = {"ts": {"$gt": after.to_bson()}}
    if not filter:
        return clause
    return {"$and": [dict(filter), clause]}


class OffsetTracker:
    """
    Tracks the last operation a consumer has processed

    Positions must move forward; recording an older timestamp is a caller bug.
    """

    def __init__(self, start: Optional[LogicalTimestamp] = None):
        self._last: Optional[LogicalTimestamp] = start
        self._count = 0
        self._updated_at: Optional[datetime] = None
        logger.info("OffsetTracker initialized", start=start)

    @property
    def last(self) -> Optional[LogicalTimestamp]:
        return self._last

    @property
    def count(self) -> int:
        """Operations recorded since this tracker was created"""
        return self._count

    def record(self, operation: Operation) -> None:
        """
        Record that ``operation`` has been processed

        Raises:
            ValueError: If the operation is older than the last recorded one
        """
        self.advance(operation.timestamp)

    def advance(self, timestamp: LogicalTimestamp) -> None:
        if self._last is not None and timestamp < self._last:
            raise ValueError(
                f"Offset timestamp must be monotonically increasing. "
                f"Got {timestamp}, existing {self._last}"
            )
        self._last = timestamp
        self._count += 1
        self._updated_at = datetime.now(timezone.utc)
        logger.debug("Offset advanced", timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {
            "last": self._last.to_dict() if self._last else None,
            "count": self._count,
            "updated_at": self._updated_at.isoformat() if self._updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OffsetTracker":
        last = data.get("last")
        return cls(start=LogicalTimestamp.from_dict(last) if last else None)
