"""
Tailable Cursor Adapter
Opens tailable cursors over the capped oplog collection through pymongo

A tailable cursor that reaches the end of the oplog is not finished: the
collection is capped but the log is unbounded. poll_next() reports that
condition as EXHAUSTED and re-issues the query on a later poll when the driver
cursor has died. Connection and protocol failures are reported as FAILED and
are never retried here.
"""

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import structlog
from bson import Timestamp
from pymongo import CursorType, MongoClient
from pymongo.errors import OperationFailure, PyMongoError

from mongo_oplog.cdc.offset import resume_filter
from mongo_oplog.errors import CursorPositionLostError, OplogConnectionError
from mongo_oplog.models.timestamp import LogicalTimestamp
from mongo_oplog.observability import metrics

logger = structlog.get_logger(__name__)

OPLOG_NAMESPACE = "local.oplog.rs"

# Server error raised when a tailable cursor's position was overwritten
CAPPED_POSITION_LOST = 136


@dataclass(frozen=True)
class CursorOptions:
    """
    Options for the tailable cursor

    Attributes:
        await_data: Block on the server for new entries instead of returning at once
        no_cursor_timeout: Keep the server from reaping the cursor while idle
        batch_size: Entries per round trip (None uses the driver default)
        max_await_time_ms: Upper bound for one awaitData wait (None uses the server default)
        requery_interval_seconds: Pause after the end of the oplog before polling again
    """

    await_data: bool = True
    no_cursor_timeout: bool = True
    batch_size: Optional[int] = None
    max_await_time_ms: Optional[int] = None
    requery_interval_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.batch_size is not None and self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.max_await_time_ms is not None and self.max_await_time_ms <= 0:
            raise ValueError("max_await_time_ms must be positive")
        if self.requery_interval_seconds < 0:
            raise ValueError("requery_interval_seconds must be non-negative")

    @property
    def cursor_type(self) -> int:
        return CursorType.TAILABLE_AWAIT if self.await_data else CursorType.TAILABLE


class PollStatus(str, Enum):
    ITEM = "ITEM"
    EXHAUSTED = "EXHAUSTED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class PollResult:
    """Outcome of one poll of a cursor handle"""

    status: PollStatus
    document: Optional[Mapping[str, Any]] = None
    error: Optional[OplogConnectionError] = None
    waited: bool = False

    @classmethod
    def item(cls, document: Mapping[str, Any]) -> "PollResult":
        return cls(status=PollStatus.ITEM, document=document)

    @classmethod
    def exhausted(cls, waited: bool = False) -> "PollResult":
        """No entry yet; ``waited`` is True when the server already held the request open"""
        return cls(status=PollStatus.EXHAUSTED, waited=waited)

    @classmethod
    def failed(cls, error: OplogConnectionError) -> "PollResult":
        return cls(status=PollStatus.FAILED, error=error)


@runtime_checkable
class CursorHandle(Protocol):
    """An open tailable cursor"""

    @property
    def alive(self) -> bool:
        ...

    def poll_next(self) -> PollResult:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class DatabaseClient(Protocol):
    """Anything that can open a tailable cursor over a capped collection"""

    def open_tailable_cursor(
        self,
        namespace: str,
        filter: Optional[Mapping[str, Any]],
        options: CursorOptions,
        start_after: Optional[LogicalTimestamp] = None,
    ) -> CursorHandle:
        ...


def split_namespace(namespace: str) -> tuple[str, str]:
    database, sep, collection = namespace.partition(".")
    if not database or not sep or not collection:
        raise ValueError(f"Invalid namespace: {namespace!r}")
    return database, collection


def _wrap_error(e: PyMongoError) -> OplogConnectionError:
    if isinstance(e, OperationFailure) and e.code == CAPPED_POSITION_LOST:
        error: OplogConnectionError = CursorPositionLostError(
            f"Cursor position no longer available: {e}"
        )
    else:
        error = OplogConnectionError(str(e))
    error.__cause__ = e
    return error


class MongoCursorHandle:
    """
    Tailable cursor over a pymongo collection

    Remembers the timestamp of the last entry it returned so a re-issued query
    continues strictly after it.

    One consumer polls a handle; close() may be called from another thread.
    """

    def __init__(
        self,
        collection: Any,
        filter: Optional[Mapping[str, Any]],
        options: CursorOptions,
        start_after: Optional[LogicalTimestamp] = None,
    ):
        """
        Initialize cursor handle (no I/O until open())

        Args:
            collection: pymongo Collection for the capped oplog
            filter: Query document pushed down to the server
            options: Cursor options
            start_after: Only return entries with ts greater than this
        """
        self._collection = collection
        self._filter = dict(filter) if filter is not None else None
        self._options = options
        self._last_seen = start_after
        self._cursor: Any = None
        self._closed = False
        self._opened = False
        # Guards _cursor and _closed against close() from another thread
        self._lock = threading.Lock()
        self.requeries = 0

    @property
    def alive(self) -> bool:
        return not self._closed

    @property
    def last_seen(self) -> Optional[LogicalTimestamp]:
        return self._last_seen

    def open(self) -> "MongoCursorHandle":
        """
        Open the driver cursor

        Raises:
            CursorPositionLostError: If the resume position has been overwritten
            OplogConnectionError: If the server cannot be reached or rejects the query
        """
        try:
            self._check_position()
            self._cursor = self._find()
        except PyMongoError as e:
            raise _wrap_error(e) from e
        if not self._opened:
            self._opened = True
            metrics.cursor_opened()
        logger.debug(
            "Tailable cursor opened",
            namespace=self._collection.full_name,
            after=self._last_seen,
        )
        return self

    def _check_position(self) -> None:
        if self._last_seen is None:
            return
        oldest = self._collection.find_one({}, sort=[("$natural", 1)], projection={"ts": 1})
        if oldest is None or not isinstance(oldest.get("ts"), Timestamp):
            return
        oldest_ts = LogicalTimestamp.from_bson(oldest["ts"])
        if oldest_ts > self._last_seen:
            raise CursorPositionLostError(
                f"Cursor position no longer available: resuming after {self._last_seen} "
                f"but the oldest retained entry is {oldest_ts}",
                oldest=oldest_ts,
            )

    def _find(self) -> Any:
        kwargs: Dict[str, Any] = {
            "cursor_type": self._options.cursor_type,
            "no_cursor_timeout": self._options.no_cursor_timeout,
        }
        if self._options.batch_size is not None:
            kwargs["batch_size"] = self._options.batch_size

        cursor = self._collection.find(resume_filter(self._filter, self._last_seen), **kwargs)
        if self._options.await_data and self._options.max_await_time_ms is not None:
            cursor = cursor.max_await_time_ms(self._options.max_await_time_ms)
        return cursor

    def poll_next(self) -> PollResult:
        """
        Fetch the next raw entry

        Returns:
            ITEM with the raw document, EXHAUSTED when no entry is available yet,
            FAILED with the wrapped error when the cursor cannot continue
        """
        if self._closed:
            raise RuntimeError("Cursor handle is closed")

        try:
            cursor = self._cursor
            if cursor is None or not cursor.alive:
                # Dead cursor (e.g. the oplog was empty when queried): re-issue
                cursor = self._requery()
                if cursor is None:
                    return PollResult.exhausted()

            document = cursor.next()
        except StopIteration:
            # A live awaitData cursor has already blocked on the server
            return PollResult.exhausted(waited=self._options.await_data and cursor.alive)
        except PyMongoError as e:
            logger.error("Tailable cursor failed", error=str(e))
            return PollResult.failed(_wrap_error(e))
        except CursorPositionLostError as e:
            logger.error("Tailable cursor position lost", error=str(e))
            return PollResult.failed(e)

        ts = document.get("ts")
        if isinstance(ts, Timestamp):
            self._last_seen = LogicalTimestamp.from_bson(ts)
        return PollResult.item(document)

    def _requery(self) -> Any:
        """Replace a dead driver cursor; returns None if the handle was closed meanwhile"""
        with self._lock:
            if self._closed:
                return None
            stale, self._cursor = self._cursor, None
        if stale is not None:
            stale.close()

        self._check_position()
        cursor = self._find()

        with self._lock:
            if not self._closed:
                self._cursor = cursor
                self.requeries += 1
                logger.debug("Re-issued tailable query", after=self._last_seen)
                return cursor
        cursor.close()
        return None

    def close(self) -> None:
        """Release the driver cursor; safe to call more than once"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            cursor, self._cursor = self._cursor, None
        try:
            if cursor is not None:
                cursor.close()
        finally:
            if self._opened:
                metrics.cursor_closed()
        logger.debug("Tailable cursor closed")


class MongoClientAdapter:
    """
    DatabaseClient backed by a pymongo MongoClient

    Connection, authentication and read preference are configured on the
    MongoClient itself.
    """

    def __init__(self, client: MongoClient):
        self.client = client

    def open_tailable_cursor(
        self,
        namespace: str,
        filter: Optional[Mapping[str, Any]],
        options: CursorOptions,
        start_after: Optional[LogicalTimestamp] = None,
    ) -> MongoCursorHandle:
        database, collection = split_namespace(namespace)
        handle = MongoCursorHandle(
            collection=self.client[database][collection],
            filter=filter,
            options=options,
            start_after=start_after,
        )
        return handle.open()
