"""
Oplog Stream
Turns a tailable cursor into an unbounded, in-order iterator of decode results

Three outcomes are kept apart:
- no entry available yet: the stream waits and polls again, yielding nothing
- an entry arrived: it is decoded and yielded, as an operation or a DecodeError
- the cursor failed: the OplogConnectionError is yielded once and iteration ends
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Optional

import structlog

from mongo_oplog.cdc.cursor import CursorHandle, CursorOptions, PollStatus
from mongo_oplog.cdc.parser import decode
from mongo_oplog.errors import (
    ConcurrentPollError,
    DecodeError,
    OplogError,
    StreamClosedError,
)
from mongo_oplog.models.operation import Operation
from mongo_oplog.models.timestamp import LogicalTimestamp
from mongo_oplog.observability import metrics

if TYPE_CHECKING:
    from mongo_oplog.cdc.builder import OplogBuilder

logger = structlog.get_logger(__name__)


class StreamState(str, Enum):
    IDLE = "IDLE"
    FETCHING = "FETCHING"
    SUSPENDED = "SUSPENDED"
    ERRORED = "ERRORED"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class OplogResult:
    """Either a decoded operation or the error that prevented it"""

    operation: Optional[Operation] = None
    error: Optional[OplogError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Operation:
        """Return the operation, or raise the error"""
        if self.error is not None:
            raise self.error
        if self.operation is None:
            raise RuntimeError("OplogResult holds neither an operation nor an error")
        return self.operation


class Oplog:
    """
    A MongoDB replica set oplog as an iterator of OplogResult

    Iteration is effectively endless: when the cursor reaches the end of the
    oplog the stream waits for new entries. It ends only after a cursor failure
    (yielded once as an OplogConnectionError) or after close().

    A single consumer drives a stream. close() may be called from another thread
    and releases the cursor, waking a consumer that is waiting for data.

    Example:
        >>> with Oplog.builder().filter({"op": "i"}).build(client) as oplog:
        ...     for result in oplog:
        ...         print(result.unwrap())
    """

    def __init__(self, handle: CursorHandle, options: Optional[CursorOptions] = None):
        """
        Wrap an open cursor handle

        Args:
            handle: Cursor opened by a DatabaseClient
            options: Options the cursor was opened with
        """
        self._handle = handle
        self._options = options or CursorOptions()
        self._state = StreamState.IDLE
        self._closed = threading.Event()
        self._released = False
        self._last_timestamp: Optional[LogicalTimestamp] = None
        self.idle_polls = 0

    @staticmethod
    def builder() -> "OplogBuilder":
        """Builder to configure the Oplog"""
        from mongo_oplog.cdc.builder import OplogBuilder

        return OplogBuilder()

    @classmethod
    def open(cls, client: Any) -> "Oplog":
        """Open a stream over every oplog entry with default options"""
        return cls.builder().build(client)

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def last_timestamp(self) -> Optional[LogicalTimestamp]:
        """Timestamp of the last decoded operation: the position to persist for resuming"""
        return self._last_timestamp

    def __iter__(self) -> "Oplog":
        return self

    def __next__(self) -> OplogResult:
        if self._closed.is_set():
            raise StreamClosedError("Oplog stream is closed")
        if self._state is StreamState.ERRORED:
            raise StopIteration
        if self._state in (StreamState.FETCHING, StreamState.SUSPENDED):
            raise ConcurrentPollError("Oplog stream is already being polled")

        while True:
            self._state = StreamState.FETCHING
            try:
                result = self._handle.poll_next()
            except Exception:
                if self._closed.is_set():
                    raise StopIteration from None
                self._state = StreamState.IDLE
                raise

            if self._closed.is_set():
                raise StopIteration

            if result.status is PollStatus.ITEM:
                self._state = StreamState.IDLE
                return self._decode(result.document)

            if result.status is PollStatus.EXHAUSTED:
                self._state = StreamState.SUSPENDED
                self.idle_polls += 1
                metrics.increment_exhausted()
                # No pause after the server already held an awaitData request open
                interval = 0 if result.waited else self._options.requery_interval_seconds
                # Returns True when close() was called while waiting
                if self._closed.wait(interval):
                    raise StopIteration
                continue

            self._state = StreamState.ERRORED
            error = result.error
            metrics.increment_cursor_failures(type(error).__name__)
            logger.error(
                "Oplog cursor failed",
                error=str(error),
                last_timestamp=self._last_timestamp,
            )
            self._release()
            return OplogResult(error=error)

    def _decode(self, document: Mapping[str, Any]) -> OplogResult:
        try:
            operation = decode(document)
        except DecodeError as e:
            metrics.increment_decode_errors(type(e).__name__)
            logger.warning("Failed to decode oplog entry", error=str(e), ts=document.get("ts"))
            return OplogResult(error=e)

        self._last_timestamp = operation.timestamp
        metrics.increment_operations(operation.kind.value)
        metrics.set_last_timestamp(operation.timestamp.seconds)
        return OplogResult(operation=operation)

    def operations(self) -> Iterator[Operation]:
        """
        Iterate over operations only, raising the first error encountered

        Unlike iterating the stream itself, a single malformed entry ends this
        iterator; call it again to continue past it.
        """
        for result in self:
            yield result.unwrap()

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        self._handle.close()

    def close(self) -> None:
        """Close the stream and release its cursor"""
        if self._closed.is_set():
            return
        self._closed.set()
        self._state = StreamState.CLOSED
        self._release()
        logger.info("Oplog stream closed", last_timestamp=self._last_timestamp)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __enter__(self) -> "Oplog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
