"""
Oplog Builder
Collects the optional settings of a stream before the single open call
"""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Optional

import structlog
from pymongo import MongoClient

from mongo_oplog.cdc.cursor import (
    OPLOG_NAMESPACE,
    CursorOptions,
    DatabaseClient,
    MongoClientAdapter,
    split_namespace,
)
from mongo_oplog.cdc.stream import Oplog
from mongo_oplog.models.timestamp import LogicalTimestamp

if TYPE_CHECKING:
    from mongo_oplog.config.settings import OplogSettings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OplogBuilder:
    """
    Immutable configuration for an Oplog stream

    Every setter returns a new builder, so one builder can be reused to open
    streams against several clients or to retry after a connection error.
    Nothing is validated against the server until build().

    Example:
        >>> oplog = (
        ...     OplogBuilder()
        ...     .filter({"op": "i"})
        ...     .start_after(last_checkpoint)
        ...     .build(client)
        ... )
    """

    filter_document: Optional[Mapping[str, Any]] = None
    cursor_options: CursorOptions = CursorOptions()
    resume_after: Optional[LogicalTimestamp] = None
    oplog_namespace: str = OPLOG_NAMESPACE

    def filter(self, filter: Optional[Mapping[str, Any]]) -> "OplogBuilder":
        """
        Restrict the entries fetched from the server

        None (the default) returns every entry. The filter is a MongoDB query
        document evaluated by the server, e.g. {"op": "i"} or {"ns": "shop.orders"}.
        """
        return replace(self, filter_document=dict(filter) if filter is not None else None)

    def options(self, options: CursorOptions) -> "OplogBuilder":
        return replace(self, cursor_options=options)

    def batch_size(self, batch_size: Optional[int]) -> "OplogBuilder":
        """Set batch_size on the underlying cursor (None falls back on the driver default)"""
        return replace(self, cursor_options=replace(self.cursor_options, batch_size=batch_size))

    def start_after(self, timestamp: Optional[LogicalTimestamp]) -> "OplogBuilder":
        """Resume after a previously persisted position (exclusive)"""
        return replace(self, resume_after=timestamp)

    def namespace(self, namespace: str) -> "OplogBuilder":
        """Tail a different capped collection than local.oplog.rs"""
        split_namespace(namespace)
        return replace(self, oplog_namespace=namespace)

    @classmethod
    def from_settings(cls, settings: "OplogSettings") -> "OplogBuilder":
        return cls(
            cursor_options=settings.cursor.to_options(),
            oplog_namespace=settings.namespace,
        )

    def build(self, client: Any) -> Oplog:
        """
        Open the cursor and return the stream

        Args:
            client: A DatabaseClient, or a pymongo MongoClient connected to a replica set

        Returns:
            Oplog positioned at the start of the oplog, or after ``start_after``

        Raises:
            CursorPositionLostError: If ``start_after`` is older than the oldest retained entry
            OplogConnectionError: If the cursor cannot be opened
        """
        if isinstance(client, MongoClient):
            client = MongoClientAdapter(client)
        if not isinstance(client, DatabaseClient):
            raise TypeError("client must be a pymongo MongoClient or a DatabaseClient")

        logger.info(
            "Opening oplog stream",
            namespace=self.oplog_namespace,
            filter=self.filter_document,
            start_after=str(self.resume_after) if self.resume_after else None,
        )
        handle = client.open_tailable_cursor(
            self.oplog_namespace,
            self.filter_document,
            self.cursor_options,
            start_after=self.resume_after,
        )
        return Oplog(handle, self.cursor_options)


def builder() -> OplogBuilder:
    """Builder to configure an Oplog"""
    return OplogBuilder()
