"""
Pytest Fixtures and Test Configuration
Provides in-memory stand-ins for the database client and pymongo cursors
"""

from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional

import pytest
from bson import Timestamp

from mongo_oplog.cdc.cursor import CursorOptions, PollResult
from mongo_oplog.errors import OplogConnectionError
from mongo_oplog.models.timestamp import LogicalTimestamp


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="run tests that start a MongoDB replica set in Docker",
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests marked "integration" unless --run-integration is given"""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Raw oplog entries
# ============================================================================


def make_entry(op: str, seconds: int = 1479561394, increment: int = 0, **fields: Any) -> Dict[str, Any]:
    """Build a raw oplog document the way the server returns it"""
    entry: Dict[str, Any] = {"ts": Timestamp(seconds, increment), "t": 1, "v": 2, "op": op}
    entry.update(fields)
    return entry


@pytest.fixture
def insert_entry() -> Dict[str, Any]:
    return make_entry("i", ns="foo.bar", o={"_id": 1, "foo": "bar"})


@pytest.fixture
def update_entry() -> Dict[str, Any]:
    return make_entry(
        "u",
        seconds=1479561033,
        ns="foo.bar",
        o2={"_id": 1},
        o={"$set": {"foo": "baz"}},
    )


# ============================================================================
# DatabaseClient stand-in
# ============================================================================


class ScriptedCursorHandle:
    """
    Cursor handle replaying a fixed list of poll results

    Once the script runs out the handle reports EXHAUSTED forever, like a
    tailable cursor sitting at the end of the oplog.
    """

    def __init__(self, client: "FakeDatabaseClient", script: Iterable[PollResult]):
        self._client = client
        self._script = list(script)
        self.polls = 0
        self.closed = False

    @property
    def alive(self) -> bool:
        return not self.closed

    def poll_next(self) -> PollResult:
        if self.closed:
            raise RuntimeError("Cursor handle is closed")
        self.polls += 1
        if self._script:
            return self._script.pop(0)
        return PollResult.exhausted()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._client.open_handles -= 1


def _matches(document: Mapping[str, Any], filter: Optional[Mapping[str, Any]]) -> bool:
    if not filter:
        return True
    return all(document.get(key) == value for key, value in filter.items())


class FakeDatabaseClient:
    """
    DatabaseClient over an in-memory oplog

    Top-level equality filters are applied before documents reach the handle,
    as the server would. ``script`` overrides the documents with explicit poll
    results; ``fail_open`` makes open_tailable_cursor raise.
    """

    def __init__(
        self,
        entries: Optional[List[Mapping[str, Any]]] = None,
        script: Optional[List[PollResult]] = None,
        fail_open: Optional[OplogConnectionError] = None,
    ):
        self.entries = list(entries or [])
        self.script = script
        self.fail_open = fail_open
        self.open_handles = 0
        self.calls: List[Dict[str, Any]] = []
        self.handles: List[ScriptedCursorHandle] = []

    def open_tailable_cursor(
        self,
        namespace: str,
        filter: Optional[Mapping[str, Any]],
        options: CursorOptions,
        start_after: Optional[LogicalTimestamp] = None,
    ) -> ScriptedCursorHandle:
        self.calls.append(
            {"namespace": namespace, "filter": filter, "options": options, "start_after": start_after}
        )
        if self.fail_open is not None:
            raise self.fail_open

        if self.script is not None:
            script = list(self.script)
        else:
            script = [
                PollResult.item(entry)
                for entry in self.entries
                if _matches(entry, filter)
                and (start_after is None or LogicalTimestamp.from_bson(entry["ts"]) > start_after)
            ]

        handle = ScriptedCursorHandle(self, script)
        self.open_handles += 1
        self.handles.append(handle)
        return handle


@pytest.fixture
def fast_options() -> CursorOptions:
    """Cursor options that do not pause between polls"""
    return CursorOptions(requery_interval_seconds=0)


# ============================================================================
# pymongo stand-ins
# ============================================================================


class FakeDriverCursor:
    """
    Mimics pymongo.cursor.Cursor for tailable queries

    ``items`` may contain exceptions, which next() raises in order. When no item
    is left next() raises StopIteration; ``dies`` marks the cursor dead then.
    """

    def __init__(self, items: Iterable[Any], dies: bool = False):
        self._items = list(items)
        self._dies = dies
        self.alive = True
        self.closed = False
        self.max_await = None

    def max_await_time_ms(self, ms: int) -> "FakeDriverCursor":
        self.max_await = ms
        return self

    def next(self) -> Any:
        if not self._items:
            if self._dies:
                self.alive = False
            raise StopIteration
        item = self._items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True
        self.alive = False


class FakeCollection:
    """Mimics a pymongo Collection: find() hands out the queued cursors in order"""

    def __init__(self, cursors: List[FakeDriverCursor], oldest: Optional[Mapping[str, Any]] = None):
        self.full_name = "local.oplog.rs"
        self._cursors = list(cursors)
        self.oldest = oldest
        self.find_calls: List[Dict[str, Any]] = []
        self.find_one_error: Optional[Exception] = None

    def find(self, filter: Any = None, **kwargs: Any) -> FakeDriverCursor:
        self.find_calls.append({"filter": filter, **kwargs})
        if not self._cursors:
            return FakeDriverCursor([], dies=True)
        return self._cursors.pop(0)

    def find_one(self, filter: Any = None, **kwargs: Any) -> Optional[Mapping[str, Any]]:
        if self.find_one_error is not None:
            raise self.find_one_error
        return self.oldest
