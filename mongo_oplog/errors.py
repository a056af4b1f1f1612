"""
Error taxonomy for oplog tailing

OplogConnectionError is fatal to a stream, DecodeError is per record,
and usage errors are raised synchronously to the caller.
"""

from typing import Optional


class OplogError(Exception):
    """Base exception for mongo_oplog errors"""

    pass


class OplogConnectionError(OplogError):
    """Cursor could not be opened, or an open cursor failed irrecoverably"""

    pass


class CursorPositionLostError(OplogConnectionError):
    """The requested position is no longer retained by the capped oplog"""

    def __init__(self, message: str, oldest: Optional[object] = None) -> None:
        super().__init__(message)
        self.oldest = oldest


class DecodeError(OplogError):
    """A fetched oplog entry did not match the expected shape"""

    pass


class MissingFieldError(DecodeError):
    def __init__(self, field: str) -> None:
        super().__init__(f"Missing field: {field}")
        self.field = field


class TypeMismatchError(DecodeError):
    def __init__(self, field: str, expected: str) -> None:
        super().__init__(f"Field {field} is not of type {expected}")
        self.field = field
        self.expected = expected


class UnknownKindError(DecodeError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown operation type found: {kind}")
        self.kind = kind


class StreamClosedError(OplogError, RuntimeError):
    """The stream was polled after close()"""

    pass


class ConcurrentPollError(OplogError, RuntimeError):
    """A second poll was started while another one is still in flight"""

    pass
