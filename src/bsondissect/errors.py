"""Exception hierarchy shared by the indexer, loader, script bridge and exporter."""

from __future__ import annotations

from typing import Optional


class DissectError(Exception):
    """Base class for every failure raised by bsondissect."""


class IndexCorruptError(DissectError):
    """A persisted index could not be decompressed, decoded or validated."""


class StaleIndexError(IndexCorruptError):
    """A persisted index was built for a different version of the source file."""


class MalformedInputError(DissectError):
    """The source file does not hold a valid sequence of length-prefixed documents."""

    def __init__(self, message: str, *, offset: Optional[int] = None) -> None:
        if offset is not None:
            message = f"{message} (offset {offset})"
        super().__init__(message)
        self.offset = offset


class MalformedDocumentError(MalformedInputError):
    """A record's byte range does not decode as a BSON document."""


class TruncatedReadError(DissectError):
    def __init__(self, offset: int, expected: int, actual: int) -> None:
        super().__init__(
            f"Truncated read at offset {offset}: expected {expected} bytes, got {actual}"
        )
        self.offset = offset
        self.expected = expected
        self.actual = actual


class ScriptError(DissectError):
    """A transformation script failed to compile or run."""


class InvalidIdentifierError(ScriptError):
    """A script handed back an ObjectId table that does not hold 12 bytes."""


class ConfigurationError(DissectError):
    """Invalid user supplied options."""


class RecordExportError(DissectError):
    """A single record failed and the run was configured to abort."""

    def __init__(self, position: int, offset: int, cause: Exception) -> None:
        super().__init__(f"Record #{position} at offset {offset} failed: {cause}")
        self.position = position
        self.offset = offset
        self.cause = cause
