"""Core bsondissect data models."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass(frozen=True, slots=True)
class BoundaryRecord:
    """Location of one document inside the source file.

    ``offset`` points at the document's length prefix and ``size`` includes it.
    """

    offset: int
    size: int

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass(frozen=True, slots=True)
class SourceFingerprint:
    """Size and modification time of a source file at indexing time."""

    size: int
    mtime_ns: int

    @classmethod
    def of(cls, path: Path) -> "SourceFingerprint":
        stat = os.stat(path)
        return cls(size=stat.st_size, mtime_ns=stat.st_mtime_ns)


@dataclass(slots=True)
class RecordFailure:
    """A record that could not be exported."""

    position: int
    offset: int
    error: str


@dataclass(slots=True)
class ExportStats:
    exported: int = 0
    failed: int = 0
    failures: List[RecordFailure] = field(default_factory=list)

    def record_failure(self, position: int, offset: int, error: str) -> None:
        self.failed += 1
        self.failures.append(RecordFailure(position=position, offset=offset, error=error))

    def merge(self, other: "ExportStats") -> None:
        self.exported += other.exported
        self.failed += other.failed
        self.failures.extend(other.failures)
