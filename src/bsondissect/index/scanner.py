"""Boundary scanning over a stream of concatenated BSON documents."""

from __future__ import annotations

import io
import logging
import struct
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional

from bsondissect.errors import MalformedInputError
from bsondissect.models import BoundaryRecord

LOGGER = logging.getLogger(__name__)

# little endian signed 32-bit document length, prefix included
_PREFIX = struct.Struct("<i")
PREFIX_SIZE = _PREFIX.size

ProgressCallback = Callable[[int], None]


def scan(stream: BinaryIO, *, progress: Optional[ProgressCallback] = None) -> List[BoundaryRecord]:
    """Locate every document in ``stream`` by reading only the length prefixes.

    The stream must be seekable. It is rewound to offset 0 on success.
    """
    end = stream.seek(0, io.SEEK_END)
    stream.seek(0)

    records: List[BoundaryRecord] = []
    position = 0
    while True:
        prefix = stream.read(PREFIX_SIZE)
        if not prefix:
            break
        if len(prefix) < PREFIX_SIZE:
            raise MalformedInputError(
                f"Unexpected end of file inside a length prefix ({len(prefix)} of {PREFIX_SIZE} bytes)",
                offset=position,
            )

        (size,) = _PREFIX.unpack(prefix)
        if size < PREFIX_SIZE:
            raise MalformedInputError(f"Invalid document size {size}", offset=position)
        if position + size > end:
            raise MalformedInputError(
                f"Document of {size} bytes runs past the end of the file ({end} bytes)",
                offset=position,
            )

        records.append(BoundaryRecord(offset=position, size=size))
        position = stream.seek(size - PREFIX_SIZE, io.SEEK_CUR)
        if progress is not None:
            progress(size)

    stream.seek(0)
    LOGGER.debug("Scanned %d documents (%d bytes)", len(records), end)
    return records


def scan_file(path: Path, *, progress: Optional[ProgressCallback] = None) -> List[BoundaryRecord]:
    """Scan the BSON file at ``path``."""
    with Path(path).open("rb") as handle:
        return scan(handle, progress=progress)
