"""Random access reads of indexed BSON documents."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, List, Sequence

import bson
from bson.codec_options import CodecOptions, DatetimeConversion
from bson.errors import BSONError

from bsondissect.errors import MalformedDocumentError, TruncatedReadError
from bsondissect.models import BoundaryRecord

LOGGER = logging.getLogger(__name__)

# dates outside the datetime range decode as DatetimeMS instead of failing
CODEC_OPTIONS: CodecOptions = CodecOptions(
    tz_aware=True,
    tzinfo=timezone.utc,
    datetime_conversion=DatetimeConversion.DATETIME_AUTO,
)


@contextmanager
def open_source(path: Path) -> Iterator[BinaryIO]:
    """Open the source file for seek + read access."""
    handle = Path(path).open("rb")
    try:
        yield handle
    finally:
        handle.close()


def read_record(stream: BinaryIO, record: BoundaryRecord) -> bytes:
    stream.seek(record.offset)
    raw = stream.read(record.size)
    if len(raw) != record.size:
        raise TruncatedReadError(record.offset, record.size, len(raw))
    return raw


def decode_record(record: BoundaryRecord, raw: bytes) -> Dict[str, Any]:
    """Decode the bytes of one record into a document."""
    declared = int.from_bytes(raw[:4], "little", signed=True)
    if declared != record.size:
        raise MalformedDocumentError(
            f"Length prefix {declared} does not match indexed size {record.size}",
            offset=record.offset,
        )
    try:
        return bson.decode(raw, codec_options=CODEC_OPTIONS)
    except (BSONError, ValueError, OverflowError) as exc:
        raise MalformedDocumentError(f"Failed to decode document: {exc}", offset=record.offset) from exc


def load_record(stream: BinaryIO, record: BoundaryRecord) -> Dict[str, Any]:
    return decode_record(record, read_record(stream, record))


def load_documents(stream: BinaryIO, records: Sequence[BoundaryRecord]) -> List[Dict[str, Any]]:
    """Materialize one document per record, in input order."""
    return [load_record(stream, record) for record in records]
