"""Compact persisted form of a boundary index."""

from __future__ import annotations

import logging
import struct
import zlib
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Sequence, Tuple

import numpy as np

from bsondissect.errors import IndexCorruptError, StaleIndexError
from bsondissect.models import BoundaryRecord, SourceFingerprint

LOGGER = logging.getLogger(__name__)

MAGIC = b"BSDX"
FORMAT_VERSION = 1
FLAG_FINGERPRINT = 0x1

_HEADER = struct.Struct("<4sHHQqq")
_TRAILER = struct.Struct("<I")
RECORD_DTYPE = np.dtype([("offset", "<u8"), ("size", "<u8")])

Codec = Callable[[bytes], bytes]


def index_path_for(source: Path) -> Path:
    """Return the default index location for ``source`` (``dump.bson`` -> ``dump.idx.dat``)."""
    source = Path(source)
    return source.with_name(f"{source.stem}.idx.dat")


class IndexStore:
    """Serialize boundary records and hand the bytes to a compression codec."""

    def __init__(self, compress: Codec = zlib.compress, decompress: Codec = zlib.decompress) -> None:
        self.compress = compress
        self.decompress = decompress

    def encode(
        self,
        records: Sequence[BoundaryRecord],
        fingerprint: Optional[SourceFingerprint] = None,
    ) -> bytes:
        body = np.array([(r.offset, r.size) for r in records], dtype=RECORD_DTYPE).tobytes()
        flags = FLAG_FINGERPRINT if fingerprint is not None else 0
        header = _HEADER.pack(
            MAGIC,
            FORMAT_VERSION,
            flags,
            len(records),
            fingerprint.size if fingerprint else -1,
            fingerprint.mtime_ns if fingerprint else -1,
        )
        payload = header + body
        return payload + _TRAILER.pack(zlib.crc32(payload))

    def decode(self, data: bytes) -> Tuple[List[BoundaryRecord], Optional[SourceFingerprint]]:
        if len(data) < _HEADER.size + _TRAILER.size:
            raise IndexCorruptError(f"Index too short ({len(data)} bytes)")

        magic, version, flags, count, size, mtime_ns = _HEADER.unpack_from(data)
        if magic != MAGIC:
            raise IndexCorruptError("Not a bsondissect index")
        if version != FORMAT_VERSION:
            raise IndexCorruptError(f"Unsupported index format version {version}")

        expected = _HEADER.size + count * RECORD_DTYPE.itemsize + _TRAILER.size
        if len(data) != expected:
            raise IndexCorruptError(
                f"Index length mismatch: {count} records need {expected} bytes, found {len(data)}"
            )

        (crc,) = _TRAILER.unpack_from(data, len(data) - _TRAILER.size)
        if zlib.crc32(data[: -_TRAILER.size]) != crc:
            raise IndexCorruptError("Index checksum mismatch")

        table = np.frombuffer(data, dtype=RECORD_DTYPE, count=count, offset=_HEADER.size)
        _validate(table)

        fingerprint = None
        if flags & FLAG_FINGERPRINT:
            fingerprint = SourceFingerprint(size=size, mtime_ns=mtime_ns)
        records = [BoundaryRecord(offset=o, size=s) for o, s in table.tolist()]
        return records, fingerprint

    def save(
        self,
        records: Sequence[BoundaryRecord],
        sink: BinaryIO,
        *,
        fingerprint: Optional[SourceFingerprint] = None,
    ) -> None:
        sink.write(self.compress(self.encode(records, fingerprint)))

    def load(
        self,
        source: BinaryIO,
        *,
        expected: Optional[SourceFingerprint] = None,
    ) -> List[BoundaryRecord]:
        raw = source.read()
        try:
            data = self.decompress(raw)
        except Exception as exc:
            raise IndexCorruptError(f"Failed to decompress index: {exc}") from exc

        records, fingerprint = self.decode(data)
        if expected is not None:
            if fingerprint is None:
                LOGGER.warning("Index carries no source fingerprint, assuming it is current")
            elif fingerprint != expected:
                raise StaleIndexError(
                    f"Index was built for a source of {fingerprint.size} bytes "
                    f"(mtime {fingerprint.mtime_ns}), source is now {expected.size} bytes "
                    f"(mtime {expected.mtime_ns})"
                )
            elif records and records[-1].end != expected.size:
                raise IndexCorruptError("Index does not cover the whole source file")
        return records

    def save_path(
        self,
        records: Sequence[BoundaryRecord],
        path: Path,
        *,
        fingerprint: Optional[SourceFingerprint] = None,
    ) -> None:
        with Path(path).open("wb") as handle:
            self.save(records, handle, fingerprint=fingerprint)

    def load_path(
        self,
        path: Path,
        *,
        expected: Optional[SourceFingerprint] = None,
    ) -> List[BoundaryRecord]:
        with Path(path).open("rb") as handle:
            return self.load(handle, expected=expected)


def _validate(table: np.ndarray) -> None:
    if table.size == 0:
        return
    if np.any(table["size"] < 4):
        raise IndexCorruptError("Index holds a record smaller than its length prefix")
    if table["offset"][0] != 0:
        raise IndexCorruptError("Index does not start at offset 0")
    ends = table["offset"][:-1] + table["size"][:-1]
    if not np.array_equal(ends, table["offset"][1:]):
        raise IndexCorruptError("Index records are not contiguous")
