"""Positional range selection over a boundary index."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from bsondissect.errors import ConfigurationError
from bsondissect.models import BoundaryRecord


def _parse_bound(text: str, expr: str) -> Optional[int]:
    text = text.strip()
    if not text:
        return None
    if not text.isdecimal():
        raise ConfigurationError(f"Invalid range bound {text!r} in {expr!r}")
    return int(text)


def parse_range(expr: str) -> slice:
    """Parse ``start..end`` (either side optional, brackets allowed) into a slice.

    >>> parse_range("[10..20]")
    slice(10, 20, None)
    """
    body = expr.strip().strip("[]")
    parts = body.split("..")
    if len(parts) != 2:
        raise ConfigurationError(f"Invalid range {expr!r}, expected 'start..end'")

    start = _parse_bound(parts[0], expr)
    end = _parse_bound(parts[1], expr)
    if start is not None and end is not None and start > end:
        raise ConfigurationError(f"Invalid range {expr!r}: start is greater than end")
    return slice(start, end)


def select_range(
    records: Sequence[BoundaryRecord], selection: slice
) -> Tuple[int, List[BoundaryRecord]]:
    """Apply ``selection`` to ``records``.

    Returns the position of the first selected record and the selected records.
    Bounds beyond the index are rejected instead of clamped.
    """
    total = len(records)
    start = 0 if selection.start is None else selection.start
    stop = total if selection.stop is None else selection.stop
    if start > total or stop > total:
        raise ConfigurationError(
            f"Range {start}..{stop} is outside the index ({total} documents)"
        )
    return start, list(records[start:stop])
