"""Tests for positional range selection."""

from __future__ import annotations

import pytest

from bsondissect.errors import ConfigurationError
from bsondissect.index.selection import parse_range, select_range
from bsondissect.models import BoundaryRecord


def _index(count: int):
    return [BoundaryRecord(offset=i * 10, size=10) for i in range(count)]


class TestParseRange:
    """Test parse_range."""

    @pytest.mark.parametrize(
        "expr, expected",
        [
            ("10..20", slice(10, 20)),
            ("5..", slice(5, None)),
            ("..7", slice(None, 7)),
            ("..", slice(None, None)),
            ("[3..9]", slice(3, 9)),
            ("  1..2 ", slice(1, 2)),
            ("4..4", slice(4, 4)),
        ],
    )
    def test_valid(self, expr: str, expected: slice) -> None:
        assert parse_range(expr) == expected

    @pytest.mark.parametrize(
        "expr",
        ["abc", "1..x", "5..2", "1..2..3", "-1..4", "7", "\u00b2..5", "1..\u2155"],
    )
    def test_invalid(self, expr: str) -> None:
        with pytest.raises(ConfigurationError):
            parse_range(expr)


class TestSelectRange:
    """Test select_range."""

    def test_second_half(self) -> None:
        """Selecting 50.. of 100 records yields the matching suffix."""
        records = _index(100)

        start, selected = select_range(records, parse_range("50.."))

        assert start == 50
        assert len(selected) == 50
        assert selected == records[50:]

    def test_open_range_selects_everything(self) -> None:
        records = _index(12)

        start, selected = select_range(records, parse_range(".."))

        assert start == 0
        assert selected == records

    def test_bounded_range(self) -> None:
        records = _index(30)

        start, selected = select_range(records, parse_range("10..15"))

        assert start == 10
        assert [r.offset for r in selected] == [100, 110, 120, 130, 140]

    def test_end_beyond_index(self) -> None:
        """Bounds past the end are rejected, not clamped."""
        with pytest.raises(ConfigurationError, match="outside the index"):
            select_range(_index(10), parse_range("5..11"))

    def test_start_beyond_index(self) -> None:
        with pytest.raises(ConfigurationError):
            select_range(_index(10), parse_range("11.."))

    def test_empty_range_at_end(self) -> None:
        start, selected = select_range(_index(10), parse_range("10.."))

        assert start == 10
        assert selected == []
