"""Shared fixtures building synthetic BSON dumps."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List

import bson
import pytest
from bson import ObjectId


def sample_documents(count: int) -> List[dict]:
    return [
        {"_id": ObjectId(), "n": i, "name": f"doc-{i}", "pad": "x" * (i % 7)}
        for i in range(count)
    ]


@pytest.fixture
def documents() -> Callable[[int], List[dict]]:
    """Factory for simple numbered documents."""
    return sample_documents


@pytest.fixture
def write_bson(tmp_path: Path) -> Callable[..., Path]:
    """Write documents back to back into a BSON file under ``tmp_path``."""

    def _write(docs: List[dict], name: str = "dump.bson") -> Path:
        path = tmp_path / name
        with path.open("wb") as handle:
            for doc in docs:
                handle.write(bson.encode(doc))
        return path

    return _write
