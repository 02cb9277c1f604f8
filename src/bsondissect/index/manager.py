"""Reuse or rebuild the persisted index of a source file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from bsondissect.errors import IndexCorruptError
from bsondissect.index.scanner import ProgressCallback, scan_file
from bsondissect.index.store import IndexStore, index_path_for
from bsondissect.models import BoundaryRecord, SourceFingerprint

LOGGER = logging.getLogger(__name__)


def build_index(
    source: Path,
    index_path: Path,
    *,
    store: Optional[IndexStore] = None,
    progress: Optional[ProgressCallback] = None,
) -> List[BoundaryRecord]:
    """Scan ``source`` and persist the result next to it."""
    store = store or IndexStore()
    fingerprint = SourceFingerprint.of(source)
    records = scan_file(source, progress=progress)
    store.save_path(records, index_path, fingerprint=fingerprint)
    LOGGER.info("Indexed %d documents into %s", len(records), index_path)
    return records


def obtain_index(
    source: Path,
    *,
    index_path: Optional[Path] = None,
    reindex: bool = False,
    store: Optional[IndexStore] = None,
    progress: Optional[ProgressCallback] = None,
) -> Tuple[List[BoundaryRecord], bool]:
    """Return the index of ``source`` and whether it had to be rebuilt.

    A missing, corrupt or stale index is replaced by a fresh scan. Scan
    failures propagate.
    """
    source = Path(source)
    index_path = Path(index_path) if index_path is not None else index_path_for(source)
    store = store or IndexStore()

    if index_path.exists() and not reindex:
        try:
            records = store.load_path(index_path, expected=SourceFingerprint.of(source))
        except IndexCorruptError as exc:
            LOGGER.warning("Ignoring index %s: %s", index_path, exc)
        else:
            LOGGER.info("Found index file %s, skipping inspection", index_path)
            return records, False

    return build_index(source, index_path, store=store, progress=progress), True
