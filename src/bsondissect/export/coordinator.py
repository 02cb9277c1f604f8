"""Parallel export of indexed documents to JSON."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Sequence, Tuple

from bsondissect.config import ErrorPolicy, ExportConfig, NameBy
from bsondissect.errors import DissectError, RecordExportError
from bsondissect.export.writer import AggregateWriter, ProgressCounter, encode_document
from bsondissect.ingestion.loader import load_record, open_source
from bsondissect.models import BoundaryRecord, ExportStats
from bsondissect.scripting.bridge import ScriptBridge

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Batch:
    index: int
    start: int
    records: Sequence[BoundaryRecord]

    def positions(self) -> Iterator[Tuple[int, BoundaryRecord]]:
        return enumerate(self.records, start=self.start)


def make_batches(
    records: Sequence[BoundaryRecord], batch_size: int, *, start_position: int = 0
) -> List[Batch]:
    """Split ``records`` into contiguous batches, keeping index order."""
    return [
        Batch(index=number, start=start_position + offset, records=records[offset : offset + batch_size])
        for number, offset in enumerate(range(0, len(records), batch_size))
    ]


class _WorkerState:
    """Source handle and Lua interpreter owned by a single worker thread."""

    def __init__(self, source_path: Path) -> None:
        self._resources = ExitStack()
        self.stream: BinaryIO = self._resources.enter_context(open_source(source_path))
        self._bridge: Optional[ScriptBridge] = None

    @property
    def bridge(self) -> ScriptBridge:
        if self._bridge is None:
            self._bridge = ScriptBridge()
        return self._bridge

    def close(self) -> None:
        self._resources.close()
        if self._bridge is not None:
            self._bridge.close()


@dataclass(slots=True)
class _Target:
    output_dir: Optional[Path] = None
    writer: Optional[AggregateWriter] = None


class Exporter:
    """Drives batches of records through load, script and JSON encoding on a thread pool."""

    def __init__(
        self,
        source_path: Path,
        config: ExportConfig,
        *,
        progress: Optional[ProgressCounter] = None,
    ) -> None:
        self.source_path = Path(source_path)
        self.config = config
        self.progress = progress or ProgressCounter()
        self._local = threading.local()
        self._states: List[_WorkerState] = []
        self._states_lock = threading.Lock()

    def export_files(
        self, records: Sequence[BoundaryRecord], output_dir: Path, *, start_position: int = 0
    ) -> ExportStats:
        """Write one JSON file per record into ``output_dir``."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        return self._run(records, start_position, _Target(output_dir=output_dir))

    def export_single(
        self, records: Sequence[BoundaryRecord], output_file: Path, *, start_position: int = 0
    ) -> ExportStats:
        """Write every record into one JSON array.

        The array is written to a ``.partial`` sibling and renamed into place
        once complete; a failed run removes it.
        """
        output_file = Path(output_file)
        partial = output_file.with_name(f"{output_file.name}.partial")
        try:
            with partial.open("w", encoding="utf-8") as handle:
                writer = AggregateWriter(handle, ordered=self.config.ordered, pretty=self.config.pretty)
                stats = self._run(records, start_position, _Target(writer=writer))
                writer.finish()
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        partial.replace(output_file)
        return stats

    def file_name(self, position: int, record: BoundaryRecord) -> str:
        if self.config.name_by is NameBy.OFFSET:
            return f"{record.offset}.json"
        return f"{position}.json"

    def _run(self, records: Sequence[BoundaryRecord], start_position: int, target: _Target) -> ExportStats:
        batches = make_batches(records, self.config.batch_size, start_position=start_position)
        LOGGER.debug(
            "Exporting %d documents in %d batches on %d workers",
            len(records),
            len(batches),
            self.config.workers,
        )
        self._local = threading.local()
        stats = ExportStats()
        executor = ThreadPoolExecutor(max_workers=self.config.workers, thread_name_prefix="bsondissect")
        try:
            futures = [executor.submit(self._process_batch, batch, target) for batch in batches]
            for future in as_completed(futures):
                stats.merge(future.result())
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        finally:
            executor.shutdown(wait=True)
            self._close_states()
        return stats

    def _state(self) -> _WorkerState:
        state = getattr(self._local, "state", None)
        if state is None:
            state = _WorkerState(self.source_path)
            self._local.state = state
            with self._states_lock:
                self._states.append(state)
        return state

    def _close_states(self) -> None:
        with self._states_lock:
            states, self._states = self._states, []
        for state in states:
            state.close()

    def _process_batch(self, batch: Batch, target: _Target) -> ExportStats:
        state = self._state()
        stats = ExportStats()
        encoded: List[str] = []

        for position, record in batch.positions():
            try:
                document = load_record(state.stream, record)
                if self.config.script is not None:
                    document = state.bridge.run(document, self.config.script)
                text = encode_document(document, pretty=self.config.pretty)
                if target.output_dir is not None:
                    (target.output_dir / self.file_name(position, record)).write_text(text, encoding="utf-8")
            except (DissectError, OSError) as exc:
                if self.config.on_error is ErrorPolicy.ABORT:
                    raise RecordExportError(position, record.offset, exc) from exc
                LOGGER.warning("Skipping record #%d at offset %d: %s", position, record.offset, exc)
                stats.record_failure(position, record.offset, str(exc))
            else:
                if target.output_dir is None:
                    encoded.append(text)
                stats.exported += 1
            self.progress.advance()

        if target.writer is not None:
            target.writer.submit(batch.index, encoded)
        return stats
