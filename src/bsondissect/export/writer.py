"""JSON output for exported documents."""

from __future__ import annotations

import logging
import textwrap
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TextIO

from bson import json_util

from bsondissect.errors import DissectError

LOGGER = logging.getLogger(__name__)


def encode_document(document: Mapping[str, Any], *, pretty: bool = False) -> str:
    """Render a document as relaxed extended JSON."""
    return json_util.dumps(
        document,
        json_options=json_util.RELAXED_JSON_OPTIONS,
        indent=2 if pretty else None,
        ensure_ascii=False,
    )


class ProgressCounter:
    """Thread safe count of processed records."""

    def __init__(self, callback: Optional[Callable[[int], None]] = None) -> None:
        self._lock = threading.Lock()
        self._value = 0
        self._callback = callback

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def advance(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount
        if self._callback is not None:
            self._callback(amount)


class AggregateWriter:
    """Writes every exported document into one JSON array.

    Workers hand over whole batches through :meth:`submit`. In ordered mode a
    batch is held back until all batches before it have been written, so the
    array follows the index order.
    """

    def __init__(self, stream: TextIO, *, ordered: bool = True, pretty: bool = False) -> None:
        self._stream = stream
        self.ordered = ordered
        self.pretty = pretty
        self._lock = threading.Lock()
        self._pending: Dict[int, List[str]] = {}
        self._next_batch = 0
        self.count = 0
        self._stream.write("[")

    def submit(self, batch_index: int, encoded: Sequence[str]) -> None:
        with self._lock:
            if not self.ordered:
                self._write(encoded)
                return
            self._pending[batch_index] = list(encoded)
            while self._next_batch in self._pending:
                self._write(self._pending.pop(self._next_batch))
                self._next_batch += 1

    @property
    def pending_batches(self) -> int:
        with self._lock:
            return len(self._pending)

    def _write(self, encoded: Sequence[str]) -> None:
        for text in encoded:
            if self.count:
                self._stream.write(",")
            if self.pretty:
                self._stream.write("\n" + textwrap.indent(text, "  "))
            else:
                self._stream.write(text)
            self.count += 1

    def finish(self) -> None:
        with self._lock:
            if self._pending:
                raise DissectError(
                    f"{len(self._pending)} batches never received their predecessors "
                    f"(waiting for batch {self._next_batch})"
                )
            self._stream.write("\n]\n" if self.pretty and self.count else "]\n")
        LOGGER.debug("Wrote %d documents to the aggregate array", self.count)
