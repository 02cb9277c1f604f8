"""Export configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from bsondissect.errors import ConfigurationError


class NameBy(str, Enum):
    SEQUENCE = "sequence"
    OFFSET = "offset"


class ErrorPolicy(str, Enum):
    ABORT = "abort"
    SKIP = "skip"


@dataclass(slots=True)
class ExportConfig:
    workers: int = 4
    batch_size: int = 100
    pretty: bool = False
    single: bool = False
    name_by: NameBy = NameBy.SEQUENCE
    on_error: ErrorPolicy = ErrorPolicy.ABORT
    ordered: bool = True
    script: Optional[str] = None

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch size must be at least 1, got {self.batch_size}")
        try:
            self.name_by = NameBy(self.name_by)
            self.on_error = ErrorPolicy(self.on_error)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc


def check_output(output: Path, single: bool) -> None:
    """Reject an output path that conflicts with the selected output mode."""
    output = Path(output)
    if single and output.is_dir():
        raise ConfigurationError(f"Output must be a file when writing a single array: {output}")
    if not single and output.exists() and not output.is_dir():
        raise ConfigurationError(f"Output must be a directory: {output}")
