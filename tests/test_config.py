"""Tests for export configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from bsondissect.config import ErrorPolicy, ExportConfig, NameBy, check_output
from bsondissect.errors import ConfigurationError


class TestExportConfig:
    """Test ExportConfig dataclass."""

    def test_default_config(self) -> None:
        """Should create config with default values."""
        config = ExportConfig()

        assert config.workers == 4
        assert config.batch_size == 100
        assert config.pretty is False
        assert config.single is False
        assert config.name_by is NameBy.SEQUENCE
        assert config.on_error is ErrorPolicy.ABORT
        assert config.ordered is True
        assert config.script is None

    def test_custom_config(self) -> None:
        config = ExportConfig(workers=8, batch_size=10, pretty=True, script="doc.x = 1")

        assert config.workers == 8
        assert config.batch_size == 10
        assert config.pretty is True
        assert config.script == "doc.x = 1"

    def test_enums_from_strings(self) -> None:
        """String values are coerced to the enums."""
        config = ExportConfig(name_by="offset", on_error="skip")

        assert config.name_by is NameBy.OFFSET
        assert config.on_error is ErrorPolicy.SKIP

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"workers": 0},
            {"batch_size": 0},
            {"name_by": "hash"},
            {"on_error": "retry"},
        ],
    )
    def test_invalid_values(self, kwargs) -> None:
        with pytest.raises(ConfigurationError):
            ExportConfig(**kwargs)


class TestCheckOutput:
    """Test conflicting output mode detection."""

    def test_single_into_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="must be a file"):
            check_output(tmp_path, single=True)

    def test_files_into_regular_file(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        target.write_text("[]")

        with pytest.raises(ConfigurationError, match="must be a directory"):
            check_output(target, single=False)

    def test_valid_combinations(self, tmp_path: Path) -> None:
        check_output(tmp_path / "new.json", single=True)
        check_output(tmp_path / "newdir", single=False)
        check_output(tmp_path, single=False)
