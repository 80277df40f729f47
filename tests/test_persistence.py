"""Tests for JSONL and atomic persistence."""

from pathlib import Path

import pytest

from pgscale.common.models import BandMetrics
from pgscale.common.persistence import append_jsonl, read_jsonl, write_text_atomic


class TestJsonl:
    """Tests for append_jsonl and read_jsonl."""

    def test_append_then_read(self, tmp_path: Path) -> None:
        """Appended models are read back in order."""
        path = tmp_path / "results" / "bands.jsonl"
        append_jsonl(path, BandMetrics(band_id=1, workers=1, connections=2, total_tps=10.5))
        append_jsonl(path, BandMetrics(band_id=2, workers=2, connections=4, total_tps=19.0))

        bands = read_jsonl(path, BandMetrics)

        assert [b.band_id for b in bands] == [1, 2]
        assert bands[1].total_tps == 19.0

    def test_skips_blank_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "bands.jsonl"
        append_jsonl(path, BandMetrics(band_id=1, workers=1, connections=1))
        with path.open("a") as f:
            f.write("\n\n")

        assert len(read_jsonl(path, BandMetrics)) == 1

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_jsonl(tmp_path / "missing.jsonl", BandMetrics)


class TestWriteTextAtomic:
    """Tests for write_text_atomic."""

    def test_creates_and_replaces(self, tmp_path: Path) -> None:
        path = tmp_path / "out" / "result.json"

        write_text_atomic(path, "first")
        write_text_atomic(path, "second")

        assert path.read_text() == "second"

    def test_leaves_no_temp_files(self, tmp_path: Path) -> None:
        path = tmp_path / "result.json"

        write_text_atomic(path, "{}")

        assert not list(tmp_path.glob("*.tmp"))
