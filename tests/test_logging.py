"""Tests for structured JSON logging module."""

import json
from pathlib import Path

from pgscale.common import logging as pglogging
from pgscale.common.logging import (
    JSONLogger,
    configure_log_path,
    generate_id,
    get_band_id,
    get_logger,
    get_run_id,
    set_band_id,
    set_run_id,
)
from pgscale.scaling.executor import BandState


def read_entries(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestJSONLogger:
    """Tests for JSONLogger class."""

    def test_creates_log_file_if_not_exists(self, tmp_path: Path) -> None:
        """JSONLogger creates the log file and its directory."""
        log_path = tmp_path / "nested" / "logs.jsonl"
        logger = JSONLogger("test", log_path)
        logger.info("Test message")

        assert log_path.exists()

    def test_writes_valid_json_line(self, tmp_path: Path) -> None:
        """Log entry is a valid JSON line with level, logger and timestamp."""
        log_path = tmp_path / "logs.jsonl"
        logger = JSONLogger("scaling.engine", log_path)
        logger.info("Band completed", {"band_id": 2, "tps": 812.5})

        (entry,) = read_entries(log_path)

        assert entry["level"] == "info"
        assert entry["message"] == "Band completed"
        assert entry["logger"] == "scaling.engine"
        assert entry["metadata"] == {"band_id": 2, "tps": 812.5}
        assert "T" in entry["timestamp"]

    def test_all_levels(self, tmp_path: Path) -> None:
        log_path = tmp_path / "logs.jsonl"
        logger = JSONLogger("test", log_path)

        logger.debug("d")
        logger.info("i")
        logger.warning("w")
        logger.error("e")

        assert [e["level"] for e in read_entries(log_path)] == ["debug", "info", "warning", "error"]

    def test_appends_multiple_lines(self, tmp_path: Path) -> None:
        log_path = tmp_path / "logs.jsonl"
        logger = JSONLogger("test", log_path)

        for i in range(3):
            logger.info(f"message {i}")

        assert len(read_entries(log_path)) == 3

    def test_serializes_non_json_values(self, tmp_path: Path) -> None:
        """Paths, tuples and nested structures are converted."""
        log_path = tmp_path / "logs.jsonl"
        logger = JSONLogger("test", log_path)
        logger.info("export", {"path": Path("/tmp/x.csv"), "band": (2, 4), "nested": {1: {3}}})

        (entry,) = read_entries(log_path)

        assert entry["metadata"]["path"] == "/tmp/x.csv"
        assert entry["metadata"]["band"] == [2, 4]
        assert entry["metadata"]["nested"] == {"1": [3]}

    def test_enums_and_non_finite_floats(self, tmp_path: Path) -> None:
        """Enums log their value and NaN or infinity log as null."""
        log_path = tmp_path / "logs.jsonl"
        logger = JSONLogger("test", log_path)
        logger.info("band", {"state": BandState.MEASURING, "tps": float("nan"), "p95_ms": float("inf")})

        (entry,) = read_entries(log_path)

        assert entry["metadata"] == {"state": "measuring", "tps": None, "p95_ms": None}

    def test_omits_metadata_when_absent(self, tmp_path: Path) -> None:
        log_path = tmp_path / "logs.jsonl"
        JSONLogger("test", log_path).info("plain")

        (entry,) = read_entries(log_path)

        assert "metadata" not in entry


class TestContextIds:
    """Tests for run and band context variables."""

    def test_run_and_band_ids_are_attached(self, tmp_path: Path) -> None:
        """Entries carry the run and band currently set in context."""
        log_path = tmp_path / "logs.jsonl"
        logger = JSONLogger("test", log_path)

        set_run_id("run-42")
        set_band_id(3)
        try:
            logger.info("inside band")
        finally:
            set_band_id(None)
            set_run_id(None)
        logger.info("outside")

        inside, outside = read_entries(log_path)
        assert inside["run_id"] == "run-42"
        assert inside["band_id"] == 3
        assert "run_id" not in outside
        assert "band_id" not in outside

    def test_band_zero_is_not_dropped(self, tmp_path: Path) -> None:
        log_path = tmp_path / "logs.jsonl"
        set_band_id(0)
        try:
            JSONLogger("test", log_path).info("zero")
        finally:
            set_band_id(None)

        assert read_entries(log_path)[0]["band_id"] == 0

    def test_getters(self) -> None:
        set_run_id("abc")
        set_band_id(7)
        try:
            assert get_run_id() == "abc"
            assert get_band_id() == 7
        finally:
            set_run_id(None)
            set_band_id(None)

    def test_generate_id_is_unique(self) -> None:
        assert generate_id() != generate_id()


class TestGetLogger:
    """Tests for get_logger and configure_log_path."""

    def test_returns_cached_instance(self) -> None:
        assert get_logger("scaling.test") is get_logger("scaling.test")

    def test_configure_log_path_redirects_existing_loggers(self, tmp_path: Path) -> None:
        logger = get_logger("scaling.redirect")
        new_path = tmp_path / "other" / "pgscale.jsonl"

        configure_log_path(new_path)
        logger.info("redirected")

        assert logger.log_path == new_path
        assert pglogging.get_logger("scaling.fresh").log_path == new_path
        assert read_entries(new_path)[0]["message"] == "redirected"
