from pathlib import Path

import pytest

from pgscale.common.logging import configure_log_path


@pytest.fixture(autouse=True)
def isolated_log_file(tmp_path: Path) -> Path:
    """Route all JSON log output into the test's temporary directory."""
    log_path = tmp_path / "logs" / "pgscale.jsonl"
    configure_log_path(log_path)
    return log_path
