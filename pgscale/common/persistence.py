"""JSONL and atomic-file persistence utilities for pydantic models."""

import os
import tempfile
from pathlib import Path
from typing import TypeVar

from filelock import FileLock
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


def _lock_for(path: Path) -> FileLock:
    return FileLock(path.with_suffix(path.suffix + ".lock"))


def append_jsonl(path: str | Path, obj: BaseModel) -> None:
    """Append a pydantic model as one JSON line, creating the file if needed.

    Args:
        path: Path to the JSONL file
        obj: Model instance to append
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with _lock_for(path):
        with path.open("a", encoding="utf-8") as f:
            f.write(obj.model_dump_json() + "\n")


def read_jsonl(path: str | Path, model_class: type[T]) -> list[T]:
    """Read all lines from a JSONL file as model instances.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    results: list[T] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                results.append(model_class.model_validate_json(line))

    return results


def write_text_atomic(path: str | Path, content: str) -> None:
    """Write text to a file atomically (temp file in the same directory, then rename).

    Args:
        path: Destination path
        content: Text to write
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with _lock_for(path):
        fd, temp_path_str = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        temp_path = Path(temp_path_str)
        try:
            with open(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
