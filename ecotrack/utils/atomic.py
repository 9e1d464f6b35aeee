"""Write-then-rename replacement of the store document and the chart.

Content goes to a hidden temporary sibling that is renamed over the target
only once fully written and flushed, so a failed write leaves the previous
file in place.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, TextIO

from ecotrack.utils.logging import get_logger

logger = get_logger("utils.atomic")


class AtomicWriteError(Exception):
    """Raised when the target file could not be replaced."""

    pass


@contextmanager
def atomic_write(path: Path, encoding: str = "utf-8") -> Iterator[TextIO]:
    """
    Yield a text handle whose content replaces ``path`` on clean exit.

    Raises:
        AtomicWriteError: On any I/O failure; the target is left untouched
    """
    path = Path(path)
    temp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding=encoding,
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            temp_path = Path(handle.name)
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    except OSError as e:
        logger.error("file_replace_failed", path=str(path), error=str(e))
        raise AtomicWriteError(f"Failed to write {path}: {e}") from e
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink()

    logger.debug("file_replaced", path=str(path))


def atomic_write_text(path: Path, content: str) -> None:
    with atomic_write(path) as f:
        f.write(content)


def atomic_write_json(path: Path, data: Any, indent: int | None = None) -> None:
    """Serialize ``data`` with sorted keys; compact unless ``indent`` is given."""
    with atomic_write(path) as f:
        json.dump(data, f, indent=indent, sort_keys=True)
