# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Crash-safe file replacement."""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO


@contextmanager
def atomic_write(path: Path, mode: int | None = None) -> Iterator[TextIO]:
    """Open a temp file beside ``path`` and rename it over ``path`` on exit.

    Readers see either the old file or the complete new one.  On error the
    temp file is removed and ``path`` is left untouched.

    Args:
        path: Destination file.  Parent directories are created.
        mode: Optional permission bits for the new file.

    Yields:
        Text stream to write to (UTF-8, universal newlines disabled).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
