"""Atomic file writes shared by the state, journal and feedback stores."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_text(target_path: Path, content: str, prefix: str = "tmp_") -> None:
    """
    Atomically replace ``target_path`` with ``content``.

    Uses write-to-temp-then-rename in the target's directory so readers
    see either the old file or the new one, never a partial write.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # Write to temp file in same directory
    fd, temp_path = tempfile.mkstemp(
        suffix=".tmp",
        prefix=prefix,
        dir=target_path.parent,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        # Atomic rename
        os.replace(temp_path, target_path)
    except BaseException:
        # Clean up temp file on error
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


__all__ = ["atomic_write_text"]
