from __future__ import annotations

import os
import tempfile
from pathlib import Path

PRIVATE_FILE_MODE = 0o600
PRIVATE_DIR_MODE = 0o700


def atomic_write_bytes(path: Path, content: bytes, *, mode: int = PRIVATE_FILE_MODE) -> None:
    """Write *content* to *path* atomically.

    Writes to a temporary file in the same directory, then renames
    (``os.replace``) into place, so a crash mid-write leaves the previous
    file intact. The temporary file is created with *mode* before any data
    is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as tmp_handle:
            os.fchmod(tmp_handle.fileno(), mode)
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        # Clean up the temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def ensure_private_dir(path: Path) -> None:
    # Mode applies only when the leaf directory is created here.
    path.mkdir(mode=PRIVATE_DIR_MODE, parents=True, exist_ok=True)


def remove_if_exists(path: Path) -> bool:
    """Delete *path*; return False when it was already absent."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
