"""Atomic file replacement (write to a sibling temp file, then rename)."""

from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path

PRIVATE_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 600
PRIVATE_DIR_MODE = stat.S_IRWXU  # 700


def atomic_write_bytes(path: str | Path, data: bytes, mode: int | None = None) -> None:
    """Replace *path* with *data* so readers never observe a partial file.

    With ``mode=None`` an existing file's permission bits are preserved and a
    new file is created owner-only (600). Concurrent writers each rename a
    complete file into place; the last rename wins.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    if mode is None and target.exists():
        mode = stat.S_IMODE(target.stat().st_mode)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def atomic_write_text(path: str | Path, text: str, mode: int | None = None) -> None:
    atomic_write_bytes(path, text.encode("utf-8"), mode=mode)


def restrict_dir(path: str | Path) -> None:
    """chmod 700 where the platform supports it."""
    try:
        os.chmod(path, PRIVATE_DIR_MODE)
    except OSError:
        pass
