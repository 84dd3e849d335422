"""File locking utilities for project files.

Locks are advisory and only coordinate lablog processes with each other.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import portalocker


def lock_path_for(path: Path) -> Path:
    """Hidden lock file next to ``path`` so it never shows up as a project."""
    return path.with_name(f".{path.name}.lock")


@contextmanager
def file_lock(path: Path, timeout: float = 10.0) -> Generator[None, None, None]:
    """Acquire an exclusive lock on a file.

    Creates a hidden .lock file alongside the target file.

    Args:
        path: File to lock
        timeout: Seconds to wait for lock

    Raises:
        portalocker.LockException: If lock cannot be acquired
    """
    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    if not lock_path.exists():
        lock_path.touch()

    with portalocker.Lock(lock_path, timeout=timeout):
        yield


@contextmanager
def atomic_write(path: Path, mode: str = "w", encoding: str = "utf-8") -> Generator:
    """Write to a file atomically.

    Writes to a temporary file then renames to target path.

    Args:
        path: Target file path
        mode: Write mode ('w' for text, 'wb' for binary)
        encoding: Text encoding (ignored for binary mode)

    Yields:
        File handle for writing
    """
    tmp_path = path.with_name(f".{path.name}.tmp")
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        if "b" in mode:
            with open(tmp_path, mode) as f:
                yield f
                f.flush()
                os.fsync(f.fileno())
        else:
            with open(tmp_path, mode, encoding=encoding, newline="") as f:
                yield f
                f.flush()
                os.fsync(f.fileno())

        os.replace(tmp_path, path)

    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise
