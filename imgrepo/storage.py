# imgrepo/storage.py
"""
File primitives for index persistence.

Writers hold an advisory lock for the whole read-modify-persist cycle,
and the index file is replaced atomically so readers never observe a
partially written document.
"""

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .errors import StorageIOFailure

logger = logging.getLogger(__name__)


@contextmanager
def file_lock(lock_path: Path) -> Iterator[None]:
    """
    Hold an exclusive advisory lock on lock_path.

    Blocks until the lock is available. The lock file itself is left
    in place; only the flock on it matters.
    """
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_WRONLY, 0o644)
    except OSError as e:
        raise StorageIOFailure(lock_path, str(e)) from e

    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        logger.debug(f"Acquired lock {lock_path}")
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug(f"Released lock {lock_path}")
    finally:
        os.close(fd)


def atomic_write(path: Path, text: str) -> None:
    """
    Replace path with text.

    Writes to a sibling temporary file, fsyncs it and renames it over
    the destination.
    """
    path = Path(path)
    temp_path = path.with_name(path.name + ".tmp")
    try:
        with open(temp_path, "w") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError as e:
        if temp_path.is_file():
            temp_path.unlink()
        raise StorageIOFailure(path, str(e)) from e


def read_text(path: Path) -> Optional[str]:
    """Read path, returning None if it does not exist."""
    try:
        with open(path) as f:
            return f.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise StorageIOFailure(path, str(e)) from e
