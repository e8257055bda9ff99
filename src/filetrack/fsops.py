"""FileSystem: the file operations the store performs, behind one seam.

Components receive a FileSystem in their constructor so tests can inject
failures (a write that raises, a rename that fails) without patching os.
"""

from __future__ import annotations

import os
import shutil
import threading
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from collections.abc import Iterator

_locks_guard = threading.Lock()
_root_locks: dict[str, threading.RLock] = {}


def root_lock(root: Path | str) -> threading.RLock:
    """Process-wide re-entrant lock for one project root.

    Mutating operations take it so that concurrent callers inside this
    process cannot interleave read-modify-write cycles on the same tree.
    It does nothing across processes.
    """
    key = os.path.normcase(os.path.abspath(root))
    with _locks_guard:
        lock = _root_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _root_locks[key] = lock
        return lock


class FileSystem:
    """Real filesystem. Every method raises OSError on failure."""

    def open_temp(self, path: Path) -> BinaryIO:
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, 0o600)
        return os.fdopen(fd, "wb")

    def rename(self, src: Path, dst: Path) -> None:
        os.rename(src, dst)

    def remove(self, path: Path) -> None:
        os.remove(path)

    def makedirs(self, path: Path) -> None:
        os.makedirs(path, mode=0o750, exist_ok=True)

    def rmdir(self, path: Path) -> None:
        os.rmdir(path)

    def rmtree(self, path: Path) -> None:
        shutil.rmtree(path)

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def exists(self, path: Path) -> bool:
        return os.path.lexists(path)

    def is_dir(self, path: Path) -> bool:
        return os.path.isdir(path)

    def listdir(self, path: Path) -> list[os.DirEntry[str]]:
        with os.scandir(path) as it:
            return sorted(it, key=lambda e: e.name)

    def mtime(self, path: Path) -> float:
        return os.stat(path).st_mtime

    def walk(self, root: Path) -> Iterator[tuple[str, list[str], list[str]]]:
        def _raise(exc: OSError) -> None:
            raise exc
        yield from os.walk(root, onerror=_raise)
