"""Startup sweep for temp files left behind by interrupted atomic writes.

Recent residue (< 24 h) is an artifact of a crash that just happened and is
deleted.  Older residue is left in place and reported, because something has
kept it around long enough to deserve an operator's attention.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from filetrack.clock import Clock
from filetrack.errors import IOFailure
from filetrack.fsops import FileSystem

logger = logging.getLogger("filetrack.residue")

STAGING_DIR = ".tmp_rename"
STALE_AFTER = timedelta(hours=24)

ERR_IO_WRITE = "E_IO_WRITE"
ERR_TMP_REMAINING = "E_TMP_REMAINING"

# <basename>.tmp.<pid>.<unix-seconds>, as written by AtomicWriter
_TMP_RE = re.compile(r".+\.tmp\.[0-9]+\.[0-9]+")


@dataclass(frozen=True)
class ResidueWarning:
    error_code: str
    message: str
    target: str
    hint: str


def is_tmp_artifact(name: str) -> bool:
    return _TMP_RE.fullmatch(name) is not None


def should_skip_dir(name: str) -> bool:
    """Dot directories (.git and friends) are skipped; the staging area is not."""
    return name != STAGING_DIR and name.startswith(".")


class ResidueScanner:
    def __init__(self, fs: FileSystem | None = None, clock: Clock | None = None) -> None:
        self.fs = fs or FileSystem()
        self.clock = clock or Clock()

    def scan(self, root: Path | str) -> list[ResidueWarning]:
        """Delete recent temp residue under ``root`` and report the rest.

        Raises IOFailure if the tree itself cannot be walked.
        """
        now = self.clock.now().timestamp()
        warnings: list[ResidueWarning] = []
        removed = 0

        try:
            for dirpath, dirnames, filenames in self.fs.walk(Path(root)):
                dirnames[:] = sorted(d for d in dirnames if not should_skip_dir(d))
                for name in sorted(filenames):
                    if not is_tmp_artifact(name):
                        continue
                    path = Path(dirpath) / name
                    try:
                        age = now - self.fs.mtime(path)
                    except FileNotFoundError:
                        continue  # finished or cleaned up by its writer meanwhile
                    if age < STALE_AFTER.total_seconds():
                        try:
                            self.fs.remove(path)
                            removed += 1
                        except OSError as exc:
                            logger.warning("could not remove temp residue %s: %s", path, exc)
                            warnings.append(ResidueWarning(
                                error_code=ERR_IO_WRITE,
                                message="Failed to delete a temporary file.",
                                target=str(path),
                                hint="Check the file's permissions and whether another program is using it.",
                            ))
                        continue
                    logger.warning("stale temp residue left in place: %s", path)
                    warnings.append(ResidueWarning(
                        error_code=ERR_TMP_REMAINING,
                        message="A temporary file has been left behind for more than 24 hours.",
                        target=str(path),
                        hint="Delete it manually if it is no longer needed.",
                    ))
        except OSError as exc:
            msg = f"scan {root} for temp residue: {exc}"
            raise IOFailure(msg) from exc

        if removed:
            logger.info("removed %d temp file(s) under %s", removed, os.fspath(root))
        return warnings
