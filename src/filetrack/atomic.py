"""Atomic single-file writes: same-directory temp file, then rename.

Temp files are named ``<basename>.tmp.<pid>.<unix-seconds>`` so the residue
scanner can recognise leftovers after a crash.  No fsync: the guarantee is
that the target is never left partially written, not power-loss durability.
Two writers hitting the same target within the same second must be
serialized by the caller.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from filetrack.clock import Clock
from filetrack.errors import IOFailure
from filetrack.fsops import FileSystem

logger = logging.getLogger("filetrack.atomic")


def temp_name(basename: str, pid: int, unix_seconds: int) -> str:
    return f"{basename}.tmp.{pid}.{unix_seconds}"


class AtomicWriter:
    """Write a byte buffer to a target path without ever exposing a partial file."""

    def __init__(self, fs: FileSystem | None = None, clock: Clock | None = None) -> None:
        self.fs = fs or FileSystem()
        self.clock = clock or Clock()

    def temp_path_for(self, target: Path) -> Path:
        return target.parent / temp_name(target.name, os.getpid(), self.clock.unix_seconds())

    def write(self, target: Path | str, data: bytes) -> None:
        """Replace ``target`` with ``data``.

        On any failure the temp file is removed, ``target`` keeps its previous
        bytes and IOFailure is raised.  If the cleanup also fails, both causes
        appear in the message.
        """
        target = Path(target)
        tmp = self.temp_path_for(target)

        try:
            f = self.fs.open_temp(tmp)
        except OSError as exc:
            msg = f"create temp file {tmp}: {exc}"
            raise IOFailure(msg) from exc

        try:
            f.write(data)
        except OSError as exc:
            problems = [f"write temp file {tmp}: {exc}"]
            try:
                f.close()
            except OSError as close_exc:
                problems.append(f"close error: {close_exc}")
            self._discard(tmp, problems)
            raise IOFailure("; ".join(problems)) from exc

        try:
            f.close()
        except OSError as exc:
            problems = [f"close temp file {tmp}: {exc}"]
            self._discard(tmp, problems)
            raise IOFailure("; ".join(problems)) from exc

        try:
            self.fs.rename(tmp, target)
        except OSError as exc:
            problems = [f"rename {tmp} -> {target}: {exc}"]
            self._discard(tmp, problems)
            raise IOFailure("; ".join(problems)) from exc

        logger.debug("wrote %s (%d bytes)", target, len(data))

    def _discard(self, tmp: Path, problems: list[str]) -> None:
        try:
            self.fs.remove(tmp)
        except FileNotFoundError:
            pass
        except OSError as exc:
            problems.append(f"cleanup error: {exc}")
