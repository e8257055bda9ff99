"""Attachment store: stages a comment's files under ``<issue_id>.files/``.

save_all() writes every input through the atomic writer and hands back a
Rollback, even on success, so the caller can remove the whole batch if the
record write that follows fails.  A failure inside the batch removes what the
batch already wrote before the error propagates.
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from filetrack.atomic import AtomicWriter
from filetrack.errors import ConflictError, IOFailure, RollbackError, StoreError
from filetrack.fsops import FileSystem
from filetrack.ids import IdGenerator
from filetrack.models import ATTACHMENT_DIR_EXT
from filetrack.validation import INVALID_NAME_CHARS

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("filetrack.attachments")

MAX_FILE_NAME_LENGTH = 255
_MAX_COLLISION_ATTEMPTS = 1000
# Room kept for "_<n>" when an extension is so long it would crowd out the name.
_SUFFIX_RESERVE = 8


@dataclass(frozen=True)
class AttachmentInput:
    original_name: str
    data: bytes


@dataclass(frozen=True)
class SavedAttachment:
    attachment_id: str
    original_name: str
    stored_name: str
    relative_path: str       # "<issue_id>.files/<stored_name>"
    full_path: Path
    size_bytes: int


class Rollback(Protocol):
    """Undo handle for a staged batch.

    ``undo()`` is idempotent and may be called more than once: files that are
    already gone are not errors.  It attempts every deletion and raises one
    RollbackError listing all that failed.
    """

    def undo(self) -> None: ...


class NoopRollback:
    """Rollback for an empty batch."""

    def undo(self) -> None:
        return None


class FileRollback:
    """Deletes a fixed set of staged files (and the attachment dir if this batch created it)."""

    def __init__(self, fs: FileSystem, paths: Sequence[Path], created_dir: Path | None = None) -> None:
        self._fs = fs
        self._paths = list(paths)
        self._created_dir = created_dir

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def undo(self) -> None:
        failures: list[str] = []
        for path in self._paths:
            try:
                self._fs.remove(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                failures.append(f"{path}: {exc}")
        if self._created_dir is not None and not failures:
            # Only an empty directory goes; anything else in it is not ours.
            with contextlib.suppress(OSError):
                self._fs.rmdir(self._created_dir)
        if failures:
            msg = "remove staged attachments"
            raise RollbackError(msg, failures=failures)
        logger.info("rolled back %d attachment(s)", len(self._paths))


# ---------------------------------------------------------------------------
# Name handling
# ---------------------------------------------------------------------------


def sanitize_file_name(name: str) -> str:
    """Make ``name`` safe on every filesystem the project may be cloned to."""
    if not name:
        return "_"
    cleaned = "".join("_" if ch in INVALID_NAME_CHARS or ord(ch) < 0x20 else ch for ch in name)
    if cleaned[-1] in ". ":
        cleaned = cleaned[:-1] + "_"
    cleaned = cleaned[:MAX_FILE_NAME_LENGTH]
    return cleaned or "_"


def split_ext(name: str) -> tuple[str, str]:
    stem, ext = os.path.splitext(name)
    if not stem:
        return name, ""
    return stem, ext


class AttachmentStore:
    """Writes attachment files for one comment at a time."""

    def __init__(
        self,
        fs: FileSystem | None = None,
        ids: IdGenerator | None = None,
        writer: AtomicWriter | None = None,
    ) -> None:
        self.fs = fs or FileSystem()
        self.ids = ids or IdGenerator()
        self.writer = writer or AtomicWriter(self.fs)

    def attachment_dir(self, issue_dir: Path, issue_id: str) -> Path:
        return Path(issue_dir) / f"{issue_id}{ATTACHMENT_DIR_EXT}"

    def save_all(
        self,
        issue_dir: Path | str,
        issue_id: str,
        inputs: Sequence[AttachmentInput],
    ) -> tuple[list[SavedAttachment], Rollback]:
        """Stage ``inputs`` under the issue's attachment directory.

        Returns the saved attachments in input order and a Rollback for the
        whole batch.  Raises IOFailure or ConflictError after removing the
        files this call wrote; RollbackError if that removal fails too.
        """
        if not inputs:
            return [], NoopRollback()

        attach_dir = self.attachment_dir(Path(issue_dir), issue_id)
        created_dir = None if self.fs.is_dir(attach_dir) else attach_dir
        try:
            self.fs.makedirs(attach_dir)
        except OSError as exc:
            msg = f"create attachment dir {attach_dir}: {exc}"
            raise IOFailure(msg) from exc

        saved: list[SavedAttachment] = []
        for item in inputs:
            try:
                saved.append(self._save_one(attach_dir, issue_id, item))
            except StoreError as exc:
                partial = FileRollback(self.fs, [s.full_path for s in saved], created_dir)
                try:
                    partial.undo()
                except RollbackError as rb_exc:
                    msg = "cleanup attachments failed"
                    raise RollbackError(msg, cause=exc, failures=rb_exc.failures) from exc
                raise

        logger.info("staged %d attachment(s) for %s", len(saved), issue_id)
        return saved, FileRollback(self.fs, [s.full_path for s in saved], created_dir)

    def _save_one(self, attach_dir: Path, issue_id: str, item: AttachmentInput) -> SavedAttachment:
        attachment_id = self.ids.attachment_id()
        stored_name = self.build_stored_name(attach_dir, attachment_id, sanitize_file_name(item.original_name))
        full_path = attach_dir / stored_name
        self.writer.write(full_path, item.data)
        return SavedAttachment(
            attachment_id=attachment_id,
            original_name=item.original_name,
            stored_name=stored_name,
            relative_path=f"{issue_id}{ATTACHMENT_DIR_EXT}/{stored_name}",
            full_path=full_path,
            size_bytes=len(item.data),
        )

    def build_stored_name(self, attach_dir: Path, attachment_id: str, sanitized: str) -> str:
        """``<id>_<name><ext>``, or ``<id>_<name>_<n><ext>`` while the name is taken.

        Every candidate is trimmed to 255 characters, cutting the name part
        and never the id prefix, the suffix or the extension.
        """
        prefix = f"{attachment_id}_"
        name_part, ext = split_ext(sanitized)
        if len(prefix) + len(ext) + _SUFFIX_RESERVE > MAX_FILE_NAME_LENGTH:
            name_part, ext = sanitized, ""

        base = _trim(name_part, MAX_FILE_NAME_LENGTH - len(prefix) - len(ext)) or "_"
        candidate = prefix + base + ext
        if not self.fs.exists(attach_dir / candidate):
            return candidate

        for n in range(1, _MAX_COLLISION_ATTEMPTS):
            suffix = f"_{n}"
            trimmed = _trim(name_part, MAX_FILE_NAME_LENGTH - len(prefix) - len(ext) - len(suffix)) or "_"
            candidate = prefix + trimmed + suffix + ext
            if not self.fs.exists(attach_dir / candidate):
                return candidate

        msg = f"stored name collision limit reached for {sanitized!r}"
        raise ConflictError(msg)


def _trim(value: str, limit: int) -> str:
    if limit <= 0:
        return ""
    return value[:limit]
