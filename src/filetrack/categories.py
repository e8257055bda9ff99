"""Categories: flat directories directly under the project root.

Renaming is a staged move through ``<root>/.tmp_rename/``:

    1. <root>/<old>              -> <root>/.tmp_rename/<new>     (commit point)
    2. rewrite "category" in every <new>/*.json record
    3. <root>/.tmp_rename/<new>  -> <root>/<new>

If step 2 fails, the records already rewritten get their old bytes back and
the directory returns to <root>/<old>.  If step 3 fails the category stays
in the staging area, where it is listed as read-only, and any further rename
in this project refuses to run until someone resolves it by hand.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path

from filetrack import jsonfmt
from filetrack.atomic import AtomicWriter
from filetrack.errors import (
    ConflictError,
    IOFailure,
    NotFoundError,
    RollbackError,
    StoreError,
    UnparsableError,
    ValidationFailed,
)
from filetrack.fsops import FileSystem, root_lock
from filetrack.mode import Mode, require_contractor
from filetrack.models import ATTACHMENT_DIR_EXT, RECORD_EXT
from filetrack.residue import STAGING_DIR
from filetrack.validation import validate_category_name

logger = logging.getLogger("filetrack.categories")


@dataclass(frozen=True)
class Category:
    name: str
    path: Path
    read_only: bool = False


class CategoryService:
    def __init__(self, root: Path | str, fs: FileSystem | None = None, writer: AtomicWriter | None = None) -> None:
        self.root = Path(root)
        self.fs = fs or FileSystem()
        self.writer = writer or AtomicWriter(self.fs)

    @property
    def staging_root(self) -> Path:
        return self.root / STAGING_DIR

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def scan(self) -> list[Category]:
        """All categories, sorted by name; staged ones are read-only."""
        try:
            entries = self.fs.listdir(self.root)
        except OSError as exc:
            msg = f"read project root {self.root}: {exc}"
            raise IOFailure(msg) from exc

        categories: list[Category] = []
        for entry in entries:
            if not entry.is_dir():
                continue
            if entry.name == STAGING_DIR:
                categories.extend(
                    Category(name, self.staging_root / name, read_only=True) for name in self._staged_names()
                )
                continue
            if entry.name.startswith("."):
                continue
            categories.append(Category(entry.name, self.root / entry.name))
        return sorted(categories, key=lambda c: c.name)

    def resolve(self, name: str) -> Category:
        """Locate a category by exact name. Raises NotFoundError."""
        if validate_category_name(name):
            msg = f"category not found: {name!r}"
            raise NotFoundError(msg)
        path = self.root / name
        if self.fs.is_dir(path):
            return Category(name, path)
        staged = self.staging_root / name
        if self.fs.is_dir(staged):
            return Category(name, staged, read_only=True)
        msg = f"category not found: {name}"
        raise NotFoundError(msg)

    def is_read_only(self, name: str) -> bool:
        return self.fs.is_dir(self.staging_root / name)

    def has_staging_residue(self) -> bool:
        return bool(self._staged_names())

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create(self, name: str, mode: Mode) -> Category:
        require_contractor(mode, "create category")
        errs = validate_category_name(name)
        if errs:
            raise ValidationFailed(errs)
        with root_lock(self.root):
            self._ensure_no_conflict(name)
            path = self.root / name
            try:
                self.fs.makedirs(path)
            except OSError as exc:
                msg = f"create category {name}: {exc}"
                raise IOFailure(msg) from exc
        logger.info("category created: %s", name)
        return Category(name, path)

    def delete(self, name: str, mode: Mode) -> None:
        """Remove an empty category (attachment dirs without records do not count)."""
        require_contractor(mode, "delete category")
        with root_lock(self.root):
            category = self.resolve(name)
            if category.read_only:
                msg = f"category is read-only: {name}"
                raise ConflictError(msg)
            try:
                entries = self.fs.listdir(category.path)
            except OSError as exc:
                msg = f"read category {name}: {exc}"
                raise IOFailure(msg) from exc
            for entry in entries:
                if entry.is_dir():
                    if entry.name.endswith(ATTACHMENT_DIR_EXT):
                        continue
                    msg = f"category not empty: {name}"
                    raise ConflictError(msg)
                if entry.name.endswith(RECORD_EXT):
                    msg = f"category not empty: {name}"
                    raise ConflictError(msg)
            try:
                self.fs.rmtree(category.path)
            except OSError as exc:
                msg = f"delete category {name}: {exc}"
                raise IOFailure(msg) from exc
        logger.info("category deleted: %s", name)

    def rename(self, old_name: str, new_name: str, mode: Mode) -> Category:
        """Rename ``old_name`` to ``new_name`` and rewrite the records inside."""
        require_contractor(mode, "rename category")
        errs = validate_category_name(new_name)
        if errs:
            raise ValidationFailed(errs)

        with root_lock(self.root):
            self._ensure_no_conflict(new_name, ignore=old_name if old_name != new_name else None)
            if self.has_staging_residue():
                msg = f"staging residue in {self.staging_root} must be resolved before renaming"
                raise ConflictError(msg)
            source = self.resolve(old_name)
            if source.read_only:
                msg = f"category is read-only: {old_name}"
                raise ConflictError(msg)

            staged = self.staging_root / new_name
            staging_created = not self.fs.is_dir(self.staging_root)
            try:
                self.fs.makedirs(self.staging_root)
                self.fs.rename(source.path, staged)
            except OSError as exc:
                if staging_created:
                    self._drop_staging_root()
                msg = f"move {old_name} into staging: {exc}"
                raise IOFailure(msg) from exc

            originals: list[tuple[Path, bytes]] = []
            try:
                self._rewrite_records(staged, new_name, originals)
            except Exception as exc:
                self._undo_staged_rename(staged, source.path, originals, exc)
                raise

            final = self.root / new_name
            try:
                self.fs.rename(staged, final)
            except OSError as exc:
                logger.error("category %s left read-only in staging: %s", new_name, exc)
                msg = f"move {new_name} out of staging (category left read-only at {staged}): {exc}"
                raise IOFailure(msg) from exc
            self._drop_staging_root()

        logger.info("category renamed: %s -> %s (%d record(s))", old_name, new_name, len(originals))
        return Category(new_name, final)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _staged_names(self) -> list[str]:
        if not self.fs.is_dir(self.staging_root):
            return []
        try:
            entries = self.fs.listdir(self.staging_root)
        except OSError as exc:
            msg = f"read {self.staging_root}: {exc}"
            raise IOFailure(msg) from exc
        return [e.name for e in entries if e.is_dir()]

    def _ensure_no_conflict(self, name: str, ignore: str | None = None) -> None:
        """Category names are unique ignoring case, staged ones included."""
        try:
            existing = [e.name for e in self.fs.listdir(self.root) if e.is_dir()]
        except OSError as exc:
            msg = f"read project root {self.root}: {exc}"
            raise IOFailure(msg) from exc
        existing.extend(self._staged_names())
        folded = name.casefold()
        for other in existing:
            if other == ignore:
                continue
            if other.casefold() == folded:
                msg = f"category name conflict: {name!r} collides with {other!r}"
                raise ConflictError(msg)

    def _rewrite_records(self, category_dir: Path, new_name: str, originals: list[tuple[Path, bytes]]) -> None:
        try:
            entries = self.fs.listdir(category_dir)
        except OSError as exc:
            msg = f"read category {category_dir}: {exc}"
            raise IOFailure(msg) from exc

        for entry in entries:
            if entry.is_dir() or not entry.name.endswith(RECORD_EXT):
                continue
            path = category_dir / entry.name
            try:
                raw = self.fs.read_bytes(path)
            except OSError as exc:
                msg = f"read issue {path}: {exc}"
                raise IOFailure(msg) from exc
            try:
                doc = jsonfmt.loads(raw)
            except ValueError as exc:
                msg = f"parse issue {entry.name}: {exc}"
                raise UnparsableError(msg) from exc
            if not isinstance(doc, dict):
                msg = f"parse issue {entry.name}: not a JSON object"
                raise UnparsableError(msg)

            doc["category"] = new_name
            self.writer.write(path, jsonfmt.dumps_issue(doc))
            originals.append((path, raw))

    def _undo_staged_rename(
        self,
        staged: Path,
        original_path: Path,
        originals: list[tuple[Path, bytes]],
        cause: Exception,
    ) -> None:
        failures: list[str] = []
        for path, raw in reversed(originals):
            try:
                self.writer.write(path, raw)
            except StoreError as exc:
                failures.append(f"restore {path.name}: {exc}")
        try:
            self.fs.rename(staged, original_path)
        except OSError as exc:
            failures.append(f"move back to {original_path}: {exc}")
        if failures:
            logger.error("rename rollback incomplete for %s: %s", original_path.name, "; ".join(failures))
            msg = f"rollback of rename of {original_path.name} failed"
            raise RollbackError(msg, cause=cause, failures=failures) from cause
        self._drop_staging_root()
        logger.warning("rename of %s rolled back: %s", original_path.name, cause)

    def _drop_staging_root(self) -> None:
        # Removes the staging directory only when nothing is left in it.
        with contextlib.suppress(OSError):
            self.fs.rmdir(self.staging_root)
