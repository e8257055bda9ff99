"""Shared fakes: a fixed clock, scripted ids and a filesystem that fails on demand."""

from __future__ import annotations

import errno
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from filetrack.atomic import AtomicWriter
from filetrack.categories import CategoryService
from filetrack.clock import Clock
from filetrack.fsops import FileSystem
from filetrack.ids import IdGenerator
from filetrack.issues import IssueStore
from filetrack.schema import SchemaGate

JST = timezone(timedelta(hours=9))


class FixedClock(Clock):
    def __init__(self, now: datetime | None = None) -> None:
        self.current = now or datetime(2026, 1, 15, 9, 30, 0, tzinfo=JST)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class ScriptedIds(IdGenerator):
    """Sequential ids: ISS000001, ATT000001, and UUIDv7-shaped comment ids."""

    def __init__(self) -> None:
        self.issues = 0
        self.attachments = 0
        self.comments = 0

    def issue_id(self) -> str:
        self.issues += 1
        return f"ISS{self.issues:06d}"

    def attachment_id(self) -> str:
        self.attachments += 1
        return f"ATT{self.attachments:06d}"

    def comment_id(self) -> str:
        self.comments += 1
        return f"019bc000-0000-7000-8000-{self.comments:012d}"


def _injected(op: str) -> OSError:
    return OSError(errno.EIO, f"injected {op} failure")


class _BrokenFile:
    def __init__(self, f: Any, fail_write: bool, fail_close: bool) -> None:
        self._f = f
        self._fail_write = fail_write
        self._fail_close = fail_close

    def write(self, data: bytes) -> int:
        if self._fail_write:
            raise _injected("write")
        return self._f.write(data)

    def close(self) -> None:
        self._f.close()
        if self._fail_close:
            raise _injected("close")


class FlakyFS(FileSystem):
    """Real filesystem with failures injected per operation.

    fs.fail("rename", lambda src, dst: dst.name == "a.json") makes matching
    renames raise OSError; ``times`` limits how often a rule fires.
    "write" and "close" rules take the temp path and act on the file handle
    returned by open_temp.
    """

    def __init__(self) -> None:
        self.rules: dict[str, list[list[Any]]] = {}

    def fail(self, op: str, when: Callable[..., bool] = lambda *a: True, times: int | None = None) -> None:
        self.rules.setdefault(op, []).append([when, times])

    def clear(self) -> None:
        self.rules.clear()

    def _should_fail(self, op: str, *args: Any) -> bool:
        for rule in self.rules.get(op, []):
            when, times = rule
            if times == 0 or not when(*args):
                continue
            if times is not None:
                rule[1] = times - 1
            return True
        return False

    def _check(self, op: str, *args: Any) -> None:
        if self._should_fail(op, *args):
            raise _injected(op)

    def open_temp(self, path: Path):  # type: ignore[override]
        self._check("open", path)
        f = super().open_temp(path)
        fail_write = self._should_fail("write", path)
        fail_close = self._should_fail("close", path)
        if fail_write or fail_close:
            return _BrokenFile(f, fail_write, fail_close)
        return f

    def rename(self, src: Path, dst: Path) -> None:
        self._check("rename", Path(src), Path(dst))
        super().rename(src, dst)

    def remove(self, path: Path) -> None:
        self._check("remove", Path(path))
        super().remove(path)

    def makedirs(self, path: Path) -> None:
        self._check("makedirs", Path(path))
        super().makedirs(path)

    def read_bytes(self, path: Path) -> bytes:
        self._check("read", Path(path))
        return super().read_bytes(path)


@pytest.fixture(scope="session")
def gate() -> SchemaGate:
    return SchemaGate()


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def ids() -> ScriptedIds:
    return ScriptedIds()


@pytest.fixture()
def fs() -> FlakyFS:
    return FlakyFS()


@pytest.fixture()
def writer(fs: FlakyFS, clock: FixedClock) -> AtomicWriter:
    return AtomicWriter(fs, clock)


@pytest.fixture()
def root(tmp_path: Path) -> Path:
    r = tmp_path / "project"
    r.mkdir()
    return r


@pytest.fixture()
def categories(root: Path, fs: FlakyFS, writer: AtomicWriter) -> CategoryService:
    return CategoryService(root, fs, writer)


@pytest.fixture()
def store(categories: CategoryService, gate: SchemaGate, clock: FixedClock, ids: ScriptedIds, writer: AtomicWriter) -> IssueStore:
    return IssueStore(categories, gate, clock, ids, writer)


def issue_doc(issue_id: str = "ISS000001", category: str = "bugs", **overrides: Any) -> dict[str, Any]:
    """A schema-valid issue record as stored on disk."""
    doc: dict[str, Any] = {
        "version": 1,
        "issue_id": issue_id,
        "category": category,
        "title": f"Title {issue_id}",
        "description": "Something is broken",
        "status": "Open",
        "priority": "Medium",
        "origin_company": "Contractor",
        "created_at": "2026-01-10T10:00:00+09:00",
        "updated_at": "2026-01-10T10:00:00+09:00",
        "due_date": "2026-02-01",
        "comments": [],
    }
    doc.update(overrides)
    return doc
