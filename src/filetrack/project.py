"""Project: a project root directory plus every service that works on it.

    project = Project.open("/path/to/issues")       # validates, then sweeps temp residue
    for w in project.warnings:
        print(w.error_code, w.target)
    project.categories.create("bugs", Mode.CONTRACTOR)
    page = project.issues.list_issues("bugs")

All services share one FileSystem, Clock and IdGenerator so tests can swap
them in a single place.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path

from filetrack.atomic import AtomicWriter
from filetrack.categories import CategoryService
from filetrack.clock import Clock
from filetrack.credentials import CredentialVerifier
from filetrack.errors import IOFailure, NotFoundError
from filetrack.fsops import FileSystem
from filetrack.ids import IdGenerator
from filetrack.issues import IssueStore
from filetrack.mode import Mode
from filetrack.residue import ResidueScanner, ResidueWarning
from filetrack.schema import SchemaGate

logger = logging.getLogger("filetrack.project")


@dataclass
class RootCheck:
    is_valid: bool
    normalized_path: str = ""
    message: str = ""
    details: str = ""


def validate_root(path: Path | str) -> RootCheck:
    """Check that ``path`` is an existing directory."""
    if not str(path):
        return RootCheck(False, message="Path is required.")
    try:
        st = os.stat(path)
    except FileNotFoundError as exc:
        return RootCheck(False, message="Path does not exist.", details=str(exc))
    except OSError as exc:
        msg = f"stat project root {path}: {exc}"
        raise IOFailure(msg) from exc
    if not stat.S_ISDIR(st.st_mode):
        return RootCheck(False, message="Path is not a directory.")
    return RootCheck(True, normalized_path=os.path.abspath(path), message="OK")


def create_root(path: Path | str) -> RootCheck:
    """Create a new, empty project root. An existing path is refused."""
    if not str(path):
        return RootCheck(False, message="Path is required.")
    if os.path.lexists(path):
        return RootCheck(False, message="Path already exists.")
    try:
        os.makedirs(path, mode=0o750)
    except OSError as exc:
        msg = f"create project root {path}: {exc}"
        raise IOFailure(msg) from exc
    logger.info("project root created: %s", path)
    return RootCheck(True, normalized_path=os.path.abspath(path), message="OK")


def detect_mode(verifier: CredentialVerifier, password: str | None) -> Mode:
    """Contractor only when the credential file exists and ``password`` opens it."""
    if not verifier.exists():
        return Mode.VENDOR
    if not password:
        return Mode.VENDOR
    if verifier.verify(password):
        return Mode.CONTRACTOR
    logger.warning("contractor password did not verify; running in vendor mode")
    return Mode.VENDOR


class Project:
    def __init__(
        self,
        root: Path | str,
        *,
        fs: FileSystem | None = None,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        gate: SchemaGate | None = None,
    ) -> None:
        self.root = Path(root)
        self.fs = fs or FileSystem()
        self.clock = clock or Clock()
        self.ids = ids or IdGenerator()
        self.gate = gate or SchemaGate()
        self.writer = AtomicWriter(self.fs, self.clock)
        self.categories = CategoryService(self.root, self.fs, self.writer)
        self.issues = IssueStore(self.categories, self.gate, self.clock, self.ids, self.writer)
        self.residue = ResidueScanner(self.fs, self.clock)
        self.warnings: list[ResidueWarning] = []

    @classmethod
    def open(cls, root: Path | str, **kwargs: object) -> Project:
        """Validate ``root``, build the services and run startup recovery."""
        check = validate_root(root)
        if not check.is_valid:
            msg = f"project root {root}: {check.message}"
            raise NotFoundError(msg)
        project = cls(check.normalized_path, **kwargs)  # type: ignore[arg-type]
        project.recover()
        return project

    def recover(self) -> list[ResidueWarning]:
        """Sweep temp residue left by interrupted writes."""
        self.warnings = self.residue.scan(self.root)
        if self.warnings:
            logger.warning("%d temp residue warning(s) under %s", len(self.warnings), self.root)
        return self.warnings
