"""Issue records: one JSON file per issue inside its category directory.

IssueStore is the public API:
    store = IssueStore(CategoryService(root))
    issue = store.create("bugs", Mode.CONTRACTOR, IssueInput(title=..., ...))
    store.add_comment("bugs", issue.issue_id, Mode.VENDOR, CommentInput(body=..., author_name=...))
    page = store.list_issues("bugs", ListQuery(sort_by="priority"))

Every write goes through the schema gate first: a record that does not match
the issue contract, or whose status is Closed/Rejected, is never rewritten.
"""

from __future__ import annotations

import logging
import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

from filetrack import jsonfmt
from filetrack.attachments import AttachmentInput, AttachmentStore, Rollback
from filetrack.atomic import AtomicWriter
from filetrack.clock import Clock
from filetrack.errors import (
    ConflictError,
    FieldError,
    IOFailure,
    NotFoundError,
    PermissionDeniedError,
    RollbackError,
    SchemaInvalidError,
    UnparsableError,
    ValidationFailed,
)
from filetrack.fsops import root_lock
from filetrack.ids import IdGenerator
from filetrack.mode import Mode, can_transition_status, company_for
from filetrack.models import RECORD_EXT, AttachmentRef, Comment, Issue, Status, is_valid_status
from filetrack.query import IssuePage, IssueSummary, ListQuery, LoadError, build_page
from filetrack.schema import SchemaGate, SchemaViolation
from filetrack.validation import MAX_ATTACHMENTS, validate_comment, validate_issue

if TYPE_CHECKING:
    from filetrack.categories import Category, CategoryService

logger = logging.getLogger("filetrack.issues")

_ISSUE_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class IssueInput:
    title: str
    description: str
    priority: str
    due_date: str
    assignee: str | None = None


@dataclass
class IssueUpdate:
    """Fields left as None are unchanged; an empty assignee clears it."""

    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    assignee: str | None = None
    due_date: str | None = None


@dataclass
class CommentInput:
    body: str
    author_name: str
    attachments: list[AttachmentInput] = field(default_factory=list)


@dataclass
class IssueDetail:
    issue: Issue
    path: Path
    schema_invalid: bool = False
    read_only: bool = False
    violations: list[SchemaViolation] = field(default_factory=list)


class IssueStore:
    def __init__(
        self,
        categories: CategoryService,
        gate: SchemaGate | None = None,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        writer: AtomicWriter | None = None,
        attachments: AttachmentStore | None = None,
    ) -> None:
        self.categories = categories
        self.fs = categories.fs
        self.gate = gate or SchemaGate()
        self.clock = clock or Clock()
        self.ids = ids or IdGenerator()
        self.writer = writer or AtomicWriter(self.fs, self.clock)
        self.attachments = attachments or AttachmentStore(self.fs, self.ids, self.writer)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, category: str, issue_id: str) -> IssueDetail:
        """Load one issue. Raises NotFoundError or UnparsableError."""
        cat = self.categories.resolve(category)
        path = self._record_path(cat, issue_id)
        try:
            raw = self.fs.read_bytes(path)
        except FileNotFoundError as exc:
            msg = f"issue not found: {category}/{issue_id}"
            raise NotFoundError(msg) from exc
        except OSError as exc:
            msg = f"read issue {path}: {exc}"
            raise IOFailure(msg) from exc

        result = self.gate.classify_issue(raw)
        if result.is_unparsable:
            logger.warning("unparsable issue record %s: %s", path, result.parse_error)
            msg = f"issue {category}/{issue_id} is unparsable: {result.parse_error}"
            raise UnparsableError(msg)

        doc = result.document if isinstance(result.document, dict) else {}
        issue = Issue.from_dict(doc)
        issue.category = cat.name
        return IssueDetail(
            issue=issue,
            path=path,
            schema_invalid=not result.is_valid,
            read_only=cat.read_only or not result.is_valid or issue.is_end_state,
            violations=list(result.violations),
        )

    def list_issues(self, category: str, query: ListQuery | None = None) -> IssuePage:
        """One page of a category's issues; unreadable records go to load_errors."""
        query = query or ListQuery()
        cat = self.categories.resolve(category)
        try:
            entries = self.fs.listdir(cat.path)
        except OSError as exc:
            msg = f"read category {cat.path}: {exc}"
            raise IOFailure(msg) from exc

        items: list[IssueSummary] = []
        load_errors: list[LoadError] = []
        for entry in entries:
            if entry.is_dir() or not entry.name.endswith(RECORD_EXT):
                continue
            path = cat.path / entry.name
            try:
                raw = self.fs.read_bytes(path)
            except OSError as exc:
                load_errors.append(LoadError(str(path), f"read: {exc}"))
                continue
            result = self.gate.classify_issue(raw)
            if result.is_unparsable:
                logger.warning("skipping unparsable issue record %s", path)
                load_errors.append(LoadError(str(path), result.parse_error))
                continue
            summary = IssueSummary.from_document(
                result.document, category=cat.name, path=str(path), schema_invalid=not result.is_valid,
            )
            if not summary.issue_id:
                summary.issue_id = entry.name[: -len(RECORD_EXT)]
            items.append(summary)

        return build_page(cat.name, items, query, load_errors)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create(self, category: str, mode: Mode, data: IssueInput) -> Issue:
        with root_lock(self.categories.root):
            cat = self.categories.resolve(category)
            if cat.read_only:
                msg = f"category is read-only: {category}"
                raise ConflictError(msg)

            now = self.clock.now_iso()
            issue = Issue(
                issue_id=self.ids.issue_id(),
                category=cat.name,
                title=data.title,
                description=data.description,
                status=Status.OPEN.value,
                priority=data.priority,
                origin_company=company_for(mode).value,
                assignee=data.assignee or None,
                created_at=now,
                updated_at=now,
                due_date=data.due_date,
            )
            errs = validate_issue(issue)
            if errs:
                raise ValidationFailed(errs)

            path = self._record_path(cat, issue.issue_id)
            if self.fs.exists(path):
                msg = f"issue id already in use: {issue.issue_id}"
                raise ConflictError(msg)
            self.writer.write(path, jsonfmt.dumps_issue(issue))

        logger.info("issue created: %s/%s", cat.name, issue.issue_id)
        return issue

    def update(self, category: str, issue_id: str, mode: Mode, changes: IssueUpdate) -> Issue:
        with root_lock(self.categories.root):
            detail = self._load_writable(category, issue_id)
            issue = detail.issue

            if changes.status is not None and changes.status != issue.status:
                if not is_valid_status(changes.status):
                    raise ValidationFailed([FieldError("status", "invalid")])
                if not can_transition_status(issue.status, changes.status, mode):
                    msg = f"permission denied: {mode} cannot move an issue from {issue.status} to {changes.status}"
                    raise PermissionDeniedError(msg)
                issue.status = changes.status
            if changes.title is not None:
                issue.title = changes.title
            if changes.description is not None:
                issue.description = changes.description
            if changes.priority is not None:
                issue.priority = changes.priority
            if changes.due_date is not None:
                issue.due_date = changes.due_date
            if changes.assignee is not None:
                issue.assignee = changes.assignee or None
            issue.updated_at = self.clock.now_iso()

            errs = validate_issue(issue)
            if errs:
                raise ValidationFailed(errs)
            self.writer.write(detail.path, jsonfmt.dumps_issue(issue))

        logger.info("issue updated: %s/%s (status %s)", issue.category, issue.issue_id, issue.status)
        return issue

    def add_comment(self, category: str, issue_id: str, mode: Mode, data: CommentInput) -> Comment:
        """Append a comment, staging its attachments first.

        If the record cannot be written the staged files are removed again;
        when that removal fails too, RollbackError carries both failures.
        """
        if len(data.attachments) > MAX_ATTACHMENTS:
            raise ValidationFailed([FieldError("attachments", "too many")])

        with root_lock(self.categories.root):
            detail = self._load_writable(category, issue_id)
            issue = detail.issue
            now = self.clock.now_iso()
            comment = Comment(
                comment_id=self.ids.comment_id(),
                body=data.body,
                author_name=data.author_name,
                author_company=company_for(mode).value,
                created_at=now,
            )
            errs = validate_comment(comment)
            if errs:
                raise ValidationFailed(errs)

            saved, rollback = self.attachments.save_all(detail.path.parent, issue.issue_id, data.attachments)
            try:
                comment.attachments = [
                    AttachmentRef(
                        attachment_id=s.attachment_id,
                        file_name=s.original_name,
                        stored_name=s.stored_name,
                        relative_path=s.relative_path,
                        mime_type=mimetypes.guess_type(s.original_name)[0],
                        size_bytes=s.size_bytes,
                    )
                    for s in saved
                ]
                issue.comments.append(comment)
                issue.updated_at = now

                errs = validate_issue(issue)
                if errs:
                    raise ValidationFailed(errs)
                self.writer.write(detail.path, jsonfmt.dumps_issue(issue))
            except Exception as exc:
                self._abort(rollback, exc)

        logger.info(
            "comment added: %s/%s %s (%d attachment(s))",
            issue.category, issue.issue_id, comment.comment_id, len(saved),
        )
        return comment

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _record_path(self, cat: Category, issue_id: str) -> Path:
        if not _ISSUE_ID_RE.match(issue_id):
            msg = f"issue not found: {cat.name}/{issue_id!r}"
            raise NotFoundError(msg)
        return cat.path / f"{issue_id}{RECORD_EXT}"

    def _load_writable(self, category: str, issue_id: str) -> IssueDetail:
        detail = self.get(category, issue_id)
        if detail.schema_invalid:
            msg = f"issue {category}/{issue_id} does not match the record schema and is read-only"
            raise SchemaInvalidError(msg)
        if self.categories.is_read_only(category):
            msg = f"category is read-only: {category}"
            raise ConflictError(msg)
        if detail.issue.is_end_state:
            msg = f"issue {category}/{issue_id} is {detail.issue.status} and can no longer be changed"
            raise ConflictError(msg)
        return detail

    def _abort(self, rollback: Rollback, exc: Exception) -> NoReturn:
        try:
            rollback.undo()
        except RollbackError as rb_exc:
            logger.error("attachment rollback failed: %s", rb_exc)
            msg = "comment not saved and staged attachments could not be removed"
            raise RollbackError(msg, cause=exc, failures=rb_exc.failures) from exc
        raise exc
