"""Field-level validation for issues, comments and category names."""

from __future__ import annotations

from datetime import datetime

from filetrack.errors import FieldError
from filetrack.models import Comment, Company, Issue, Priority, is_valid_status

MAX_NAME_LENGTH = 255
MAX_COMMENT_BODY_BYTES = 100 * 1024
MAX_ATTACHMENTS = 5

# Characters Windows refuses in file names; categories are directory names.
INVALID_NAME_CHARS = frozenset('\\/:*?"<>|')


def has_invalid_name_char(value: str) -> bool:
    return any(ch in INVALID_NAME_CHARS or ord(ch) < 0x20 for ch in value)


def validate_category_name(name: str) -> list[FieldError]:
    if not name:
        return [FieldError("category", "required")]
    errs: list[FieldError] = []
    if len(name) > MAX_NAME_LENGTH:
        errs.append(FieldError("category", "too long"))
    if has_invalid_name_char(name):
        errs.append(FieldError("category", "contains invalid characters"))
    if name[-1] in ". ":
        errs.append(FieldError("category", "trailing dot or space"))
    if name.startswith("."):
        errs.append(FieldError("category", "leading dot"))
    return errs


def validate_issue(issue: Issue) -> list[FieldError]:
    errs: list[FieldError] = []
    if not issue.issue_id:
        errs.append(FieldError("issue_id", "required"))
    errs.extend(validate_category_name(issue.category))
    errs.extend(_required_length("title", issue.title))
    errs.extend(_required_length("description", issue.description))
    if not is_valid_status(issue.status):
        errs.append(FieldError("status", "invalid"))
    if issue.priority not in Priority._value2member_map_:
        errs.append(FieldError("priority", "invalid"))
    if issue.origin_company not in Company._value2member_map_:
        errs.append(FieldError("origin_company", "invalid"))
    if issue.assignee is not None and len(issue.assignee) > MAX_NAME_LENGTH:
        errs.append(FieldError("assignee", "too long"))
    if not issue.created_at:
        errs.append(FieldError("created_at", "required"))
    if not issue.updated_at:
        errs.append(FieldError("updated_at", "required"))
    if not issue.due_date:
        errs.append(FieldError("due_date", "required"))
    elif not is_valid_date(issue.due_date):
        errs.append(FieldError("due_date", "invalid format"))
    for i, comment in enumerate(issue.comments):
        errs.extend(FieldError(f"comments[{i}].{e.field}", e.message) for e in validate_comment(comment))
    return errs


def validate_comment(comment: Comment) -> list[FieldError]:
    errs: list[FieldError] = []
    if not comment.comment_id:
        errs.append(FieldError("comment_id", "required"))
    if not comment.body:
        errs.append(FieldError("body", "required"))
    elif len(comment.body.encode("utf-8")) > MAX_COMMENT_BODY_BYTES:
        errs.append(FieldError("body", "too large"))
    errs.extend(_required_length("author_name", comment.author_name))
    if comment.author_company not in Company._value2member_map_:
        errs.append(FieldError("author_company", "invalid"))
    if not comment.created_at:
        errs.append(FieldError("created_at", "required"))
    if len(comment.attachments) > MAX_ATTACHMENTS:
        errs.append(FieldError("attachments", "too many"))
    return errs


def is_valid_date(value: str) -> bool:
    """YYYY-MM-DD and a real calendar date."""
    if len(value) != 10:
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _required_length(name: str, value: str) -> list[FieldError]:
    if not value:
        return [FieldError(name, "required")]
    if len(value) > MAX_NAME_LENGTH:
        return [FieldError(name, "too long")]
    return []
