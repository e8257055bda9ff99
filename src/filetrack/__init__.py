"""File-based issue tracker: plain JSON files under a project root, synced with git.

Layout:
    <root>/
        <category>/
            <issue_id>.json           # one issue record (canonical JSON, git-tracked)
            <issue_id>.files/
                <attachment_id>_<name>   # comment attachments
        .tmp_rename/
            <category>/               # category caught mid-rename (read-only)

Issue record (key order fixed):
    {"version":1, "issue_id":..., "category":..., "title":..., "description":...,
     "status":..., "priority":..., "origin_company":..., "assignee":...,
     "created_at":..., "updated_at":..., "due_date":..., "comments":[...]}

Writes: every file is replaced through a same-directory temp file
(<name>.tmp.<pid>.<unix-seconds>) and a rename; leftovers are swept on open.
"""

from filetrack.categories import Category, CategoryService
from filetrack.issues import CommentInput, IssueInput, IssueStore, IssueUpdate
from filetrack.mode import Mode
from filetrack.models import AttachmentRef, Comment, Issue, Priority, Status
from filetrack.project import Project

__all__ = [
    "AttachmentRef",
    "Category",
    "CategoryService",
    "Comment",
    "CommentInput",
    "Issue",
    "IssueInput",
    "IssueStore",
    "IssueUpdate",
    "Mode",
    "Priority",
    "Project",
    "Status",
]
