"""Data models for issue records.

An issue lives at ``<root>/<category>/<issue_id>.json``; attachments of its
comments live under ``<root>/<category>/<issue_id>.files/``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

ISSUE_VERSION = 1
RECORD_EXT = ".json"
ATTACHMENT_DIR_EXT = ".files"


class Status(StrEnum):
    OPEN = "Open"
    WORKING = "Working"
    INQUIRY = "Inquiry"
    HOLD = "Hold"
    FEEDBACK = "Feedback"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    REJECTED = "Rejected"


END_STATES = frozenset({Status.CLOSED, Status.REJECTED})


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def is_valid_status(value: str) -> bool:
    return isinstance(value, str) and value in Status._value2member_map_


def is_end_state(value: str) -> bool:
    return isinstance(value, str) and value in END_STATES


class Priority(StrEnum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Company(StrEnum):
    CONTRACTOR = "Contractor"
    VENDOR = "Vendor"


@dataclass
class AttachmentRef:
    """Reference from a comment to one stored attachment file."""

    attachment_id: str
    file_name: str
    stored_name: str
    relative_path: str
    mime_type: str | None = None
    size_bytes: int | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AttachmentRef:
        return cls(
            attachment_id=d.get("attachment_id", ""),
            file_name=d.get("file_name", ""),
            stored_name=d.get("stored_name", ""),
            relative_path=d.get("relative_path", ""),
            mime_type=d.get("mime_type"),
            size_bytes=d.get("size_bytes"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "attachment_id": self.attachment_id,
            "file_name": self.file_name,
            "stored_name": self.stored_name,
            "relative_path": self.relative_path,
        }
        if self.mime_type:
            d["mime_type"] = self.mime_type
        if self.size_bytes is not None:
            d["size_bytes"] = self.size_bytes
        return d


@dataclass
class Comment:
    """Append-only entry in an issue's discussion."""

    comment_id: str
    body: str
    author_name: str
    author_company: str
    created_at: str
    attachments: list[AttachmentRef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Comment:
        return cls(
            comment_id=d.get("comment_id", ""),
            body=d.get("body", ""),
            author_name=d.get("author_name", ""),
            author_company=d.get("author_company", ""),
            created_at=d.get("created_at", ""),
            attachments=[AttachmentRef.from_dict(a) for a in _as_list(d.get("attachments")) if isinstance(a, dict)],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "comment_id": self.comment_id,
            "body": self.body,
            "author_name": self.author_name,
            "author_company": self.author_company,
            "created_at": self.created_at,
            "attachments": [a.to_dict() for a in self.attachments],
        }


_ISSUE_KEYS = frozenset({
    "version", "issue_id", "category", "title", "description", "status", "priority",
    "origin_company", "assignee", "created_at", "updated_at", "due_date", "comments",
})


@dataclass
class Issue:
    """One issue record.

    Fields stay plain strings so that records written by other versions (or
    edited by hand) can still be loaded and shown; validity is decided by the
    schema gate, not by construction.  Keys this version does not know are
    kept in ``extra`` and written back unchanged.
    """

    issue_id: str
    category: str
    title: str
    description: str
    status: str
    priority: str
    origin_company: str
    created_at: str
    updated_at: str
    due_date: str
    assignee: str | None = None
    comments: list[Comment] = field(default_factory=list)
    version: int = ISSUE_VERSION
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_end_state(self) -> bool:
        return is_end_state(self.status)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Issue:
        version = d.get("version", 0)
        return cls(
            version=version if type(version) is int else 0,
            issue_id=d.get("issue_id", ""),
            category=d.get("category", ""),
            title=d.get("title", ""),
            description=d.get("description", ""),
            status=d.get("status", ""),
            priority=d.get("priority", ""),
            origin_company=d.get("origin_company", ""),
            assignee=d.get("assignee") or None,
            created_at=d.get("created_at", ""),
            updated_at=d.get("updated_at", ""),
            due_date=d.get("due_date", ""),
            comments=[Comment.from_dict(c) for c in _as_list(d.get("comments")) if isinstance(c, dict)],
            extra={k: v for k, v in d.items() if k not in _ISSUE_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "version": self.version,
            "issue_id": self.issue_id,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "status": str(self.status),
            "priority": str(self.priority),
            "origin_company": str(self.origin_company),
        }
        if self.assignee:
            d["assignee"] = self.assignee
        d.update({
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "due_date": self.due_date,
            "comments": [c.to_dict() for c in self.comments],
        })
        for k, v in self.extra.items():
            d.setdefault(k, v)
        return d
