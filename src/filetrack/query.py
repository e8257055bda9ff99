"""Sorting and pagination for issue listings.

Default order is ascending issue_id.  Every other sort key falls back to
ascending issue_id for ties, in both directions, so a listing is fully
deterministic.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from filetrack.models import Priority, Status

DEFAULT_PAGE_SIZE = 20

SORT_KEYS = ("issue_id", "updated_at", "due_date", "priority", "status", "title")

_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}
_STATUS_RANK = {
    Status.OPEN: 0,
    Status.WORKING: 1,
    Status.INQUIRY: 2,
    Status.HOLD: 3,
    Status.FEEDBACK: 4,
    Status.RESOLVED: 5,
    Status.CLOSED: 6,
    Status.REJECTED: 7,
}


@dataclass
class IssueSummary:
    """Listing row. Fields of schema-invalid records may be empty."""

    issue_id: str
    title: str
    status: str
    priority: str
    origin_company: str
    updated_at: str
    due_date: str
    category: str
    schema_invalid: bool = False
    path: str = ""

    @classmethod
    def from_document(cls, doc: Any, *, category: str, path: str, schema_invalid: bool) -> IssueSummary:
        d = doc if isinstance(doc, dict) else {}
        return cls(
            issue_id=_text(d.get("issue_id")),
            title=_text(d.get("title")),
            status=_text(d.get("status")),
            priority=_text(d.get("priority")),
            origin_company=_text(d.get("origin_company")),
            updated_at=_text(d.get("updated_at")),
            due_date=_text(d.get("due_date")),
            category=category,
            schema_invalid=schema_invalid,
            path=path,
        )


@dataclass
class ListQuery:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    sort_by: str = "issue_id"
    sort_order: str = "asc"


@dataclass
class LoadError:
    path: str
    message: str


@dataclass
class IssuePage:
    category: str
    total: int
    page: int
    page_size: int
    items: list[IssueSummary] = field(default_factory=list)
    load_errors: list[LoadError] = field(default_factory=list)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def priority_rank(value: str) -> int:
    return _PRIORITY_RANK.get(value, len(_PRIORITY_RANK))  # type: ignore[call-overload]


def status_rank(value: str) -> int:
    return _STATUS_RANK.get(value, len(_STATUS_RANK))  # type: ignore[call-overload]


_SORT_FIELDS: dict[str, Callable[[IssueSummary], Any]] = {
    "updated_at": lambda s: s.updated_at,
    "due_date": lambda s: s.due_date,
    "priority": lambda s: priority_rank(s.priority),
    "status": lambda s: status_rank(s.status),
    "title": lambda s: s.title,
}


def sort_issues(items: list[IssueSummary], sort_by: str = "issue_id", sort_order: str = "asc") -> list[IssueSummary]:
    descending = sort_order == "desc"
    ordered = sorted(items, key=lambda s: s.issue_id)
    key = _SORT_FIELDS.get(sort_by)
    if key is None:
        return ordered[::-1] if descending else ordered
    # sorted() is stable under reverse=True, so ties keep ascending issue_id.
    return sorted(ordered, key=key, reverse=descending)


def normalize_page(page: int) -> int:
    return page if page > 0 else 1


def normalize_page_size(size: int) -> int:
    return size if size > 0 else DEFAULT_PAGE_SIZE


def paginate(items: list[IssueSummary], page: int, page_size: int) -> list[IssueSummary]:
    """1-based page; a page past the end is empty."""
    start = (page - 1) * page_size
    if start >= len(items):
        return []
    return items[start:start + page_size]


def build_page(category: str, items: list[IssueSummary], query: ListQuery, load_errors: list[LoadError]) -> IssuePage:
    ordered = sort_issues(items, query.sort_by, query.sort_order)
    page = normalize_page(query.page)
    page_size = normalize_page_size(query.page_size)
    return IssuePage(
        category=category,
        total=len(ordered),
        page=page,
        page_size=page_size,
        items=paginate(ordered, page, page_size),
        load_errors=load_errors,
    )
