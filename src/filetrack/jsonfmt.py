"""Canonical JSON output: stable bytes for clean git diffs.

Rules:
    * 2-space indentation, LF line endings, one trailing newline, UTF-8
    * known keys in a fixed order declared once per document type
    * unknown keys appended afterwards in lexicographic order
    * nested objects (comments, attachments, config sections) get their own order

Serializing the same value twice, or re-serializing the parsed output, gives
identical bytes.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_INDENT = "  "


@dataclass(frozen=True)
class KeyOrder:
    order: tuple[str, ...] = ()
    children: Mapping[str, KeyOrder] = field(default_factory=dict)

    def child(self, key: str) -> KeyOrder | None:
        return self.children.get(key)


ATTACHMENT_ORDER = KeyOrder((
    "attachment_id",
    "file_name",
    "stored_name",
    "relative_path",
    "mime_type",
    "size_bytes",
))

COMMENT_ORDER = KeyOrder(
    (
        "comment_id",
        "body",
        "author_name",
        "author_company",
        "created_at",
        "attachments",
    ),
    {"attachments": ATTACHMENT_ORDER},
)

ISSUE_ORDER = KeyOrder(
    (
        "version",
        "issue_id",
        "category",
        "title",
        "description",
        "status",
        "priority",
        "origin_company",
        "assignee",
        "created_at",
        "updated_at",
        "due_date",
        "comments",
    ),
    {"comments": COMMENT_ORDER},
)

CONFIG_ORDER = KeyOrder(
    ("format_version", "last_project_root_path", "log", "ui"),
    {"log": KeyOrder(("level",)), "ui": KeyOrder(("page_size",))},
)

CONTRACTOR_ORDER = KeyOrder((
    "format_version",
    "kdf",
    "kdf_iterations",
    "salt_b64",
    "nonce_b64",
    "ciphertext_b64",
    "mode",
))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def dumps_issue(value: Any) -> bytes:
    return dumps_ordered(value, ISSUE_ORDER)


def dumps_config(value: Any) -> bytes:
    return dumps_ordered(value, CONFIG_ORDER)


def dumps_contractor(value: Any) -> bytes:
    return dumps_ordered(value, CONTRACTOR_ORDER)


def dumps_canonical(value: Any) -> bytes:
    """No declared order: every object's keys are sorted."""
    return dumps_ordered(value, None)


def dumps_ordered(value: Any, order: KeyOrder | None) -> bytes:
    parts: list[str] = []
    _write(parts, _plain(value), order, 0)
    parts.append("\n")
    return "".join(parts).encode("utf-8")


def loads(data: bytes) -> Any:
    """Parse record bytes as strict JSON.

    NaN, Infinity and -Infinity are rejected: they are not JSON and could not
    be written back.  Raises ValueError (UnicodeDecodeError and
    json.JSONDecodeError are both subclasses).
    """
    return json.loads(data.decode("utf-8"), parse_constant=_reject_constant)


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


def _reject_constant(name: str) -> Any:
    msg = f"invalid JSON constant {name}"
    raise ValueError(msg)


def _plain(value: Any) -> Any:
    """Reduce models, enums and tuples to plain JSON types."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        value = to_dict()
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def _ordered_keys(obj: Mapping[str, Any], order: KeyOrder | None) -> list[str]:
    known = [k for k in order.order if k in obj] if order is not None else []
    seen = set(known)
    return known + sorted(k for k in obj if k not in seen)


def _write(parts: list[str], value: Any, order: KeyOrder | None, level: int) -> None:
    if isinstance(value, dict):
        _write_object(parts, value, order, level)
    elif isinstance(value, list):
        _write_array(parts, value, order, level)
    else:
        try:
            parts.append(json.dumps(value, ensure_ascii=False, allow_nan=False))
        except (TypeError, ValueError) as exc:
            msg = f"value is not JSON serializable: {value!r}"
            raise TypeError(msg) from exc


def _write_object(parts: list[str], obj: dict[str, Any], order: KeyOrder | None, level: int) -> None:
    if not obj:
        parts.append("{}")
        return
    pad = _INDENT * (level + 1)
    keys = _ordered_keys(obj, order)
    parts.append("{\n")
    for i, key in enumerate(keys):
        parts.append(pad)
        parts.append(json.dumps(key, ensure_ascii=False))
        parts.append(": ")
        _write(parts, obj[key], order.child(key) if order is not None else None, level + 1)
        parts.append(",\n" if i < len(keys) - 1 else "\n")
    parts.append(_INDENT * level + "}")


def _write_array(parts: list[str], items: list[Any], order: KeyOrder | None, level: int) -> None:
    # Array elements share the order declared for the array's key.
    if not items:
        parts.append("[]")
        return
    pad = _INDENT * (level + 1)
    parts.append("[\n")
    for i, item in enumerate(items):
        parts.append(pad)
        _write(parts, item, order, level + 1)
        parts.append(",\n" if i < len(items) - 1 else "\n")
    parts.append(_INDENT * level + "]")
