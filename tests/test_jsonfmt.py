from __future__ import annotations

import json

import pytest

from conftest import issue_doc
from filetrack import jsonfmt
from filetrack.models import AttachmentRef, Comment, Issue


def _keys(raw: bytes) -> list[str]:
    return list(json.loads(raw))


def test_issue_keys_follow_fixed_order():
    doc = issue_doc(assignee="Sato")
    shuffled = dict(reversed(list(doc.items())))
    out = jsonfmt.dumps_issue(shuffled)
    assert _keys(out) == [
        "version", "issue_id", "category", "title", "description", "status", "priority",
        "origin_company", "assignee", "created_at", "updated_at", "due_date", "comments",
    ]


def test_unknown_keys_come_last_sorted():
    doc = issue_doc(zeta=1, alpha=2)
    keys = _keys(jsonfmt.dumps_issue(doc))
    assert keys[-3:] == ["comments", "alpha", "zeta"]


def test_nested_comment_and_attachment_order():
    doc = issue_doc(comments=[{
        "attachments": [{"size_bytes": 3, "relative_path": "ISS000001.files/x", "stored_name": "x",
                         "file_name": "x", "attachment_id": "ATT000001"}],
        "created_at": "2026-01-10T10:00:00+09:00",
        "author_company": "Vendor",
        "author_name": "Tanaka",
        "body": "hi",
        "comment_id": "c1",
    }])
    parsed = json.loads(jsonfmt.dumps_issue(doc))
    comment = parsed["comments"][0]
    assert list(comment) == ["comment_id", "body", "author_name", "author_company", "created_at", "attachments"]
    assert list(comment["attachments"][0]) == [
        "attachment_id", "file_name", "stored_name", "relative_path", "size_bytes",
    ]


def test_layout():
    out = jsonfmt.dumps_canonical({"b": [], "a": {}, "c": "日本語"})
    assert out == b'{\n  "a": {},\n  "b": [],\n  "c": "\xe6\x97\xa5\xe6\x9c\xac\xe8\xaa\x9e"\n}\n'
    assert b"\r" not in out


def test_nested_indentation():
    out = jsonfmt.dumps_canonical({"a": [1, {"b": True}]}).decode("utf-8")
    assert out == '{\n  "a": [\n    1,\n    {\n      "b": true\n    }\n  ]\n}\n'


def test_idempotent_through_parse():
    doc = issue_doc(assignee="Sato", extra_field={"y": 1, "x": [1, 2]})
    once = jsonfmt.dumps_issue(doc)
    twice = jsonfmt.dumps_issue(json.loads(once))
    assert once == twice


def test_models_serialize_like_dicts():
    issue = Issue.from_dict(issue_doc())
    issue.comments.append(Comment(
        comment_id="c1", body="b", author_name="n", author_company="Vendor",
        created_at="2026-01-10T10:00:00+09:00",
        attachments=[AttachmentRef("ATT000001", "x.txt", "ATT000001_x.txt", "ISS000001.files/ATT000001_x.txt")],
    ))
    assert jsonfmt.dumps_issue(issue) == jsonfmt.dumps_issue(json.loads(jsonfmt.dumps_issue(issue)))
    assert "mime_type" not in jsonfmt.dumps_issue(issue).decode("utf-8")


def test_config_order():
    out = jsonfmt.dumps_config({"ui": {"page_size": 20}, "log": {"level": "info"}, "format_version": 1,
                                "last_project_root_path": ""})
    assert _keys(out) == ["format_version", "last_project_root_path", "log", "ui"]


def test_nan_rejected():
    with pytest.raises(TypeError):
        jsonfmt.dumps_canonical({"x": float("nan")})


def test_loads_rejects_non_json_constants():
    assert jsonfmt.loads(b'{"a": 1.5}') == {"a": 1.5}
    for constant in (b"NaN", b"Infinity", b"-Infinity"):
        with pytest.raises(ValueError, match="invalid JSON constant"):
            jsonfmt.loads(b'{"a": ' + constant + b"}")
