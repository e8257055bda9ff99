from __future__ import annotations

import json

import pytest

from conftest import issue_doc
from filetrack import jsonfmt
from filetrack.schema import Outcome, SchemaGate, load_bundled_schema


def _raw(doc) -> bytes:
    return json.dumps(doc).encode("utf-8")


def test_bundled_schemas_declare_ids():
    for name in ("issue.schema.json", "config.schema.json", "contractor.schema.json"):
        assert load_bundled_schema(name)["$id"].startswith("urn:filetrack:schema:")


def test_valid_issue(gate):
    result = gate.classify_issue(jsonfmt.dumps_issue(issue_doc()))
    assert result.outcome is Outcome.VALID
    assert result.is_valid
    assert result.document["issue_id"] == "ISS000001"


def test_unknown_keys_are_allowed(gate):
    assert gate.classify_issue(_raw(issue_doc(custom="x"))).is_valid


def test_missing_field_is_schema_invalid(gate):
    doc = issue_doc()
    del doc["title"]
    result = gate.classify_issue(_raw(doc))
    assert result.is_schema_invalid
    assert result.document["issue_id"] == "ISS000001"
    assert any("title" in v.message for v in result.violations)


def test_bad_enum_reports_location(gate):
    result = gate.classify_issue(_raw(issue_doc(status="Done")))
    assert result.is_schema_invalid
    assert [v.location for v in result.violations] == ["/status"]


def test_unsupported_version(gate):
    result = gate.classify_issue(_raw(issue_doc(version=2)))
    assert result.is_schema_invalid
    assert "unsupported version 2" in result.detail()


def test_too_many_attachments(gate):
    att = {"attachment_id": "a", "file_name": "f", "stored_name": "s", "relative_path": "r"}
    comment = {
        "comment_id": "c", "body": "b", "author_name": "n", "author_company": "Vendor",
        "created_at": "2026-01-10T10:00:00+09:00", "attachments": [att] * 6,
    }
    result = gate.classify_issue(_raw(issue_doc(comments=[comment])))
    assert result.is_schema_invalid
    assert result.violations[0].location == "/comments/0/attachments"


def test_unparsable(gate):
    result = gate.classify_issue(b'{"version": 1,')
    assert result.outcome is Outcome.UNPARSABLE
    assert result.document is None
    assert result.parse_error


def test_invalid_utf8_is_unparsable(gate):
    assert gate.classify_issue(b'{"title": "\xff"}').is_unparsable


@pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
def test_non_json_constants_are_unparsable(gate, constant):
    raw = _raw(issue_doc()).replace(b'"comments": []', b'"comments": [], "x": ' + constant.encode())
    result = gate.classify_issue(raw)
    assert result.is_unparsable
    assert constant in result.parse_error


def test_non_object_is_schema_invalid(gate):
    assert gate.classify_issue(b"[1, 2]").is_schema_invalid


def test_config_contract(gate):
    assert gate.validate_config(b'{"format_version": 1, "log": {"level": "debug"}}').is_valid
    assert gate.validate_config(b'{"format_version": 1, "log": {"level": "trace"}}').is_schema_invalid


def test_contractor_contract_rejects_extra_keys(gate):
    doc = {
        "format_version": 1, "kdf": "pbkdf2-hmac-sha256", "kdf_iterations": 200000,
        "salt_b64": "c2FsdA==", "nonce_b64": "bm9uY2U=", "ciphertext_b64": "Y3Q=", "mode": "contractor",
    }
    assert gate.validate_contractor(_raw(doc)).is_valid
    assert gate.validate_contractor(_raw({**doc, "password": "x"})).is_schema_invalid


def test_custom_schema_set():
    gate = SchemaGate({"tiny.json": {"$schema": "https://json-schema.org/draft/2020-12/schema", "type": "integer"}})
    assert gate.classify("tiny.json", b"3").is_valid
    assert gate.classify("tiny.json", b'"x"').is_schema_invalid
