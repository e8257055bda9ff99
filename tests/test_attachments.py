from __future__ import annotations

import pytest

from conftest import ScriptedIds
from filetrack.attachments import (
    AttachmentInput,
    AttachmentStore,
    FileRollback,
    NoopRollback,
    sanitize_file_name,
)
from filetrack.errors import ConflictError, IOFailure, RollbackError


@pytest.fixture()
def attachments(fs, ids, writer):
    return AttachmentStore(fs, ids, writer)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("report.pdf", "report.pdf"),
        ('a\\b/c:d*e?f"g<h>i|j', "a_b_c_d_e_f_g_h_i_j"),
        ("tab\there", "tab_here"),
        ("trailing.", "trailing_"),
        ("trailing ", "trailing_"),
        ("", "_"),
        ("日本語.txt", "日本語.txt"),
    ],
)
def test_sanitize(name, expected):
    assert sanitize_file_name(name) == expected


def test_sanitize_truncates():
    assert len(sanitize_file_name("x" * 400)) == 255


def test_save_all_writes_files(tmp_path, attachments):
    saved, rollback = attachments.save_all(tmp_path, "ISS000001", [
        AttachmentInput("log.txt", b"hello"),
        AttachmentInput("shot.png", b"\x89PNG"),
    ])

    assert [s.stored_name for s in saved] == ["ATT000001_log.txt", "ATT000002_shot.png"]
    assert saved[0].relative_path == "ISS000001.files/ATT000001_log.txt"
    assert saved[0].size_bytes == 5
    assert (tmp_path / "ISS000001.files" / "ATT000001_log.txt").read_bytes() == b"hello"
    assert isinstance(rollback, FileRollback)


def test_empty_batch(tmp_path, attachments):
    saved, rollback = attachments.save_all(tmp_path, "ISS000001", [])
    assert saved == []
    assert isinstance(rollback, NoopRollback)
    assert not (tmp_path / "ISS000001.files").exists()


def test_rollback_removes_batch_and_new_dir(tmp_path, attachments):
    _, rollback = attachments.save_all(tmp_path, "ISS000001", [AttachmentInput("a.txt", b"a")])
    rollback.undo()
    assert not (tmp_path / "ISS000001.files").exists()
    rollback.undo()  # idempotent


def test_rollback_keeps_existing_files(tmp_path, attachments):
    attach_dir = tmp_path / "ISS000001.files"
    attach_dir.mkdir()
    (attach_dir / "older.txt").write_bytes(b"keep")

    saved, rollback = attachments.save_all(tmp_path, "ISS000001", [AttachmentInput("a.txt", b"a")])
    rollback.undo()

    assert not saved[0].full_path.exists()
    assert (attach_dir / "older.txt").read_bytes() == b"keep"


def test_failure_mid_batch_removes_earlier_files(tmp_path, fs, attachments):
    fs.fail("rename", lambda src, dst: dst.name.endswith("_third.txt"))
    with pytest.raises(IOFailure):
        attachments.save_all(tmp_path, "ISS000001", [
            AttachmentInput("first.txt", b"1"),
            AttachmentInput("second.txt", b"2"),
            AttachmentInput("third.txt", b"3"),
        ])
    assert not (tmp_path / "ISS000001.files").exists()


def test_failed_cleanup_is_rollback_error(tmp_path, fs, attachments):
    fs.fail("rename", lambda src, dst: dst.name.endswith("_second.txt"))
    fs.fail("remove", lambda path: path.name.endswith("_first.txt"))

    with pytest.raises(RollbackError) as excinfo:
        attachments.save_all(tmp_path, "ISS000001", [
            AttachmentInput("first.txt", b"1"),
            AttachmentInput("second.txt", b"2"),
        ])

    assert isinstance(excinfo.value.cause, IOFailure)
    assert len(excinfo.value.failures) == 1


def test_undo_aggregates_failures(tmp_path, fs, attachments):
    _, rollback = attachments.save_all(tmp_path, "ISS000001", [
        AttachmentInput("a.txt", b"a"),
        AttachmentInput("b.txt", b"b"),
    ])
    fs.fail("remove")
    with pytest.raises(RollbackError) as excinfo:
        rollback.undo()
    assert len(excinfo.value.failures) == 2


def test_collision_suffix(tmp_path, attachments):
    attach_dir = tmp_path / "ISS000001.files"
    attach_dir.mkdir()
    (attach_dir / "ATT000001_a.txt").write_bytes(b"")
    (attach_dir / "ATT000001_a_1.txt").write_bytes(b"")

    assert attachments.build_stored_name(attach_dir, "ATT000001", "a.txt") == "ATT000001_a_2.txt"


def test_collision_limit(tmp_path, fs, attachments, monkeypatch):
    monkeypatch.setattr(fs, "exists", lambda path: True)
    with pytest.raises(ConflictError):
        attachments.build_stored_name(tmp_path, "ATT000001", "a.txt")


def test_long_name_trimmed_keeping_extension(tmp_path, attachments):
    name = attachments.build_stored_name(tmp_path, "ATT000001", "n" * 300 + ".pdf")
    assert len(name) == 255
    assert name.startswith("ATT000001_nnn")
    assert name.endswith(".pdf")


def test_long_name_with_suffix_stays_within_limit(tmp_path, attachments):
    first = attachments.build_stored_name(tmp_path, "ATT000001", "n" * 300 + ".pdf")
    (tmp_path / first).write_bytes(b"")
    second = attachments.build_stored_name(tmp_path, "ATT000001", "n" * 300 + ".pdf")
    assert len(second) == 255
    assert second.endswith("_1.pdf")


def test_second_of_two_fails_to_write(tmp_path, fs, attachments):
    fs.fail("write", lambda path: path.name.startswith("ATT000002_"))
    with pytest.raises(IOFailure):
        attachments.save_all(tmp_path, "ISS000001", [
            AttachmentInput("one.txt", b"1"),
            AttachmentInput("two.txt", b"2"),
        ])
    assert not (tmp_path / "ISS000001.files").exists()


class _SameId(ScriptedIds):
    def attachment_id(self) -> str:
        return "X"


def test_same_name_saved_twice_gets_suffix(tmp_path, fs, writer):
    store = AttachmentStore(fs, _SameId(), writer)
    first, _ = store.save_all(tmp_path, "ISS000001", [AttachmentInput("report.txt", b"v1")])
    second, _ = store.save_all(tmp_path, "ISS000001", [AttachmentInput("report.txt", b"v2")])

    assert [first[0].stored_name, second[0].stored_name] == ["X_report.txt", "X_report_1.txt"]
    assert first[0].full_path.read_bytes() == b"v1"
    assert second[0].full_path.read_bytes() == b"v2"
