from __future__ import annotations

import os

import pytest
from pydantic import ValidationError

from zprof.core.backup import integrity
from zprof.core.backup.hasher import CHUNK_SIZE, sha256_bytes, sha256_text
from zprof.core.backup.models import FileRecord
from zprof.core.errors import NotFoundError


def test_record_regular_file(tmp_path):
    p = tmp_path / ".zshrc"
    p.write_bytes(b"export PATH=/usr/bin\n")
    os.chmod(p, 0o640)
    rec = integrity.record(".zshrc", str(p))
    assert rec.path == ".zshrc"
    assert rec.size == len(b"export PATH=/usr/bin\n")
    assert rec.checksum == sha256_bytes(b"export PATH=/usr/bin\n")
    assert rec.permissions == 0o640
    assert rec.is_symlink is False
    assert rec.symlink_target is None


def test_verify_true_after_record_false_after_modify(tmp_path):
    p = tmp_path / "f"
    p.write_bytes(b"abc")
    rec = integrity.record("f", str(p))
    assert integrity.verify(rec, str(p)) is True
    p.write_bytes(b"abd")
    assert integrity.verify(rec, str(p)) is False


def test_verify_ignores_permission_changes(tmp_path):
    p = tmp_path / "f"
    p.write_bytes(b"same")
    rec = integrity.record("f", str(p))
    os.chmod(p, 0o600)
    assert integrity.verify(rec, str(p)) is True


def test_symlink_checksum_is_over_target_string(tmp_path):
    target = tmp_path / "real"
    target.write_bytes(b"content that should not be hashed")
    link = tmp_path / "link"
    os.symlink(str(target), str(link))
    rec = integrity.record("link", str(link))
    assert rec.is_symlink is True
    assert rec.symlink_target == str(target)
    assert rec.checksum == sha256_text(str(target))

    # content change behind the link does not affect the record
    target.write_bytes(b"changed")
    assert integrity.verify(rec, str(link)) is True


def test_large_file_hashed_across_chunks(tmp_path):
    p = tmp_path / "big"
    data = b"x" * (CHUNK_SIZE * 2 + 17)
    p.write_bytes(data)
    rec = integrity.record("big", str(p))
    assert rec.checksum == sha256_bytes(data)
    assert rec.size == len(data)


def test_record_missing_file_raises_not_found(tmp_path):
    with pytest.raises(NotFoundError) as ei:
        integrity.record("nope", str(tmp_path / "nope"))
    assert ei.value.code == "not_found"
    assert ei.value.phase == "record"


@pytest.mark.parametrize("bad", ["/etc/passwd", "../escape", "a/../../b", ""])
def test_file_record_rejects_non_relative_paths(bad):
    with pytest.raises(ValidationError):
        FileRecord(path=bad, size=0, checksum="0" * 64, permissions=0o644)


def test_file_record_is_immutable():
    rec = FileRecord(path="a", size=1, checksum="0" * 64, permissions=0o644)
    with pytest.raises(ValidationError):
        rec.checksum = "1" * 64
