from __future__ import annotations

import os
import stat

import pytest

from zprof.core.backup.models import DetectedFramework
from zprof.core.backup.pre_zprof import backup_exists, create_initial_backup, detect_framework, verify_backup
from zprof.core.backup.restorer import CONFLICT_SUFFIX, ConflictResolution, restore_initial_backup
from zprof.core.errors import NotFoundError, OperationError


def _home(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (home / ".zshrc").write_text("# original zshrc\n", encoding="utf-8")
    (home / ".zprofile").write_text("# original zprofile\n", encoding="utf-8")
    os.chmod(home / ".zprofile", 0o600)
    return home


def _create(home, backup_dir, **kw):
    kw.setdefault("shell_version", lambda: "zsh 5.9 (test)")
    return create_initial_backup(str(home), str(backup_dir), **kw)


def test_initial_backup_copies_existing_shell_files(tmp_path):
    home = _home(tmp_path)
    backup_dir = tmp_path / "pre-zprof"
    m = _create(home, backup_dir)

    assert [r.path for r in m.files] == [".zshrc", ".zprofile"]
    assert m.metadata.zsh_version == "zsh 5.9 (test)"
    assert backup_exists(str(backup_dir))
    assert stat.S_IMODE(os.stat(backup_dir).st_mode) == 0o700
    assert (backup_dir / ".zshrc").read_text(encoding="utf-8") == "# original zshrc\n"
    assert verify_backup(str(backup_dir)) == []


def test_initial_backup_is_idempotent(tmp_path):
    home = _home(tmp_path)
    backup_dir = tmp_path / "pre-zprof"
    _create(home, backup_dir)
    (home / ".zshrc").write_text("# changed later\n", encoding="utf-8")

    m = _create(home, backup_dir)
    assert (backup_dir / ".zshrc").read_text(encoding="utf-8") == "# original zshrc\n"
    assert len(m.files) == 2


def test_initial_backup_keeps_symlinks_as_links(tmp_path):
    home = _home(tmp_path)
    dotfiles = tmp_path / "dotfiles"
    dotfiles.mkdir()
    (dotfiles / "zshenv").write_text("export X=1\n", encoding="utf-8")
    os.symlink(str(dotfiles / "zshenv"), str(home / ".zshenv"))

    m = _create(home, tmp_path / "pre-zprof")
    rec = m.find(".zshenv")
    assert rec is not None and rec.is_symlink
    assert rec.symlink_target == str(dotfiles / "zshenv")
    assert os.path.islink(tmp_path / "pre-zprof" / ".zshenv")


def test_detected_framework_recorded(tmp_path):
    home = _home(tmp_path)
    (home / ".oh-my-zsh").mkdir()
    assert detect_framework(str(home)).name == "oh-my-zsh"

    m = _create(home, tmp_path / "pre-zprof")
    assert m.detected_framework.name == "oh-my-zsh"

    m2 = _create(
        home,
        tmp_path / "other",
        framework_detector=lambda h: DetectedFramework(name="zinit", path=os.path.join(h, ".zinit")),
    )
    assert m2.detected_framework.name == "zinit"


def test_verify_backup_reports_tampering(tmp_path):
    home = _home(tmp_path)
    backup_dir = tmp_path / "pre-zprof"
    _create(home, backup_dir)
    (backup_dir / ".zshrc").write_text("tampered\n", encoding="utf-8")
    os.remove(backup_dir / ".zprofile")
    assert sorted(verify_backup(str(backup_dir))) == [".zprofile", ".zshrc"]


def test_restore_puts_files_back_with_permissions(tmp_path):
    home = _home(tmp_path)
    backup_dir = tmp_path / "pre-zprof"
    _create(home, backup_dir)
    os.remove(home / ".zshrc")
    os.remove(home / ".zprofile")

    report = restore_initial_backup(str(home), str(backup_dir))

    assert sorted(report.restored) == sorted([str(home / ".zshrc"), str(home / ".zprofile")])
    assert (home / ".zshrc").read_text(encoding="utf-8") == "# original zshrc\n"
    assert stat.S_IMODE(os.stat(home / ".zprofile").st_mode) == 0o600
    assert report.checksum_mismatches == []
    assert report.conflicts == []


def test_restore_conflict_default_keeps_copy(tmp_path):
    home = _home(tmp_path)
    backup_dir = tmp_path / "pre-zprof"
    _create(home, backup_dir)
    (home / ".zshrc").write_text("# written by zprof era\n", encoding="utf-8")

    report = restore_initial_backup(str(home), str(backup_dir))

    saved = str(home / ".zshrc") + CONFLICT_SUFFIX
    assert (str(home / ".zshrc"), saved) in report.conflicts
    with open(saved, "r", encoding="utf-8") as f:
        assert f.read() == "# written by zprof era\n"
    assert (home / ".zshrc").read_text(encoding="utf-8") == "# original zshrc\n"


def test_restore_conflict_skip_and_overwrite(tmp_path):
    home = _home(tmp_path)
    backup_dir = tmp_path / "pre-zprof"
    _create(home, backup_dir)
    (home / ".zshrc").write_text("new zshrc\n", encoding="utf-8")
    (home / ".zprofile").write_text("new zprofile\n", encoding="utf-8")

    def resolve(path):
        return ConflictResolution.SKIP if path.endswith(".zshrc") else ConflictResolution.OVERWRITE

    report = restore_initial_backup(str(home), str(backup_dir), resolve=resolve)
    assert report.skipped == [".zshrc"]
    assert (home / ".zshrc").read_text(encoding="utf-8") == "new zshrc\n"
    assert (home / ".zprofile").read_text(encoding="utf-8") == "# original zprofile\n"
    assert not os.path.exists(str(home / ".zprofile") + CONFLICT_SUFFIX)


def test_restore_missing_backup_file_is_reported(tmp_path):
    home = _home(tmp_path)
    backup_dir = tmp_path / "pre-zprof"
    _create(home, backup_dir)
    os.remove(backup_dir / ".zprofile")
    report = restore_initial_backup(str(home), str(backup_dir), resolve=lambda p: ConflictResolution.OVERWRITE)
    assert report.missing == [".zprofile"]


def test_restore_failure_rolls_back(tmp_path):
    home = _home(tmp_path)
    backup_dir = tmp_path / "pre-zprof"
    _create(home, backup_dir)
    os.remove(home / ".zshrc")
    (home / ".zprofile").write_text("current zprofile\n", encoding="utf-8")

    def resolve(path):
        if path.endswith(".zprofile"):
            raise OSError("disk on fire")
        return ConflictResolution.OVERWRITE

    with pytest.raises(OperationError) as ei:
        restore_initial_backup(str(home), str(backup_dir), resolve=resolve)
    assert "rolled back" in ei.value.user_message
    assert not (home / ".zshrc").exists()
    assert (home / ".zprofile").read_text(encoding="utf-8") == "current zprofile\n"


def test_restore_without_backup(tmp_path):
    with pytest.raises(NotFoundError):
        restore_initial_backup(str(tmp_path), str(tmp_path / "missing"))
