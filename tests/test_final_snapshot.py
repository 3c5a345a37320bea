from __future__ import annotations

import os
import stat
import tarfile

import pytest

from zprof.core.backup.snapshot import create_final_snapshot
from zprof.core.errors import NotFoundError


def _tree(tmp_path):
    root = tmp_path / ".zsh-profiles"
    (root / "profiles" / "work").mkdir(parents=True)
    (root / "profiles" / "work" / ".zshrc").write_text("# work\n", encoding="utf-8")
    (root / "config.toml").write_text('active_profile = "work"\n', encoding="utf-8")
    return root


def test_snapshot_is_rooted_at_source_name(tmp_path):
    root = _tree(tmp_path)
    out = tmp_path / "snap.tar.gz"
    size = create_final_snapshot(str(root), str(out))

    assert size == os.path.getsize(out)
    assert stat.S_IMODE(os.stat(out).st_mode) == 0o600
    with tarfile.open(str(out), "r:gz") as tf:
        names = set(tf.getnames())
    assert {".zsh-profiles", ".zsh-profiles/config.toml", ".zsh-profiles/profiles/work/.zshrc"} <= names
    assert not os.path.exists(str(out) + ".partial")


def test_snapshot_inside_source_excludes_itself(tmp_path):
    root = _tree(tmp_path)
    out = root / "backups" / "final.tar.gz"
    create_final_snapshot(str(root), str(out))
    with tarfile.open(str(out), "r:gz") as tf:
        names = tf.getnames()
    assert not any(n.endswith("final.tar.gz") or n.endswith(".partial") for n in names)


def test_snapshot_follows_symlinks_and_skips_cycles(tmp_path):
    root = _tree(tmp_path)
    external = tmp_path / "external.zsh"
    external.write_text("echo external\n", encoding="utf-8")
    os.symlink(str(external), str(root / "profiles" / "work" / "linked.zsh"))
    os.symlink(str(root), str(root / "profiles" / "loop"))

    out = tmp_path / "snap.tar.gz"
    create_final_snapshot(str(root), str(out))
    with tarfile.open(str(out), "r:gz") as tf:
        member = tf.getmember(".zsh-profiles/profiles/work/linked.zsh")
        assert member.isfile()
        assert tf.extractfile(member).read() == b"echo external\n"
        assert not any(n.startswith(".zsh-profiles/profiles/loop") for n in tf.getnames())


def test_snapshot_progress_reaches_total(tmp_path):
    root = _tree(tmp_path)
    calls = []
    create_final_snapshot(str(root), str(tmp_path / "s.tar.gz"), progress=lambda d, t: calls.append((d, t)))
    assert calls
    assert calls[-1][0] == calls[-1][1]


def test_snapshot_missing_source(tmp_path):
    with pytest.raises(NotFoundError):
        create_final_snapshot(str(tmp_path / "none"), str(tmp_path / "s.tar.gz"))
    assert not (tmp_path / "s.tar.gz").exists()
