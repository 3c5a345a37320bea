from __future__ import annotations

import os
import tarfile

import pytest

from zprof.core.errors import InvalidError, NotFoundError, StateTransitionError, ZprofError
from zprof.core.uninstall.cleanup import cleanup_all
from zprof.core.uninstall.machine import TRANSITIONS, RestoreOption, UninstallState

S = UninstallState
ORIGINAL_ZSHRC = "# before zprof\n"


def _no_shells():
    return []


@pytest.fixture
def installed(paths, manager, work_profile):
    with open(os.path.join(paths.home, ".zshrc"), "w", encoding="utf-8") as f:
        f.write(ORIGINAL_ZSHRC)
    with open(paths.zshenv, "w", encoding="utf-8") as f:
        f.write("export USER_VAR=1\n")
    manager.init()
    manager.switch_profile("work")
    return manager


def _flow(manager, **kw):
    kw.setdefault("shell_probe", _no_shells)
    return manager.uninstall_flow(**kw)


def _snapshots_in(d):
    return [n for n in os.listdir(d) if "final-snapshot" in n]


def test_transition_table_shape():
    assert TRANSITIONS[S.DESTROYING] == frozenset({S.DONE})
    assert TRANSITIONS[S.DONE] == frozenset()
    assert S.DESTROYING in TRANSITIONS[S.SNAPSHOT_TAKEN]
    sources_of_destroying = [s for s, targets in TRANSITIONS.items() if S.DESTROYING in targets]
    assert sources_of_destroying == [S.SNAPSHOT_TAKEN]


def test_destroy_before_snapshot_is_illegal(installed, paths):
    flow = _flow(installed)
    with pytest.raises(StateTransitionError):
        flow.destroy(RestoreOption.CLEAN)
    flow.validate()
    assert flow.state == S.SNAPSHOT_PENDING
    with pytest.raises(StateTransitionError) as ei:
        flow.destroy(RestoreOption.CLEAN)
    assert ei.value.context["from_state"] == "snapshot_pending"
    assert os.path.isdir(paths.root)


def test_snapshot_requires_validation(installed):
    flow = _flow(installed)
    with pytest.raises(StateTransitionError):
        flow.take_snapshot()
    assert flow.state == S.IDLE


def test_blocked_without_initial_backup(paths, manager, work_profile):
    manager.config.set_active_profile(None)
    flow = _flow(manager)
    report = flow.validate()
    assert flow.state == S.BLOCKED
    assert not report.pre_zprof_backup_exists

    with pytest.raises(InvalidError) as ei:
        _flow(manager).run(RestoreOption.CLEAN)
    assert ei.value.code == "uninstall_blocked"
    assert os.path.isdir(paths.root)


def test_revalidate_and_resnapshot_are_allowed(installed):
    flow = _flow(installed, keep_backups=True)
    flow.validate()
    first = flow.take_snapshot()
    second = flow.take_snapshot()
    assert first.backup_path != second.backup_path
    flow.validate()
    flow.take_snapshot()
    assert flow.state == S.SNAPSHOT_TAKEN
    assert flow.history[:4] == [S.IDLE, S.VALIDATING, S.SNAPSHOT_PENDING, S.SNAPSHOT_TAKEN]


def test_snapshot_failure_aborts_without_destroying(installed, paths, monkeypatch):
    flow = _flow(installed)
    flow.validate()
    monkeypatch.setattr(flow, "snapshot_path", lambda: os.path.join(paths.profile_dir("work"), "custom.sh", "x.tar.gz"))
    with pytest.raises(ZprofError):
        flow.take_snapshot()
    assert flow.state == S.ABORTED
    assert os.path.isdir(paths.root)
    with pytest.raises(StateTransitionError):
        flow.destroy(RestoreOption.CLEAN)


def test_clean_uninstall(installed, paths):
    result = _flow(installed).run(RestoreOption.CLEAN)

    assert not os.path.exists(paths.root)
    assert os.path.isfile(result.snapshot.backup_path)
    assert os.path.dirname(result.snapshot.backup_path) == paths.home
    assert result.cleanup.is_successful()
    # user's own .zshenv lines survive, managed block is gone
    with open(paths.zshenv, "r", encoding="utf-8") as f:
        assert f.read() == "export USER_VAR=1\n"
    with tarfile.open(result.snapshot.backup_path, "r:gz") as tf:
        assert ".zsh-profiles/profiles/work/custom.sh" in tf.getnames()


def test_restore_original(installed, paths):
    with open(os.path.join(paths.home, ".zshrc"), "w", encoding="utf-8") as f:
        f.write("# changed while zprof was installed\n")

    result = _flow(installed).run(RestoreOption.ORIGINAL)

    assert result.restore is not None
    with open(os.path.join(paths.home, ".zshrc"), "r", encoding="utf-8") as f:
        assert f.read() == ORIGINAL_ZSHRC
    assert not os.path.exists(paths.root)


def test_promote_profile(installed, paths):
    result = _flow(installed).run(RestoreOption.PROMOTE, profile="work")

    assert sorted(result.promoted) == [".zshenv", ".zshrc"]
    with open(os.path.join(paths.home, ".zshrc"), "r", encoding="utf-8") as f:
        assert f.read() == "# work zshrc\nsource $ZSH/oh-my-zsh.sh\n"
    saved = [n for n in os.listdir(paths.home) if n.startswith(".zshrc.backup.")]
    assert len(saved) == 1
    assert not os.path.exists(paths.root)


def test_promote_unknown_profile_fails_before_destroying(installed, paths):
    flow = _flow(installed)
    flow.validate()
    flow.take_snapshot()
    with pytest.raises(NotFoundError):
        flow.destroy(RestoreOption.PROMOTE, profile="ghost")
    assert flow.state == S.SNAPSHOT_TAKEN
    assert os.path.isdir(paths.root)


def test_keep_backups_preserves_backups_dir(installed, paths):
    result = _flow(installed, keep_backups=True).run(RestoreOption.CLEAN)

    assert os.path.isdir(paths.backups_dir)
    assert os.path.isfile(result.snapshot.backup_path)
    assert os.path.dirname(result.snapshot.backup_path) == paths.backups_dir
    assert os.path.isdir(paths.pre_zprof_backup_dir)
    for name in ("profiles", "shared", "cache", "logs"):
        assert not os.path.exists(os.path.join(paths.root, name))
    assert not os.path.exists(paths.config_file)
    assert _snapshots_in(paths.home) == []


def test_cleanup_without_section_preserves_zshenv(paths):
    with open(paths.zshenv, "w", encoding="utf-8") as f:
        f.write("export ONLY_MINE=1\n")
    report = cleanup_all(paths)
    assert paths.zshenv in report.preserved
    assert not os.path.exists(paths.root)
    assert report.total_removed() == 1


def test_manager_uninstall_shortcut(installed, paths):
    result = installed.uninstall(RestoreOption.CLEAN, shell_probe=_no_shells)
    assert result.option == RestoreOption.CLEAN
    assert not os.path.exists(paths.root)
