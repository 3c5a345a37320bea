from __future__ import annotations

import os
from logging.handlers import RotatingFileHandler

from zprof.core.api import ProfileManager
from zprof.core.logger import setup_logging


def test_init_creates_layout_backup_and_config(paths):
    with open(os.path.join(paths.home, ".zshrc"), "w", encoding="utf-8") as f:
        f.write("# mine\n")
    mgr = ProfileManager(paths=paths)

    manifest = mgr.init()

    assert [r.path for r in manifest.files] == [".zshrc"]
    assert os.path.isfile(paths.config_file)
    assert os.path.isfile(paths.history_file)
    assert mgr.active_profile() is None


def test_init_twice_keeps_first_backup(paths):
    zshrc = os.path.join(paths.home, ".zshrc")
    with open(zshrc, "w", encoding="utf-8") as f:
        f.write("# first\n")
    mgr = ProfileManager(paths=paths)
    mgr.init()
    mgr.config.set_active_profile("work")
    with open(zshrc, "w", encoding="utf-8") as f:
        f.write("# second\n")

    mgr.init()

    with open(os.path.join(paths.pre_zprof_backup_dir, ".zshrc"), "r", encoding="utf-8") as f:
        assert f.read() == "# first\n"
    assert mgr.active_profile() == "work"


def test_setup_logging_writes_file_once(tmp_path):
    log_dir = str(tmp_path / "logs")
    logger = setup_logging(log_dir, console=False)
    setup_logging(log_dir, console=False)

    assert sum(isinstance(h, RotatingFileHandler) for h in logger.handlers) == 1
    logger.info("hello from test")
    for h in logger.handlers:
        h.flush()
    assert os.path.isdir(log_dir)
