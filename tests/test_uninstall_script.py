from __future__ import annotations

import json
import os
import runpy
import sys

SCRIPT = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "scripts", "uninstall.py")


def test_check_mode_leaves_tree_untouched(tmp_path, monkeypatch, capsys):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(sys, "argv", ["uninstall.py", "--restore", "clean", "--check"])

    main = runpy.run_path(SCRIPT, run_name="uninstall_script")["main"]
    rc = main()

    assert rc == 2
    assert os.listdir(home) == []
    report = json.loads(capsys.readouterr().out)
    assert report["zprof_installed"] is False
