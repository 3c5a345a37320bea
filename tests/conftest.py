from __future__ import annotations

import os
from typing import Dict, Optional

import pytest

from zprof.core.api import ProfileManager
from zprof.core.config.store import ConfigStore
from zprof.core.ops_log import OpsLogger
from zprof.core.paths import ZprofPaths, ensure_structure

MANIFEST_TEMPLATE = """[profile]
name = "{name}"
framework = "{framework}"
theme = "robbyrussell"
created = 2025-01-01T00:00:00Z
modified = 2025-01-01T00:00:00Z

[plugins]
enabled = ["git", "docker"]

[env]
EDITOR = "vim"
"""


def manifest_text(name: str, framework: str = "oh-my-zsh") -> str:
    return MANIFEST_TEMPLATE.format(name=name, framework=framework)


def write_file(path: str, content: str) -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    return path


def read_file(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


@pytest.fixture
def paths(tmp_path):
    """
    Isolated home directory with an initialized ~/.zsh-profiles layout.
    """
    home = tmp_path / "home"
    home.mkdir()
    p = ZprofPaths(home=str(home))
    ensure_structure(p)
    return p


@pytest.fixture
def config_store(paths):
    return ConfigStore(paths=paths)


@pytest.fixture
def ops(paths):
    return OpsLogger(path=paths.ops_log)


@pytest.fixture
def manager(paths, ops):
    return ProfileManager(paths=paths, ops=ops)


@pytest.fixture
def make_profile(paths):
    def _make(
        name: str,
        *,
        framework: str = "oh-my-zsh",
        files: Optional[Dict[str, str]] = None,
        manifest: Optional[str] = None,
    ) -> str:
        pdir = paths.profile_dir(name)
        os.makedirs(pdir, exist_ok=True)
        write_file(os.path.join(pdir, "profile.toml"), manifest if manifest is not None else manifest_text(name, framework))
        for rel, content in (files or {}).items():
            write_file(os.path.join(pdir, rel), content)
        return pdir

    return _make


@pytest.fixture
def work_profile(make_profile):
    return make_profile(
        "work",
        files={
            ".zshrc": "# work zshrc\nsource $ZSH/oh-my-zsh.sh\n",
            ".zshenv": "export WORK=1\n",
            "custom.sh": "alias k=kubectl\n",
        },
    )
