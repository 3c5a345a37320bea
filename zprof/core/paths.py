from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


ROOT_DIR_NAME = ".zsh-profiles"


@dataclass(frozen=True)
class ZprofPaths:
    """
    Every filesystem location the subsystem touches, derived from an explicit
    home directory. Nothing else reads HOME.
    """

    home: str
    root_override: Optional[str] = None

    @classmethod
    def from_env(cls, root: Optional[str] = None) -> "ZprofPaths":
        return cls(home=os.environ.get("HOME") or os.path.expanduser("~"), root_override=root)

    @property
    def root(self) -> str:
        return self.root_override or os.path.join(self.home, ROOT_DIR_NAME)

    @property
    def profiles_dir(self) -> str:
        return os.path.join(self.root, "profiles")

    @property
    def shared_dir(self) -> str:
        return os.path.join(self.root, "shared")

    @property
    def cache_dir(self) -> str:
        return os.path.join(self.root, "cache")

    @property
    def cache_backups_dir(self) -> str:
        return os.path.join(self.cache_dir, "backups")

    @property
    def downloads_dir(self) -> str:
        return os.path.join(self.cache_dir, "downloads")

    @property
    def import_temp_dir(self) -> str:
        return os.path.join(self.cache_dir, "import_temp")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.root, "backups")

    @property
    def pre_zprof_backup_dir(self) -> str:
        return os.path.join(self.backups_dir, "pre-zprof")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def ops_log(self) -> str:
        return os.path.join(self.logs_dir, "ops.jsonl")

    # Files
    @property
    def config_file(self) -> str:
        return os.path.join(self.root, "config.toml")

    @property
    def history_file(self) -> str:
        return os.path.join(self.shared_dir, ".zsh_history")

    @property
    def zshenv(self) -> str:
        return os.path.join(self.home, ".zshenv")

    def profile_dir(self, name: str) -> str:
        return os.path.join(self.profiles_dir, name)


def ensure_structure(paths: ZprofPaths) -> str:
    """Create the root directory layout (idempotent) and the shared history file."""
    for d in (paths.root, paths.profiles_dir, paths.shared_dir, paths.cache_dir, paths.cache_backups_dir, paths.downloads_dir):
        os.makedirs(d, exist_ok=True)
    if not os.path.exists(paths.history_file):
        with open(paths.history_file, "w", encoding="utf-8"):
            pass
        os.chmod(paths.history_file, 0o600)
    return paths.root
