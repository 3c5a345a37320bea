from __future__ import annotations

import os
import re
import shutil
from dataclasses import dataclass
from typing import List, Optional

from zprof.core.config.store import ConfigStore
from zprof.core.errors import ActiveConflictError, InvalidError, NotFoundError, ZprofError, from_os_error
from zprof.core.ops_log import OpsLogger
from zprof.core.paths import ZprofPaths
from zprof.core.profile.manifest import MANIFEST_FILE_NAME, load_and_validate
from zprof.core.safe_ops.protocol import MutationJournal, Phase, backup_tree, verify_absent
from zprof.core.safe_ops.zdotdir import SwitchResult, set_active_profile

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_profile_name(name: Optional[str]) -> str:
    """Profile names are single path components: letters, digits, '-' and '_'."""
    if name is None or not str(name).strip():
        raise InvalidError("Profile name cannot be empty", code="invalid_profile_name")
    name = str(name)
    if not _NAME_RE.match(name):
        raise InvalidError(
            f"Invalid profile name '{name}'. Use alphanumeric characters, hyphens and underscores only.",
            code="invalid_profile_name",
            name=name,
        )
    return name


@dataclass(frozen=True)
class ProfileInfo:
    name: str
    path: str
    framework: Optional[str]
    is_active: bool


class ProfileStore:
    def __init__(self, *, paths: ZprofPaths, config: ConfigStore, ops: Optional[OpsLogger] = None, logger=None):
        self.paths = paths
        self.config = config
        self.ops = ops
        self.logger = logger

    def path_for(self, name: str) -> str:
        return self.paths.profile_dir(validate_profile_name(name))

    def require(self, name: str) -> str:
        path = self.path_for(name)
        if not os.path.isdir(path):
            raise NotFoundError(f"Profile '{name}' not found", path=path, profile=name)
        return path

    def list_profiles(self) -> List[ProfileInfo]:
        root = self.paths.profiles_dir
        if not os.path.isdir(root):
            return []
        active = self.config.active_profile()
        out: List[ProfileInfo] = []
        for name in sorted(os.listdir(root)):
            p = os.path.join(root, name)
            if not _NAME_RE.match(name) or not os.path.isdir(p) or not os.path.isfile(os.path.join(p, MANIFEST_FILE_NAME)):
                continue
            try:
                framework: Optional[str] = load_and_validate(p).profile.framework
            except ZprofError:
                framework = None
            out.append(ProfileInfo(name=name, path=p, framework=framework, is_active=(name == active)))
        return out

    def delete_profile(self, name: str) -> str:
        """
        Remove a profile directory after copying the whole tree to cache/backups.
        The active profile is refused before anything on disk is touched.
        Returns the backup location.
        """
        name = validate_profile_name(name)
        if self.config.active_profile() == name:
            if self.logger:
                self.logger.warning(f"Refused to delete active profile '{name}'")
            raise ActiveConflictError(
                f"Cannot delete active profile '{name}'. Switch to another profile first.",
                profile=name,
                phase=Phase.CHECK.value,
            )
        path = self.require(name)
        journal = MutationJournal("profile.delete", ops=self.ops, logger=self.logger)
        journal.phase(Phase.CHECK, profile=name, path=path)

        backup = backup_tree(path, self.paths.cache_backups_dir, label=f"profile-{name}")
        journal.phase(Phase.BACKUP, backup=backup)

        try:
            shutil.rmtree(path)
        except OSError as e:
            journal.phase(Phase.OPERATE, "failed", error=str(e))
            raise from_os_error(e, path=path, phase=Phase.OPERATE.value, action="remove") from e
        journal.phase(Phase.OPERATE, removed=path)

        verify_absent(path, what=f"profile '{name}'")
        journal.phase(Phase.VERIFY)

        if self.logger:
            self.logger.info(f"Profile '{name}' deleted; backup retained at {backup}")
        return backup

    def switch_profile(self, name: str) -> SwitchResult:
        """
        Make `name` the active profile: validate its manifest, rewrite the
        managed section of ~/.zshenv, then record it in config.toml.
        """
        name = validate_profile_name(name)
        path = self.require(name)
        load_and_validate(path)
        result = set_active_profile(path, paths=self.paths, ops=self.ops, logger=self.logger)
        self.config.set_active_profile(name)
        if self.logger:
            self.logger.info(f"Switched to profile '{name}'")
        return result
