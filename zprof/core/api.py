from __future__ import annotations

import os
from typing import List, Optional

from zprof.core.archive.exporter import export_profile
from zprof.core.archive.importer import import_profile
from zprof.core.archive.models import ExportResult
from zprof.core.archive.remote import Fetcher, import_from_url
from zprof.core.backup.archiver import ProgressCallback
from zprof.core.backup.models import BackupManifest
from zprof.core.backup.pre_zprof import create_initial_backup
from zprof.core.config.models import Config
from zprof.core.config.store import ConfigStore
from zprof.core.ops_log import OpsLogger
from zprof.core.paths import ZprofPaths, ensure_structure
from zprof.core.profile.store import ProfileInfo, ProfileStore
from zprof.core.safe_ops.zdotdir import SwitchResult
from zprof.core.uninstall.machine import RestoreOption, UninstallFlow, UninstallResult
from zprof.core.uninstall.preconditions import ShellProbe, ValidationReport, validate_preconditions


class ProfileManager:
    """
    Single entry point for CLI and IPC callers. Every operation raises a
    ZprofError subclass on failure; callers render `to_dict()`.
    """

    def __init__(self, *, paths: ZprofPaths, ops: Optional[OpsLogger] = None, logger=None):
        self.paths = paths
        self.ops = ops if ops is not None else OpsLogger(path=paths.ops_log)
        self.logger = logger
        self.config = ConfigStore(paths=paths, logger=logger)
        self.profiles = ProfileStore(paths=paths, config=self.config, ops=self.ops, logger=logger)

    def init(self) -> BackupManifest:
        """Create the root layout and capture the pre-zprof environment once."""
        ensure_structure(self.paths)
        manifest = create_initial_backup(self.paths.home, self.paths.pre_zprof_backup_dir, logger=self.logger)
        if not os.path.exists(self.config.path):
            self.config.save(Config())
        return manifest

    def list_profiles(self) -> List[ProfileInfo]:
        return self.profiles.list_profiles()

    def active_profile(self) -> Optional[str]:
        return self.config.active_profile()

    def switch_profile(self, name: str) -> SwitchResult:
        return self.profiles.switch_profile(name)

    def delete_profile(self, name: str) -> str:
        return self.profiles.delete_profile(name)

    def export_profile(
        self,
        name: str,
        *,
        destination: Optional[str] = None,
        force: bool = False,
        progress: Optional[ProgressCallback] = None,
    ) -> ExportResult:
        return export_profile(name, paths=self.paths, destination=destination, force=force, progress=progress, logger=self.logger)

    def import_profile(self, archive_path: str, *, name: Optional[str] = None, force: bool = False) -> str:
        return import_profile(
            archive_path,
            paths=self.paths,
            config=self.config,
            name_override=name,
            force=force,
            ops=self.ops,
            logger=self.logger,
        )

    def import_from_url(self, url: str, *, name: Optional[str] = None, force: bool = False, fetcher: Optional[Fetcher] = None) -> str:
        return import_from_url(
            url,
            paths=self.paths,
            config=self.config,
            name_override=name,
            force=force,
            fetcher=fetcher,
            ops=self.ops,
            logger=self.logger,
        )

    def validate_uninstall(self, *, shell_probe: Optional[ShellProbe] = None) -> ValidationReport:
        return validate_preconditions(self.paths, shell_probe=shell_probe, logger=self.logger)

    def uninstall_flow(
        self,
        *,
        keep_backups: bool = False,
        shell_probe: Optional[ShellProbe] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> UninstallFlow:
        return UninstallFlow(
            paths=self.paths,
            keep_backups=keep_backups,
            shell_probe=shell_probe,
            progress=progress,
            ops=self.ops,
            logger=self.logger,
        )

    def uninstall(
        self,
        option: RestoreOption,
        *,
        profile: Optional[str] = None,
        keep_backups: bool = False,
        shell_probe: Optional[ShellProbe] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> UninstallResult:
        flow = self.uninstall_flow(keep_backups=keep_backups, shell_probe=shell_probe, progress=progress)
        return flow.run(option, profile=profile)
