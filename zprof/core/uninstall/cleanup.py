from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from typing import List, Tuple

from zprof.core.errors import ZprofError
from zprof.core.paths import ZprofPaths
from zprof.core.safe_ops.zdotdir import remove_managed_section

# Removed under keep_backups; everything else under the root (backups/) stays.
KEEP_BACKUPS_REMOVE_DIRS = ("profiles", "shared", "cache", "logs")


def retained_backup_dir(paths: ZprofPaths, keep_backups: bool) -> str:
    """Where copies that must outlive the uninstall are written."""
    return paths.backups_dir if keep_backups else paths.home


@dataclass
class CleanupReport:
    removed_files: List[str] = field(default_factory=list)
    removed_dirs: List[str] = field(default_factory=list)
    preserved: List[str] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)

    def is_successful(self) -> bool:
        return not self.errors

    def total_removed(self) -> int:
        return len(self.removed_files) + len(self.removed_dirs)


def _remove_dir(path: str, report: CleanupReport, logger=None) -> None:
    if not os.path.lexists(path):
        return
    try:
        if os.path.islink(path):
            os.remove(path)
        else:
            shutil.rmtree(path)
        report.removed_dirs.append(path)
        if logger:
            logger.info(f"Removed {path}")
    except OSError as e:
        report.errors.append((path, str(e)))
        if logger:
            logger.error(f"Failed to remove {path}: {e}")


def cleanup_all(paths: ZprofPaths, *, keep_backups: bool = False, logger=None) -> CleanupReport:
    """
    Remove zprof's footprint. Each step records its own failure in the report
    and the remaining steps still run.
    """
    report = CleanupReport()

    try:
        outcome = remove_managed_section(paths=paths, backup_dir=retained_backup_dir(paths, keep_backups), logger=logger)
        if outcome == "removed":
            report.removed_files.append(paths.zshenv)
        elif outcome == "stripped" or (outcome is None and os.path.exists(paths.zshenv)):
            report.preserved.append(paths.zshenv)
    except (OSError, UnicodeDecodeError, ZprofError) as e:
        report.errors.append((paths.zshenv, f"Failed to clean .zshenv: {e}"))

    if not os.path.exists(paths.root):
        return report

    if not keep_backups:
        _remove_dir(paths.root, report, logger)
        return report

    for name in KEEP_BACKUPS_REMOVE_DIRS:
        _remove_dir(os.path.join(paths.root, name), report, logger)
    if os.path.exists(paths.config_file):
        try:
            os.remove(paths.config_file)
            report.removed_files.append(paths.config_file)
        except OSError as e:
            report.errors.append((paths.config_file, str(e)))
    report.preserved.append(paths.backups_dir)
    if logger:
        logger.info(f"Preserved {paths.backups_dir}")
    return report
