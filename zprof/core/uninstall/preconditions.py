from __future__ import annotations

import os
import platform
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from zprof.core.backup.pre_zprof import backup_exists
from zprof.core.paths import ZprofPaths

ShellProbe = Callable[[], List[str]]


@dataclass
class ValidationReport:
    """
    Flags are False until their inspection passes. Inspections stop at the
    first missing prerequisite (home, then install), so a later flag can be
    False because it was never reached.
    """

    zprof_installed: bool = False
    has_write_permissions: bool = False
    home_dir_valid: bool = False
    pre_zprof_backup_exists: bool = False
    warnings: List[str] = field(default_factory=list)

    def is_valid(self) -> bool:
        return self.zprof_installed and self.has_write_permissions and self.home_dir_valid and self.pre_zprof_backup_exists

    def issues(self) -> List[str]:
        out: List[str] = []
        if not self.zprof_installed:
            out.append("zprof is not installed")
        if not self.has_write_permissions:
            out.append("No write permissions to the home or profiles directory")
        if not self.home_dir_valid:
            out.append("Home directory is not set or invalid")
        return out

    def to_dict(self) -> dict:
        return {
            "zprof_installed": self.zprof_installed,
            "has_write_permissions": self.has_write_permissions,
            "home_dir_valid": self.home_dir_valid,
            "pre_zprof_backup_exists": self.pre_zprof_backup_exists,
            "warnings": list(self.warnings),
            "issues": self.issues(),
        }


def detect_active_shells() -> List[str]:
    """Best effort: running zsh processes as 'PID n (cmd)'. Empty when pgrep is unavailable."""
    if shutil.which("pgrep") is None:
        return []
    flag = "-fl" if platform.system() == "Darwin" else "-a"
    try:
        res = subprocess.run(["pgrep", flag, "zsh"], capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError):
        return []
    if res.returncode != 0:
        return []
    out: List[str] = []
    for line in str(res.stdout or "").splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split(" ", 1)
        out.append(f"PID {parts[0]} ({parts[1].strip()})" if len(parts) == 2 else line)
    return out


def _writable(path: str) -> bool:
    return os.path.isdir(path) and os.access(path, os.W_OK | os.X_OK)


def validate_preconditions(paths: ZprofPaths, *, shell_probe: Optional[ShellProbe] = None, logger=None) -> ValidationReport:
    """
    Read-only inspection before uninstall. Never raises and never writes:
    every failed inspection only leaves its flag False.
    """
    report = ValidationReport()

    try:
        report.home_dir_valid = bool(paths.home) and os.path.isdir(paths.home)
    except (OSError, ValueError):
        report.home_dir_valid = False
    if not report.home_dir_valid:
        if logger:
            logger.warning(f"Home directory is missing or not a directory: {paths.home!r}")
        return report

    try:
        report.zprof_installed = os.path.isdir(paths.root) and os.path.isfile(paths.config_file)
    except (OSError, ValueError):
        report.zprof_installed = False
    if not report.zprof_installed:
        # permissions are not inspected without an install; the flag stays False
        return report

    try:
        report.has_write_permissions = _writable(paths.home) and _writable(paths.root)
    except (OSError, ValueError):
        report.has_write_permissions = False

    try:
        report.pre_zprof_backup_exists = backup_exists(paths.pre_zprof_backup_dir)
    except (OSError, ValueError):
        report.pre_zprof_backup_exists = False
    if not report.pre_zprof_backup_exists:
        report.warnings.append("No pre-zprof backup found. The 'restore original' option will not be available.")

    try:
        shells = (shell_probe or detect_active_shells)()
    except Exception as e:
        shells = []
        if logger:
            logger.debug(f"Active shell probe failed: {e}")
    if shells:
        report.warnings.append(
            f"Active shell sessions detected: {', '.join(shells)}. Close all zsh sessions before uninstalling."
        )

    return report
