from __future__ import annotations

import os
import platform
import shutil
import subprocess
from typing import Callable, List, Optional

from zprof import __version__
from zprof.core.backup import integrity
from zprof.core.backup.integrity import MANIFEST_FILE_NAME
from zprof.core.backup.models import BackupManifest, BackupMetadata, DetectedFramework
from zprof.core.errors import from_os_error

SHELL_CONFIG_FILES = (".zshrc", ".zshenv", ".zprofile", ".zlogin", ".zlogout", ".zsh_history")

# framework -> install locations relative to home, checked in order
FRAMEWORK_LOCATIONS = (
    ("oh-my-zsh", (".oh-my-zsh",)),
    ("zimfw", (".zim",)),
    ("prezto", (".zprezto",)),
    ("zinit", (".zinit", ".local/share/zinit")),
    ("zap", (".local/share/zap",)),
)

FrameworkDetector = Callable[[str], Optional[DetectedFramework]]


def manifest_path(backup_dir: str) -> str:
    return os.path.join(backup_dir, MANIFEST_FILE_NAME)


def backup_exists(backup_dir: str) -> bool:
    return os.path.isdir(backup_dir) and os.path.isfile(manifest_path(backup_dir))


def zsh_version() -> str:
    if shutil.which("zsh") is None:
        return "unknown"
    try:
        res = subprocess.run(["zsh", "--version"], capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    if res.returncode != 0:
        return "unknown"
    return str(res.stdout or "").strip() or "unknown"


def detect_framework(home: str) -> Optional[DetectedFramework]:
    for name, rels in FRAMEWORK_LOCATIONS:
        for rel in rels:
            p = os.path.join(home, rel)
            if os.path.isdir(p):
                config_files = [os.path.join(home, ".zshrc")] if os.path.exists(os.path.join(home, ".zshrc")) else []
                return DetectedFramework(name=name, path=p, config_files=config_files)
    return None


def validate_backup(backup_dir: str, *, logger=None) -> BackupManifest:
    """Load the manifest of an existing backup. Checksums are not re-verified here."""
    manifest = integrity.load_manifest(manifest_path(backup_dir))
    if logger:
        fw = f", framework {manifest.detected_framework.name}" if manifest.detected_framework else ""
        logger.info(f"Validated backup created at {manifest.metadata.created_at}: {len(manifest.files)} files{fw}")
    return manifest


def verify_backup(backup_dir: str) -> List[str]:
    """Relative paths whose backed-up copy no longer matches its recorded checksum (or is missing)."""
    manifest = validate_backup(backup_dir)
    bad: List[str] = []
    for rec in manifest.files:
        p = os.path.join(backup_dir, rec.path)
        if not os.path.lexists(p) or not integrity.verify(rec, p):
            bad.append(rec.path)
    return bad


def create_initial_backup(
    home: str,
    backup_dir: str,
    *,
    framework_detector: Optional[FrameworkDetector] = None,
    shell_version: Optional[Callable[[], str]] = None,
    logger=None,
) -> BackupManifest:
    """
    Capture the user's shell startup files before zprof first touches them.

    Idempotent: when a manifest already exists it is loaded and returned and
    nothing is copied. Symlinks are copied as links, so their records hash
    the link target string.
    """
    if backup_exists(backup_dir):
        if logger:
            logger.info(f"Initial backup already exists at {backup_dir}; skipping")
        return validate_backup(backup_dir, logger=logger)

    try:
        os.makedirs(backup_dir, exist_ok=True)
        os.chmod(backup_dir, 0o700)
    except OSError as e:
        raise from_os_error(e, path=backup_dir, phase="backup", action="create backup directory") from e

    manifest = BackupManifest(
        metadata=BackupMetadata(
            zsh_version=(shell_version or zsh_version)(),
            os=platform.system().lower(),
            zprof_version=__version__,
        )
    )
    detected = (framework_detector or detect_framework)(home)
    if detected is not None:
        manifest.set_framework(detected)
        if logger:
            logger.info(f"Detected {detected.name} framework at {detected.path}")

    for name in SHELL_CONFIG_FILES:
        src = os.path.join(home, name)
        if not os.path.lexists(src):
            if logger:
                logger.debug(f"Skipping {name} (does not exist)")
            continue
        dst = os.path.join(backup_dir, name)
        try:
            shutil.copy2(src, dst, follow_symlinks=False)
        except OSError as e:
            raise from_os_error(e, path=src, phase="backup", action="back up") from e
        manifest.add_file(integrity.record(name, dst))
        if logger:
            logger.info(f"Backed up {name}")

    integrity.save_manifest(manifest, manifest_path(backup_dir))
    if logger:
        logger.info(f"Initial backup complete: {len(manifest.files)} files in {backup_dir}")
    return manifest
