from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from zprof.core.backup import integrity
from zprof.core.backup.pre_zprof import validate_backup
from zprof.core.errors import OperationError, ZprofError

CONFLICT_SUFFIX = ".zprofbackup"


class ConflictResolution(str, Enum):
    OVERWRITE = "overwrite"
    BACKUP = "backup"
    SKIP = "skip"


ConflictResolver = Callable[[str], ConflictResolution]


def backup_on_conflict(path: str) -> ConflictResolution:
    return ConflictResolution.BACKUP


@dataclass
class RestoreReport:
    restored: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    conflicts: List[Tuple[str, str]] = field(default_factory=list)
    checksum_mismatches: List[str] = field(default_factory=list)


def _copy_entry(src: str, dst: str) -> None:
    if os.path.lexists(dst) and (os.path.islink(dst) or os.path.islink(src)):
        os.remove(dst)
    shutil.copy2(src, dst, follow_symlinks=False)


def rollback(report: RestoreReport) -> List[str]:
    """
    Undo a partial restore: remove restored files, then move every conflict
    copy back over its original path. Returns the errors encountered.
    """
    errors: List[str] = []
    for path in report.restored:
        try:
            if os.path.lexists(path):
                os.remove(path)
        except OSError as e:
            errors.append(f"Failed to remove {path}: {e}")
    for original, saved in report.conflicts:
        try:
            if os.path.lexists(saved):
                os.replace(saved, original)
        except OSError as e:
            errors.append(f"Failed to restore {original} from {saved}: {e}")
    return errors


def restore_initial_backup(
    home: str,
    backup_dir: str,
    *,
    resolve: Optional[ConflictResolver] = None,
    logger=None,
) -> RestoreReport:
    """
    Put the files captured by create_initial_backup back into home.

    An existing file is handled by `resolve` (default: copy it to
    <file>.zprofbackup first). Permissions are restored from the manifest
    and each restored file is checked against its recorded checksum; a
    mismatch is reported, not fatal. Any failure rolls back what was done.
    """
    manifest = validate_backup(backup_dir, logger=logger)
    resolve = resolve or backup_on_conflict
    report = RestoreReport()

    try:
        for rec in manifest.files:
            src = os.path.join(backup_dir, rec.path)
            dst = os.path.join(home, rec.path)
            if not os.path.lexists(src):
                if logger:
                    logger.warning(f"Backup file missing, skipping: {rec.path}")
                report.missing.append(rec.path)
                continue

            if os.path.lexists(dst):
                choice = resolve(dst)
                if choice == ConflictResolution.SKIP:
                    report.skipped.append(rec.path)
                    continue
                if choice == ConflictResolution.BACKUP:
                    saved = dst + CONFLICT_SUFFIX
                    shutil.copy2(dst, saved, follow_symlinks=False)
                    report.conflicts.append((dst, saved))
                    if logger:
                        logger.info(f"Backed up existing {dst} to {saved}")

            _copy_entry(src, dst)
            report.restored.append(dst)
            if not rec.is_symlink:
                os.chmod(dst, rec.permissions)

            if not integrity.verify(rec, dst):
                report.checksum_mismatches.append(rec.path)
                if logger:
                    logger.warning(f"Checksum mismatch for {rec.path} (file may be corrupted)")
            elif logger:
                logger.info(f"Restored {rec.path}")
    except (OSError, ZprofError) as e:
        errors = rollback(report)
        if errors:
            raise OperationError(
                f"Restoration failed and automatic rollback failed ({'; '.join(errors)}). "
                f"Your initial backup is intact at {backup_dir}; conflict copies end in {CONFLICT_SUFFIX}.",
                path=backup_dir,
                phase="operate",
                error=str(e),
            ) from e
        raise OperationError(
            f"Restoration failed but was rolled back: {e}. Your initial backup is intact at {backup_dir}.",
            path=backup_dir,
            phase="operate",
            error=str(e),
        ) from e

    return report
