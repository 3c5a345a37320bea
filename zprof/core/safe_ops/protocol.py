from __future__ import annotations

import os
import shutil
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from zprof.core.errors import OperationError, VerificationError, from_os_error
from zprof.core.ops_log import OpsLogger


class Phase(str, Enum):
    CHECK = "check"
    BACKUP = "backup"
    OPERATE = "operate"
    VERIFY = "verify"


BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def backup_timestamp(now: Optional[float] = None) -> str:
    return time.strftime(BACKUP_TIMESTAMP_FORMAT, time.localtime(now if now is not None else time.time()))


def unique_backup_path(backup_dir: str, stem: str, *, suffix: str = "", sep: str = ".", now: Optional[float] = None) -> str:
    """
    <backup_dir>/<stem><sep><YYYYMMDD-HHMMSS><suffix>, with -1, -2, ... appended
    when an earlier backup in the same second already holds the name.
    """
    ts = backup_timestamp(now)
    candidate = os.path.join(backup_dir, f"{stem}{sep}{ts}{suffix}")
    n = 0
    while os.path.lexists(candidate):
        n += 1
        candidate = os.path.join(backup_dir, f"{stem}{sep}{ts}-{n}{suffix}")
    return candidate


def backup_file(src: str, backup_dir: str, *, label: str) -> str:
    """Copy (never move) a single file into backup_dir. Returns the backup path."""
    try:
        os.makedirs(backup_dir, exist_ok=True)
        dst = unique_backup_path(backup_dir, f"{label}.backup")
        shutil.copy2(src, dst)
    except OSError as e:
        raise from_os_error(e, path=src, phase=Phase.BACKUP.value, action="back up") from e
    return dst


def backup_tree(src: str, backup_dir: str, *, label: str) -> str:
    """Copy a whole directory tree into backup_dir, symlinks kept as links."""
    try:
        os.makedirs(backup_dir, exist_ok=True)
        dst = unique_backup_path(backup_dir, f"{label}.backup")
        shutil.copytree(src, dst, symlinks=True)
    except shutil.Error as e:
        # copytree collects per-file failures into one shutil.Error
        raise OperationError(f"Failed to back up {src}: {e}", path=src, phase=Phase.BACKUP.value) from e
    except OSError as e:
        raise from_os_error(e, path=src, phase=Phase.BACKUP.value, action="back up") from e
    return dst


def verify_exists(path: str, *, what: str = "file") -> None:
    if not os.path.exists(path):
        raise VerificationError(f"Failed to verify {what} at {path}: it does not exist after writing", path=path, phase=Phase.VERIFY.value)


def verify_absent(path: str, *, what: str = "directory") -> None:
    if os.path.lexists(path):
        raise VerificationError(f"Failed to verify removal of {what} at {path}: it still exists", path=path, phase=Phase.VERIFY.value)


class MutationJournal:
    """
    Records each phase of one safe mutation to the ops log (when configured)
    and to the logger. Purely observational: it never changes control flow.
    """

    def __init__(self, operation: str, *, ops: Optional[OpsLogger] = None, logger=None):
        self.operation = operation
        self.op_id = uuid.uuid4().hex
        self.ops = ops
        self.logger = logger

    def phase(self, phase: Phase, outcome: str = "ok", **details: Any) -> None:
        d: Dict[str, Any] = dict(details)
        if self.ops is not None:
            self.ops.log(op_id=self.op_id, event=f"{self.operation}.{phase.value}", outcome=outcome, details=d)
        if self.logger:
            extra = " ".join(f"{k}={v}" for k, v in d.items())
            self.logger.debug(f"[{self.operation}] {phase.value}: {outcome} {extra}".rstrip())
