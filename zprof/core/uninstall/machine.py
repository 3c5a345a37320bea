from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from zprof.core.backup.archiver import ProgressCallback
from zprof.core.backup.pre_zprof import backup_exists
from zprof.core.backup.restorer import ConflictResolver, RestoreReport, restore_initial_backup
from zprof.core.backup.snapshot import SafetySummary, create_final_snapshot
from zprof.core.errors import InvalidError, NotFoundError, StateTransitionError, ZprofError, from_os_error
from zprof.core.ops_log import OpsLogger
from zprof.core.paths import ZprofPaths
from zprof.core.profile.store import validate_profile_name
from zprof.core.safe_ops.protocol import MutationJournal, Phase, backup_file, unique_backup_path
from zprof.core.uninstall.cleanup import CleanupReport, cleanup_all, retained_backup_dir
from zprof.core.uninstall.preconditions import ShellProbe, ValidationReport, validate_preconditions

PROMOTED_FILES = (".zshrc", ".zshenv", ".zprofile", ".zlogin", ".zlogout", ".zsh_history")


class UninstallState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    SNAPSHOT_PENDING = "snapshot_pending"
    ABORTED = "aborted"
    SNAPSHOT_TAKEN = "snapshot_taken"
    DESTROYING = "destroying"
    DONE = "done"


S = UninstallState

TRANSITIONS: Dict[UninstallState, FrozenSet[UninstallState]] = {
    S.IDLE: frozenset({S.VALIDATING}),
    S.VALIDATING: frozenset({S.BLOCKED, S.SNAPSHOT_PENDING}),
    S.BLOCKED: frozenset({S.VALIDATING}),
    S.SNAPSHOT_PENDING: frozenset({S.ABORTED, S.SNAPSHOT_TAKEN}),
    S.ABORTED: frozenset({S.VALIDATING, S.SNAPSHOT_PENDING}),
    S.SNAPSHOT_TAKEN: frozenset({S.VALIDATING, S.SNAPSHOT_PENDING, S.DESTROYING}),
    S.DESTROYING: frozenset({S.DONE}),
    S.DONE: frozenset(),
}


class RestoreOption(str, Enum):
    ORIGINAL = "original"
    PROMOTE = "promote"
    CLEAN = "clean"


@dataclass
class UninstallResult:
    option: RestoreOption
    snapshot: SafetySummary
    restore: Optional[RestoreReport] = None
    promoted: List[str] = field(default_factory=list)
    cleanup: CleanupReport = field(default_factory=CleanupReport)


class UninstallFlow:
    """
    IDLE -> VALIDATING -> (BLOCKED | SNAPSHOT_PENDING) -> (ABORTED | SNAPSHOT_TAKEN)
    -> DESTROYING -> DONE

    Validation and snapshotting can be repeated freely. destroy() only runs
    from SNAPSHOT_TAKEN, and once DESTROYING is entered the only way out is DONE.
    """

    def __init__(
        self,
        *,
        paths: ZprofPaths,
        keep_backups: bool = False,
        shell_probe: Optional[ShellProbe] = None,
        progress: Optional[ProgressCallback] = None,
        ops: Optional[OpsLogger] = None,
        logger=None,
    ):
        self.paths = paths
        self.keep_backups = bool(keep_backups)
        self.shell_probe = shell_probe
        self.progress = progress
        self.ops = ops
        self.logger = logger
        self._state = UninstallState.IDLE
        self.report: Optional[ValidationReport] = None
        self.snapshot: Optional[SafetySummary] = None
        self.history: List[UninstallState] = [UninstallState.IDLE]
        self.journal = MutationJournal("uninstall", ops=ops, logger=logger)

    @property
    def state(self) -> UninstallState:
        return self._state

    def _transition(self, to: UninstallState) -> None:
        if to not in TRANSITIONS[self._state]:
            raise StateTransitionError(
                f"Illegal uninstall transition {self._state.value} -> {to.value}",
                from_state=self._state.value,
                to_state=to.value,
            )
        if self.logger:
            self.logger.debug(f"[uninstall] {self._state.value} -> {to.value}")
        self._state = to
        self.history.append(to)

    def validate(self) -> ValidationReport:
        self._transition(UninstallState.VALIDATING)
        report = validate_preconditions(self.paths, shell_probe=self.shell_probe, logger=self.logger)
        self.report = report
        self.journal.phase(Phase.CHECK, "ok" if report.is_valid() else "blocked", issues=len(report.issues()), warnings=len(report.warnings))
        if report.is_valid():
            self._transition(UninstallState.SNAPSHOT_PENDING)
        else:
            self._transition(UninstallState.BLOCKED)
            if self.logger:
                self.logger.warning("Uninstall blocked: " + "; ".join(report.issues() or ["no pre-zprof backup"]))
        for w in report.warnings:
            if self.logger:
                self.logger.warning(w)
        return report

    def snapshot_path(self) -> str:
        backup_dir = retained_backup_dir(self.paths, self.keep_backups)
        stem = "final-snapshot" if self.keep_backups else ".zsh-profiles-final-snapshot"
        return unique_backup_path(backup_dir, stem, suffix=".tar.gz", sep="-")

    def take_snapshot(self) -> SafetySummary:
        """Archive the whole root. Failure moves to ABORTED and re-raises; nothing is destroyed."""
        if self._state in (UninstallState.ABORTED, UninstallState.SNAPSHOT_TAKEN):
            self._transition(UninstallState.SNAPSHOT_PENDING)
        if self._state != UninstallState.SNAPSHOT_PENDING:
            raise StateTransitionError(
                f"Cannot snapshot from state {self._state.value}",
                from_state=self._state.value,
                to_state=UninstallState.SNAPSHOT_TAKEN.value,
            )
        out = self.snapshot_path()
        try:
            size = create_final_snapshot(self.paths.root, out, progress=self.progress, logger=self.logger)
        except ZprofError as e:
            self.journal.phase(Phase.BACKUP, "failed", error=e.code)
            self._transition(UninstallState.ABORTED)
            raise
        self.snapshot = SafetySummary(backup_path=out, backup_size=size)
        self.journal.phase(Phase.BACKUP, snapshot=out, bytes=size)
        self._transition(UninstallState.SNAPSHOT_TAKEN)
        return self.snapshot

    def _check_option(self, option: RestoreOption, profile: Optional[str]) -> Optional[str]:
        if option == RestoreOption.ORIGINAL and not backup_exists(self.paths.pre_zprof_backup_dir):
            raise NotFoundError(
                f"Cannot restore original: pre-zprof backup not found at {self.paths.pre_zprof_backup_dir}",
                path=self.paths.pre_zprof_backup_dir,
                phase="check",
            )
        if option == RestoreOption.PROMOTE:
            if not profile:
                raise InvalidError("A profile name is required to promote", code="invalid_profile_name")
            name = validate_profile_name(profile)
            pdir = self.paths.profile_dir(name)
            if not os.path.isdir(pdir):
                raise NotFoundError(f"Profile '{name}' not found", path=pdir, profile=name, phase="check")
            return pdir
        return None

    def promote_profile(self, profile_dir: str) -> List[str]:
        """Copy a profile's shell files into home, each overwritten file backed up first."""
        backup_dir = retained_backup_dir(self.paths, self.keep_backups)
        copied: List[str] = []
        for name in PROMOTED_FILES:
            src = os.path.join(profile_dir, name)
            if not os.path.isfile(src):
                continue
            dest = os.path.join(self.paths.home, name)
            if os.path.lexists(dest):
                saved = backup_file(dest, backup_dir, label=name)
                if self.logger:
                    self.logger.info(f"Backed up {dest} to {saved}")
            try:
                if os.path.islink(dest):
                    os.remove(dest)
                shutil.copy2(src, dest)
            except OSError as e:
                raise from_os_error(e, path=dest, phase="operate", action="promote") from e
            copied.append(name)
        if not copied and self.logger:
            self.logger.warning(f"No shell configuration files found in {profile_dir}")
        return copied

    def destroy(
        self,
        option: RestoreOption,
        *,
        profile: Optional[str] = None,
        resolve: Optional[ConflictResolver] = None,
    ) -> UninstallResult:
        if self._state != UninstallState.SNAPSHOT_TAKEN or self.snapshot is None:
            raise StateTransitionError(
                f"Cannot destroy from state {self._state.value}; a safety snapshot is required first",
                from_state=self._state.value,
                to_state=UninstallState.DESTROYING.value,
            )
        option = RestoreOption(option)
        profile_dir = self._check_option(option, profile)

        self._transition(UninstallState.DESTROYING)
        self.journal.phase(Phase.OPERATE, "started", option=option.value)
        result = UninstallResult(option=option, snapshot=self.snapshot)
        if option == RestoreOption.ORIGINAL:
            result.restore = restore_initial_backup(self.paths.home, self.paths.pre_zprof_backup_dir, resolve=resolve, logger=self.logger)
        elif option == RestoreOption.PROMOTE and profile_dir is not None:
            result.promoted = self.promote_profile(profile_dir)

        result.cleanup = cleanup_all(self.paths, keep_backups=self.keep_backups, logger=self.logger)
        self._transition(UninstallState.DONE)
        if self.logger:
            self.logger.info(f"Uninstall complete ({option.value}); safety snapshot at {self.snapshot.backup_path}")
        return result

    def run(
        self,
        option: RestoreOption,
        *,
        profile: Optional[str] = None,
        resolve: Optional[ConflictResolver] = None,
    ) -> UninstallResult:
        report = self.validate()
        if self._state == UninstallState.BLOCKED:
            issues = report.issues() or ["No pre-zprof backup exists"]
            raise InvalidError(
                "Cannot proceed with uninstall: " + "; ".join(issues),
                code="uninstall_blocked",
                issues=issues,
            )
        self.take_snapshot()
        return self.destroy(option, profile=profile, resolve=resolve)
