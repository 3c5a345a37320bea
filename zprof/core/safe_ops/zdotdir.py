"""
Environment switch: points ~/.zshenv at a profile directory.

The file is shared with the user. This module owns exactly one block inside it,
delimited by MANAGED_BEGIN / MANAGED_END; every other line is the user's and is
carried over verbatim on each rewrite.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

from zprof.core.errors import NotFoundError, from_os_error
from zprof.core.ops_log import OpsLogger
from zprof.core.paths import ZprofPaths
from zprof.core.safe_ops.protocol import MutationJournal, Phase, backup_file, verify_exists

MANAGED_BEGIN = "# ========== Managed by zprof - DO NOT EDIT THIS SECTION =========="
MANAGED_END = "# ==================================================================="

HISTORY_SETTINGS = (
    "export HISTSIZE=10000",
    "export SAVEHIST=10000",
    "setopt INC_APPEND_HISTORY    # Immediately append to history file",
    "setopt SHARE_HISTORY         # Share history between all sessions",
    "setopt HIST_IGNORE_DUPS      # Don't record duplicates",
)


@dataclass(frozen=True)
class SwitchResult:
    zshenv_path: str
    profile_path: str
    backup_path: Optional[str]


def _is_begin(line: str) -> bool:
    s = line.strip()
    return s.startswith("# ==========") and "Managed by zprof" in s


def _is_end(line: str) -> bool:
    s = line.strip()
    return s.startswith("# ====") and "Managed by zprof" not in s


def render_managed_section(profile_path: str, history_file: str) -> str:
    lines: List[str] = [
        MANAGED_BEGIN,
        f'export ZDOTDIR="{profile_path}"',
        "# Shared command history across all profiles",
        f'export HISTFILE="{history_file}"',
        *HISTORY_SETTINGS,
        MANAGED_END,
    ]
    return "\n".join(lines) + "\n"


def strip_managed_section(content: str) -> str:
    """
    Remove every managed block and the single blank separator line written
    after it. An unterminated block swallows the rest of the file.
    """
    out: List[str] = []
    in_section = False
    drop_separator = False
    for line in content.splitlines(keepends=True):
        if in_section:
            if _is_end(line):
                in_section = False
                drop_separator = True
            continue
        if _is_begin(line):
            in_section = True
            continue
        if drop_separator:
            drop_separator = False
            if line in ("\n", "\r\n"):
                continue
        out.append(line)
    return "".join(out)


def compose_zshenv(existing: str, profile_path: str, history_file: str) -> str:
    section = render_managed_section(profile_path, history_file)
    user_content = strip_managed_section(existing)
    if not user_content.strip():
        return section
    return f"{section}\n{user_content}"


def has_managed_section(content: str) -> bool:
    return any(_is_begin(line) for line in content.splitlines())


def set_active_profile(profile_path: str, *, paths: ZprofPaths, ops: Optional[OpsLogger] = None, logger=None) -> SwitchResult:
    """
    check -> backup -> operate -> verify on ~/.zshenv.

    The existing file is copied to cache/backups before anything is written,
    and the new content goes out in a single write.
    """
    journal = MutationJournal("env.switch", ops=ops, logger=logger)
    zshenv = paths.zshenv

    if not os.path.isdir(profile_path):
        journal.phase(Phase.CHECK, "failed", profile_path=profile_path)
        raise NotFoundError(f"Profile directory does not exist: {profile_path}", path=profile_path, phase=Phase.CHECK.value)
    journal.phase(Phase.CHECK, profile_path=profile_path)

    backup_path: Optional[str] = None
    existing = ""
    if os.path.lexists(zshenv):
        backup_path = backup_file(zshenv, paths.cache_backups_dir, label=".zshenv")
        journal.phase(Phase.BACKUP, backup=backup_path)
        try:
            with open(zshenv, "r", encoding="utf-8") as f:
                existing = f.read()
        except OSError as e:
            raise from_os_error(e, path=zshenv, phase=Phase.OPERATE.value, action="read") from e
    else:
        journal.phase(Phase.BACKUP, "skipped", reason="no existing .zshenv")

    content = compose_zshenv(existing, profile_path, paths.history_file)
    try:
        with open(zshenv, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        journal.phase(Phase.OPERATE, "failed", error=str(e))
        raise from_os_error(e, path=zshenv, phase=Phase.OPERATE.value, action="write") from e
    journal.phase(Phase.OPERATE, bytes=len(content.encode("utf-8")))

    verify_exists(zshenv, what=".zshenv")
    journal.phase(Phase.VERIFY)

    if logger:
        logger.info(f"ZDOTDIR set to {profile_path}" + (f" (previous .zshenv backed up to {backup_path})" if backup_path else ""))
    return SwitchResult(zshenv_path=zshenv, profile_path=profile_path, backup_path=backup_path)


def remove_managed_section(*, paths: ZprofPaths, backup_dir: Optional[str] = None, logger=None) -> Optional[str]:
    """
    Strip the managed block from ~/.zshenv, deleting the file only when nothing
    of the user's remains. Returns "removed", "stripped" or None (nothing to do).
    """
    zshenv = paths.zshenv
    if not os.path.isfile(zshenv):
        return None
    with open(zshenv, "r", encoding="utf-8") as f:
        content = f.read()
    if not has_managed_section(content):
        if logger:
            logger.info("Preserved .zshenv (no zprof section)")
        return None
    if backup_dir is not None:
        backup_file(zshenv, backup_dir, label=".zshenv")
    remaining = strip_managed_section(content)
    if not remaining.strip():
        os.remove(zshenv)
        return "removed"
    with open(zshenv, "w", encoding="utf-8") as f:
        f.write(remaining)
    return "stripped"
