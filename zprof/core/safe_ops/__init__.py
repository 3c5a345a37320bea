"""
Safe-mutation protocol: check -> backup -> operate -> verify.

Applied to every operation that overwrites or removes a user-owned path
(~/.zshenv, a profile directory). Backups are copies, never moves.
"""

from zprof.core.safe_ops.protocol import MutationJournal, Phase, backup_file, backup_tree

__all__ = ["MutationJournal", "Phase", "backup_file", "backup_tree"]
