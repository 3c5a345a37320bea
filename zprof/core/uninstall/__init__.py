"""
Uninstall path: read-only precondition gate, full-tree safety snapshot,
restore of the pre-zprof environment and removal of the profiles root.
"""

from zprof.core.uninstall.machine import RestoreOption, UninstallFlow, UninstallState
from zprof.core.uninstall.preconditions import ValidationReport, validate_preconditions

__all__ = ["RestoreOption", "UninstallFlow", "UninstallState", "ValidationReport", "validate_preconditions"]
