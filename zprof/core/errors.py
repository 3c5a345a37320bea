from __future__ import annotations

import errno
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class ZprofError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return f"{self.code}: {self.user_message}"

    @property
    def phase(self) -> Optional[str]:
        p = (self.context or {}).get("phase")
        return str(p) if p is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": {k: str(v) if not isinstance(v, (int, float, bool)) else v for k, v in (self.context or {}).items()},
        }


# ---- Core types ----
class NotFoundError(ZprofError):
    def __init__(self, user_message: str = "Not found.", **ctx: Any):
        super().__init__("not_found", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class AlreadyExistsError(ZprofError):
    def __init__(self, user_message: str = "Already exists.", **ctx: Any):
        super().__init__("already_exists", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class InvalidError(ZprofError):
    def __init__(self, user_message: str = "Invalid input.", *, code: str = "invalid", **ctx: Any):
        super().__init__(code, user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class MissingArchiveMetadataError(InvalidError):
    def __init__(self, user_message: str = "Invalid archive: metadata.json not found. This may not be a valid .zprof archive.", **ctx: Any):
        super().__init__(user_message, code="archive_metadata_missing", **ctx)


class ManifestParseError(InvalidError):
    def __init__(self, user_message: str = "Failed to parse profile manifest.", **ctx: Any):
        super().__init__(user_message, code="manifest_invalid", **ctx)


class UnsupportedFrameworkError(InvalidError):
    def __init__(self, user_message: str = "Unsupported framework.", **ctx: Any):
        super().__init__(user_message, code="unsupported_framework", **ctx)


class CorruptArchiveError(ZprofError):
    def __init__(self, user_message: str = "Failed to extract archive. Archive may be corrupted.", **ctx: Any):
        super().__init__("corrupt_archive", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class PermissionDeniedError(ZprofError):
    def __init__(self, user_message: str = "Permission denied.", **ctx: Any):
        super().__init__("permission_denied", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class ActiveConflictError(ZprofError):
    def __init__(self, user_message: str = "Operation not allowed on the active profile.", **ctx: Any):
        super().__init__("active_conflict", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class OperationError(ZprofError):
    def __init__(self, user_message: str = "Filesystem operation failed.", **ctx: Any):
        super().__init__("operate_failed", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class VerificationError(ZprofError):
    def __init__(self, user_message: str = "Post-write verification failed.", **ctx: Any):
        super().__init__("verify_failed", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class StateTransitionError(ZprofError):
    def __init__(self, user_message: str = "Internal state error.", **ctx: Any):
        super().__init__("state_transition_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


def from_os_error(exc: OSError, *, path: str, phase: str, action: str = "access") -> ZprofError:
    """
    Map an OSError onto the taxonomy. PermissionError and ENOENT get their own
    classes; anything else is an OperationError carrying the phase.
    """
    if isinstance(exc, PermissionError) or exc.errno in (errno.EACCES, errno.EPERM, errno.EROFS):
        return PermissionDeniedError(f"Permission denied: cannot {action} {path}", path=path, phase=phase, error=str(exc))
    if isinstance(exc, FileNotFoundError) or exc.errno == errno.ENOENT:
        return NotFoundError(f"Path not found: {path}", path=path, phase=phase, error=str(exc))
    return OperationError(f"Failed to {action} {path}: {exc}", path=path, phase=phase, error=str(exc))
