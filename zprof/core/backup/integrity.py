from __future__ import annotations

import os
import stat

from pydantic import ValidationError as PydanticValidationError

from zprof.core.backup.hasher import sha256_file, sha256_text
from zprof.core.backup.models import BackupManifest, FileRecord
from zprof.core.config.io import atomic_write_toml, read_toml_file
from zprof.core.errors import InvalidError, NotFoundError, from_os_error

MANIFEST_FILE_NAME = "backup-manifest.toml"


def record(relative_path: str, absolute_path: str) -> FileRecord:
    """
    Build a FileRecord from the live filesystem.

    Symlinks are not followed: their checksum covers the UTF-8 bytes of the
    link target string. Regular files are hashed in fixed-size chunks.
    """
    try:
        st = os.lstat(absolute_path)
    except OSError as e:
        raise from_os_error(e, path=absolute_path, phase="record", action="stat") from e

    is_symlink = stat.S_ISLNK(st.st_mode)
    target = None
    try:
        if is_symlink:
            target = os.readlink(absolute_path)
            checksum = sha256_text(target)
        else:
            checksum = sha256_file(absolute_path)
    except OSError as e:
        raise from_os_error(e, path=absolute_path, phase="record", action="read") from e

    return FileRecord(
        path=str(relative_path),
        size=int(st.st_size),
        checksum=checksum,
        permissions=stat.S_IMODE(st.st_mode),
        is_symlink=is_symlink,
        symlink_target=target,
    )


def verify(rec: FileRecord, absolute_path: str) -> bool:
    """Re-record the file and compare checksums only (size and mode are ignored)."""
    current = record(rec.path, absolute_path)
    return current.checksum == rec.checksum


def save_manifest(manifest: BackupManifest, path: str) -> None:
    try:
        atomic_write_toml(path, manifest.model_dump(exclude_none=True), mode=0o600)
    except OSError as e:
        raise from_os_error(e, path=path, phase="operate", action="write backup manifest") from e


def load_manifest(path: str) -> BackupManifest:
    rr = read_toml_file(path)
    if not rr.ok:
        if rr.error == "missing":
            raise NotFoundError(f"Backup manifest not found at {path}", path=path)
        raise InvalidError(f"Failed to parse backup manifest at {path}", code="backup_manifest_invalid", path=path, error=rr.error)
    try:
        return BackupManifest.model_validate(rr.data)
    except PydanticValidationError as e:
        raise InvalidError(f"Invalid backup manifest at {path}", code="backup_manifest_invalid", path=path, error=str(e)) from e
