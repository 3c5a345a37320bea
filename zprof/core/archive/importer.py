"""
Archive importer.

Extraction happens in a scratch directory under cache/import_temp. Nothing
under profiles/ is touched until the archive has been fully extracted and its
metadata and manifest have both validated. The new profile is assembled in a
staging directory next to its destination and renamed into place; an existing
profile being replaced is backed up first.
"""

from __future__ import annotations

import gzip
import os
import shutil
import tarfile
import tempfile
import zlib
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from zprof.core.archive.models import METADATA_FILE_NAME, SOURCE_FILE_NAME, ArchiveMetadata, SourceInfo
from zprof.core.backup import integrity
from zprof.core.config.io import atomic_write_toml
from zprof.core.config.store import ConfigStore
from zprof.core.errors import (
    ActiveConflictError,
    AlreadyExistsError,
    CorruptArchiveError,
    InvalidError,
    MissingArchiveMetadataError,
    NotFoundError,
    OperationError,
    VerificationError,
    from_os_error,
)
from zprof.core.ops_log import OpsLogger
from zprof.core.paths import ZprofPaths
from zprof.core.profile.manifest import MANIFEST_FILE_NAME, ProfileManifest, load_and_validate
from zprof.core.profile.store import validate_profile_name
from zprof.core.safe_ops.protocol import MutationJournal, Phase, backup_tree, verify_exists


def make_scratch_dir(paths: ZprofPaths, prefix: str = "import_") -> str:
    try:
        os.makedirs(paths.import_temp_dir, exist_ok=True)
        return tempfile.mkdtemp(prefix=prefix, dir=paths.import_temp_dir)
    except OSError as e:
        raise from_os_error(e, path=paths.import_temp_dir, phase=Phase.CHECK.value, action="create scratch directory") from e


def _check_member(m: tarfile.TarInfo) -> None:
    name = m.name.replace("\\", "/")
    if name.startswith("/") or os.path.isabs(name):
        raise CorruptArchiveError(f"Archive contains an absolute path: {m.name}", member=m.name)
    if any(part == ".." for part in name.split("/")):
        raise CorruptArchiveError(f"Archive contains a path outside its root: {m.name}", member=m.name)
    if not (m.isfile() or m.isdir()):
        raise CorruptArchiveError(f"Archive contains an unsupported entry type: {m.name}", member=m.name)


def extract_archive(archive_path: str, dest_dir: str) -> List[str]:
    """
    Unpack a gzip tarball into dest_dir. Anything that is not a readable
    tar.gz, or that holds links, device nodes or escaping paths, is a
    CorruptArchiveError. Returns the member names.
    """
    try:
        with tarfile.open(archive_path, "r:gz") as tf:
            members = tf.getmembers()
            for m in members:
                _check_member(m)
            tf.extractall(dest_dir, members=members, filter="data")
    except (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile) as e:
        raise CorruptArchiveError(
            "Failed to extract archive. Archive may be corrupted; try re-downloading or re-creating it.",
            path=archive_path,
            phase=Phase.CHECK.value,
            error=str(e),
        ) from e
    except OSError as e:
        raise from_os_error(e, path=archive_path, phase=Phase.CHECK.value, action="extract") from e
    return [m.name for m in members]


def read_archive_metadata(extracted_dir: str) -> ArchiveMetadata:
    path = os.path.join(extracted_dir, METADATA_FILE_NAME)
    if not os.path.isfile(path):
        raise MissingArchiveMetadataError(path=path, phase=Phase.CHECK.value)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
        return ArchiveMetadata.model_validate_json(raw)
    except (PydanticValidationError, UnicodeDecodeError) as e:
        raise InvalidError(
            "Failed to parse metadata.json. Archive may be corrupted.",
            code="archive_metadata_invalid",
            path=path,
            phase=Phase.CHECK.value,
            error=str(e),
        ) from e
    except OSError as e:
        raise from_os_error(e, path=path, phase=Phase.CHECK.value, action="read") from e


def list_tree_files(root: str, *, exclude: Sequence[str] = ()) -> List[str]:
    out: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for fn in sorted(filenames):
            abs_path = os.path.join(dirpath, fn)
            rel = os.path.relpath(abs_path, root).replace(os.sep, "/")
            if rel in exclude:
                continue
            out.append(rel)
    return out


def install_profile_tree(
    source_dir: str,
    name: str,
    *,
    files: Sequence[str],
    source: SourceInfo,
    paths: ZprofPaths,
    config: ConfigStore,
    force: bool = False,
    ops: Optional[OpsLogger] = None,
    logger=None,
) -> str:
    """
    Install `files` (paths relative to source_dir) as profile `name`.

    check: name collision / active-profile guard
    backup: existing profile copied to cache/backups (force only)
    operate: staged copy renamed into place, provenance written
    verify: every installed file re-checksummed against its source record
    """
    journal = MutationJournal("profile.import", ops=ops, logger=logger)
    dest = paths.profile_dir(name)

    if os.path.lexists(dest):
        if not force:
            journal.phase(Phase.CHECK, "refused", profile=name, reason="exists")
            raise AlreadyExistsError(
                f"Profile '{name}' already exists. Use force to overwrite or choose another name.",
                path=dest,
                profile=name,
                phase=Phase.CHECK.value,
            )
        if config.active_profile() == name:
            journal.phase(Phase.CHECK, "refused", profile=name, reason="active")
            raise ActiveConflictError(
                f"Cannot replace active profile '{name}'. Switch to another profile first.",
                path=dest,
                profile=name,
                phase=Phase.CHECK.value,
            )
    journal.phase(Phase.CHECK, profile=name, replace=os.path.lexists(dest))

    records = [integrity.record(rel, os.path.join(source_dir, rel)) for rel in files]

    try:
        os.makedirs(paths.profiles_dir, exist_ok=True)
        staging = tempfile.mkdtemp(prefix=f".{name}.importing-", dir=paths.profiles_dir)
    except OSError as e:
        raise from_os_error(e, path=paths.profiles_dir, phase=Phase.OPERATE.value, action="create staging directory") from e

    try:
        try:
            for rel in files:
                dst = os.path.join(staging, rel)
                os.makedirs(os.path.dirname(dst), exist_ok=True)
                shutil.copy2(os.path.join(source_dir, rel), dst)
            atomic_write_toml(os.path.join(staging, SOURCE_FILE_NAME), source.model_dump(exclude_none=True))
            os.chmod(staging, 0o755)
        except OSError as e:
            raise from_os_error(e, path=staging, phase=Phase.OPERATE.value, action="stage profile files") from e

        for rec in records:
            if not integrity.verify(rec, os.path.join(staging, rec.path)):
                raise VerificationError(
                    f"Checksum mismatch after copying {rec.path}",
                    path=os.path.join(staging, rec.path),
                    phase=Phase.VERIFY.value,
                )

        backup_path: Optional[str] = None
        if os.path.lexists(dest):
            backup_path = backup_tree(dest, paths.cache_backups_dir, label=f"profile-{name}")
            journal.phase(Phase.BACKUP, backup=backup_path)
            try:
                shutil.rmtree(dest)
            except OSError as e:
                raise OperationError(
                    f"Failed to remove existing profile '{name}'; its backup is at {backup_path}",
                    path=dest,
                    phase=Phase.OPERATE.value,
                    backup=backup_path,
                    error=str(e),
                ) from e
        else:
            journal.phase(Phase.BACKUP, "skipped", reason="new profile")

        try:
            os.replace(staging, dest)
        except OSError as e:
            raise from_os_error(e, path=dest, phase=Phase.OPERATE.value, action="install profile") from e
        journal.phase(Phase.OPERATE, path=dest, files=len(files))
    finally:
        if os.path.isdir(staging):
            shutil.rmtree(staging, ignore_errors=True)

    verify_exists(os.path.join(dest, MANIFEST_FILE_NAME), what=MANIFEST_FILE_NAME)
    journal.phase(Phase.VERIFY)
    if logger:
        logger.info(f"Installed profile '{name}' at {dest}")
    return dest


def import_profile(
    archive_path: str,
    *,
    paths: ZprofPaths,
    config: ConfigStore,
    name_override: Optional[str] = None,
    force: bool = False,
    ops: Optional[OpsLogger] = None,
    logger=None,
) -> str:
    """
    Install a .zprof archive as a profile and return the final profile name.

    Errors, in the order they are checked: NotFoundError (no archive),
    CorruptArchiveError (not a tar.gz), MissingArchiveMetadataError,
    InvalidError (bad metadata, missing profile.toml), ManifestParseError,
    UnsupportedFrameworkError, InvalidError (bad name), AlreadyExistsError,
    ActiveConflictError.
    """
    if not os.path.isfile(archive_path):
        raise NotFoundError(f"Archive not found: {archive_path}", path=archive_path, phase=Phase.CHECK.value)
    if logger:
        logger.info(f"Importing profile from {archive_path}")

    scratch = make_scratch_dir(paths)
    try:
        extract_archive(archive_path, scratch)
        meta = read_archive_metadata(scratch)
        manifest: ProfileManifest = load_and_validate(scratch)
        name = validate_profile_name(name_override or meta.profile_name)
        if logger:
            logger.info(f"Found profile '{meta.profile_name}' ({manifest.profile.framework}), exported {meta.export_date} by {meta.exported_by}")

        files = list_tree_files(scratch, exclude=(METADATA_FILE_NAME, SOURCE_FILE_NAME))
        source = SourceInfo(source_archive=os.path.abspath(archive_path), exported_by=meta.exported_by)
        install_profile_tree(scratch, name, files=files, source=source, paths=paths, config=config, force=force, ops=ops, logger=logger)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    if logger:
        logger.info(f"Import completed: {name}")
    return name

