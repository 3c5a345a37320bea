from __future__ import annotations

import os
import tarfile
from typing import List, Optional, Tuple

from zprof import __version__
from zprof.core.archive.models import ARCHIVE_EXTENSION, METADATA_FILE_NAME, SOURCE_FILE_NAME, ArchiveMetadata, ExportResult
from zprof.core.backup.archiver import ProgressCallback, TreeEntry, add_bytes, add_file, discard_partial, iter_tree, list_members, partial_path
from zprof.core.errors import AlreadyExistsError, NotFoundError, OperationError, from_os_error
from zprof.core.paths import ZprofPaths
from zprof.core.profile.manifest import FRAMEWORK_INSTALL_DIRS, MANIFEST_FILE_NAME, load_and_validate
from zprof.core.profile.store import validate_profile_name

LARGE_ARCHIVE_BYTES = 10 * 1024 * 1024

EXCLUDED_SUFFIXES = (".tmp", ".cache", ".log", ".swp", ".swo", "~")


def should_exclude(relative_path: str) -> bool:
    """
    True for paths that never go into an archive: anything under a vendored
    framework directory, temp/cache/log/editor files and the local provenance
    marker. Pure function of the relative path.
    """
    parts = [p for p in str(relative_path).replace("\\", "/").split("/") if p]
    if not parts:
        return False
    if any(part in FRAMEWORK_INSTALL_DIRS for part in parts):
        return True
    name = parts[-1]
    if name == SOURCE_FILE_NAME:
        return True
    return name.endswith(EXCLUDED_SUFFIXES)


def format_file_size(num_bytes: int) -> str:
    kb = 1024
    mb = kb * 1024
    if num_bytes >= mb:
        return f"{num_bytes / mb:.2f} MB"
    if num_bytes >= kb:
        return f"{num_bytes / kb:.2f} KB"
    return f"{num_bytes} bytes"


def count_archive_entries(archive_path: str) -> int:
    return len(list_members(archive_path))


def collect_files(profile_dir: str, *, skip_paths: Tuple[str, ...] = (), logger=None) -> List[TreeEntry]:
    skipped: List[str] = []
    entries = [
        e
        for e in iter_tree(profile_dir, exclude=should_exclude, skip_paths=skip_paths, skipped=skipped)
        if e.rel_path != METADATA_FILE_NAME
    ]
    if logger:
        for rel in skipped:
            logger.warning(f"Export skipped unreadable or cyclic entry: {rel}")
    # profile.toml first after metadata.json; the rest in walk order
    entries.sort(key=lambda e: (e.rel_path != MANIFEST_FILE_NAME,))
    return entries


def export_profile(
    profile_name: str,
    *,
    paths: ZprofPaths,
    destination: Optional[str] = None,
    force: bool = False,
    progress: Optional[ProgressCallback] = None,
    logger=None,
) -> ExportResult:
    """
    Pack a profile directory into a portable .zprof archive (tar.gz).

    Layout: metadata.json, profile.toml and the remaining profile files, all
    relative to the archive root. Symlinks are embedded by content. The archive
    is built under a .partial name and renamed once complete.
    """
    name = validate_profile_name(profile_name)
    profile_dir = paths.profile_dir(name)
    if not os.path.isdir(profile_dir):
        raise NotFoundError(f"Profile '{name}' not found", path=profile_dir, profile=name, phase="check")

    manifest = load_and_validate(profile_dir)

    out = os.path.abspath(destination or os.path.join(os.getcwd(), f"{name}{ARCHIVE_EXTENSION}"))
    if os.path.exists(out) and not force:
        raise AlreadyExistsError(
            f"Archive already exists: {out}. Use force to overwrite.",
            path=out,
            phase="check",
        )

    meta = ArchiveMetadata(
        profile_name=name,
        framework=manifest.profile.framework,
        zprof_version=__version__,
    )

    tmp = partial_path(out)
    try:
        entries = collect_files(profile_dir, skip_paths=(out, tmp), logger=logger)
    except OSError as e:
        raise from_os_error(e, path=profile_dir, phase="check", action="read profile") from e
    if not entries and logger:
        logger.warning(f"Profile directory {profile_dir} is empty; creating archive anyway")
    total = sum(e.size for e in entries)

    done = 0
    try:
        os.makedirs(os.path.dirname(out), exist_ok=True)
        with tarfile.open(tmp, "w:gz") as tf:
            add_bytes(tf, METADATA_FILE_NAME, meta.model_dump_json(indent=2).encode("utf-8"))
            for entry in entries:
                done += add_file(tf, entry.abs_path, entry.rel_path)
                if logger:
                    logger.debug(f"Added to archive: {entry.rel_path}")
                if progress is not None:
                    progress(done, total)
        os.replace(tmp, out)
    except OSError as e:
        discard_partial(tmp)
        raise from_os_error(e, path=out, phase="operate", action="write archive") from e
    except tarfile.TarError as e:
        discard_partial(tmp)
        raise OperationError(f"Failed to write archive {out}: {e}", path=out, phase="operate") from e

    size = int(os.path.getsize(out))
    if size > LARGE_ARCHIVE_BYTES and logger:
        logger.warning(f"Archive is larger than expected: {format_file_size(size)}")
    result = ExportResult(archive_path=out, size_bytes=size, entry_count=count_archive_entries(out))
    if logger:
        logger.info(f"Exported profile '{name}' to {out} ({format_file_size(size)}, {result.entry_count} entries)")
    return result
