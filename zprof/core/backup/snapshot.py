from __future__ import annotations

import os
import tarfile
from dataclasses import dataclass
from typing import List, Optional

from zprof.core.backup.archiver import ProgressCallback, add_dir, add_file, calculate_tree_size, discard_partial, iter_tree, partial_path
from zprof.core.errors import NotFoundError, OperationError, from_os_error


@dataclass(frozen=True)
class SafetySummary:
    backup_path: str
    backup_size: int


def create_final_snapshot(source_dir: str, output_path: str, *, progress: Optional[ProgressCallback] = None, logger=None) -> int:
    """
    Archive the whole source tree into a gzip tarball rooted at the source
    directory's own name, immediately before an irreversible uninstall.

    Symlinks are followed (file content / directory subtree embedded). The
    tarball is written to a .partial sibling and renamed into place, then
    restricted to the owner. Returns the final size in bytes.
    """
    if not os.path.exists(source_dir):
        raise NotFoundError(f"Profiles directory does not exist: {source_dir}", path=source_dir, phase="check")

    parent = os.path.dirname(os.path.abspath(output_path))
    try:
        os.makedirs(parent, exist_ok=True)
    except OSError as e:
        raise from_os_error(e, path=parent, phase="backup", action="create output directory") from e

    tmp = partial_path(output_path)
    skip = (output_path, tmp)
    try:
        total = calculate_tree_size(source_dir, skip_paths=skip)
    except OSError as e:
        raise from_os_error(e, path=source_dir, phase="backup", action="measure") from e

    arc_root = os.path.basename(os.path.normpath(source_dir))
    if not arc_root:
        raise OperationError("Source directory has no name", path=source_dir, phase="backup")

    done = 0
    skipped: List[str] = []
    try:
        with tarfile.open(tmp, "w:gz") as tf:
            if os.path.isfile(source_dir):
                done += add_file(tf, source_dir, arc_root)
                if progress is not None:
                    progress(done, total)
            else:
                add_dir(tf, source_dir, arc_root)
                for entry in iter_tree(source_dir, include_dirs=True, skip_paths=skip, skipped=skipped):
                    arcname = f"{arc_root}/{entry.rel_path}"
                    if entry.is_dir:
                        add_dir(tf, entry.abs_path, arcname)
                        continue
                    done += add_file(tf, entry.abs_path, arcname)
                    if progress is not None:
                        progress(done, total)
        os.chmod(tmp, 0o600)
        os.replace(tmp, output_path)
    except (OSError, tarfile.TarError) as e:
        discard_partial(tmp)
        if isinstance(e, OSError):
            raise from_os_error(e, path=output_path, phase="backup", action="write snapshot") from e
        raise OperationError(f"Failed to create tarball at {output_path}: {e}", path=output_path, phase="backup") from e

    for rel in skipped:
        if logger:
            logger.warning(f"Snapshot skipped unreadable or cyclic entry: {rel}")

    size = int(os.path.getsize(output_path))
    if logger:
        logger.info(f"Safety snapshot created: {output_path} ({size} bytes)")
    return size
