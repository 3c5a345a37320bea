from __future__ import annotations

import io
import os
import stat
import tarfile
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class TreeEntry:
    abs_path: str
    rel_path: str
    is_dir: bool
    size: int = 0


def iter_tree(
    root: str,
    *,
    exclude: Optional[Callable[[str], bool]] = None,
    include_dirs: bool = False,
    skip_paths: Tuple[str, ...] = (),
    skipped: Optional[List[str]] = None,
) -> Iterator[TreeEntry]:
    """
    Walk root depth-first in sorted order, following symlinks.

    A link to a file is yielded as a file under the link's own relative path;
    a link to a directory is walked as if it were a directory at that path.
    Links that point back at an ancestor, dangling links and special files are
    reported through `skipped` instead of being yielded.
    """
    skip_real = {os.path.realpath(p) for p in skip_paths}

    def walk(abs_dir: str, rel_dir: str, ancestors: Tuple[str, ...]) -> Iterator[TreeEntry]:
        for name in sorted(os.listdir(abs_dir)):
            p = os.path.join(abs_dir, name)
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if exclude is not None and exclude(rel):
                continue
            if os.path.realpath(p) in skip_real:
                continue
            if os.path.isdir(p):
                real = os.path.realpath(p)
                if real in ancestors:
                    if skipped is not None:
                        skipped.append(rel)
                    continue
                if include_dirs:
                    yield TreeEntry(abs_path=p, rel_path=rel, is_dir=True)
                yield from walk(p, rel, ancestors + (real,))
            elif os.path.isfile(p):
                yield TreeEntry(abs_path=p, rel_path=rel, is_dir=False, size=int(os.path.getsize(p)))
            elif skipped is not None:
                skipped.append(rel)

    yield from walk(root, "", (os.path.realpath(root),))


def calculate_tree_size(root: str, *, exclude: Optional[Callable[[str], bool]] = None, skip_paths: Tuple[str, ...] = ()) -> int:
    if os.path.isfile(root):
        return int(os.path.getsize(root))
    return sum(e.size for e in iter_tree(root, exclude=exclude, skip_paths=skip_paths) if not e.is_dir)


def add_file(tf: tarfile.TarFile, abs_path: str, arcname: str) -> int:
    """Append the content behind abs_path (links dereferenced). Returns bytes written."""
    with open(abs_path, "rb") as f:
        ti = tf.gettarinfo(arcname=arcname, fileobj=f)
        ti.uname = ""
        ti.gname = ""
        tf.addfile(ti, f)
    return int(ti.size)


def add_dir(tf: tarfile.TarFile, abs_path: str, arcname: str) -> None:
    st = os.stat(abs_path)
    ti = tarfile.TarInfo(arcname)
    ti.type = tarfile.DIRTYPE
    ti.mode = stat.S_IMODE(st.st_mode)
    ti.mtime = int(st.st_mtime)
    tf.addfile(ti)


def add_bytes(tf: tarfile.TarFile, arcname: str, data: bytes, *, mode: int = 0o644) -> None:
    ti = tarfile.TarInfo(arcname)
    ti.size = len(data)
    ti.mode = mode
    ti.mtime = int(time.time())
    tf.addfile(ti, io.BytesIO(data))


def partial_path(output_path: str) -> str:
    return output_path + ".partial"


def list_members(archive_path: str) -> List[str]:
    with tarfile.open(archive_path, "r:gz") as tf:
        return tf.getnames()


def read_member(archive_path: str, member: str) -> bytes:
    with tarfile.open(archive_path, "r:gz") as tf:
        f = tf.extractfile(member)
        if f is None:
            raise KeyError(member)
        with f:
            return f.read()


def discard_partial(path: str) -> None:
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError:
        pass
