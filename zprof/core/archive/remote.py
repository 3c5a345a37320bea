from __future__ import annotations

import os
import shutil
import subprocess
from typing import Callable, List, Optional, Tuple

from zprof.core.archive.importer import install_profile_tree, make_scratch_dir
from zprof.core.archive.models import SourceInfo
from zprof.core.config.store import ConfigStore
from zprof.core.errors import InvalidError, OperationError, from_os_error
from zprof.core.ops_log import OpsLogger
from zprof.core.paths import ZprofPaths
from zprof.core.profile.manifest import MANIFEST_FILE_NAME, load_manifest_from_path
from zprof.core.profile.store import validate_profile_name

GITHUB_PREFIX = "github:"

# Where a repository may keep its manifest, in order of preference.
MANIFEST_SEARCH_PATHS = (MANIFEST_FILE_NAME, f".zprof/{MANIFEST_FILE_NAME}", f"zprof/{MANIFEST_FILE_NAME}")

SKIPPED_REPO_FILES = ("readme", "readme.md", "license", "license.txt", "license.md", "changelog", "changelog.md")

# fetcher(url, dest_dir) populates dest_dir and returns the fetched revision, if known.
Fetcher = Callable[[str, str], Optional[str]]


def parse_github_url(value: str) -> Tuple[str, str]:
    """github:user/repo -> (user, repo)."""
    if not value.startswith(GITHUB_PREFIX):
        raise InvalidError("Invalid GitHub import format. Use: github:user/repo", code="invalid_source", source=value)
    parts = value[len(GITHUB_PREFIX):].split("/")
    if len(parts) != 2:
        raise InvalidError(f"Invalid GitHub format. Expected github:user/repo, got: {value}", code="invalid_source", source=value)
    user, repo = parts[0].strip(), parts[1].strip()
    if not user:
        raise InvalidError("GitHub username cannot be empty", code="invalid_source", source=value)
    if not repo:
        raise InvalidError("GitHub repository name cannot be empty", code="invalid_source", source=value)
    return user, repo


def github_repo_url(user: str, repo: str) -> str:
    return f"https://github.com/{user}/{repo}"


def git_clone_fetcher(url: str, dest_dir: str, *, timeout: int = 300) -> Optional[str]:
    if shutil.which("git") is None:
        raise OperationError("git is not installed; cannot fetch remote profile", source=url, phase="check")
    try:
        res = subprocess.run(["git", "clone", "--depth", "1", url, dest_dir], capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as e:
        raise OperationError(f"Timed out cloning {url}", source=url, phase="check") from e
    if res.returncode != 0:
        msg = str(res.stderr or "").strip()
        if "not found" in msg.lower() or "could not read username" in msg.lower():
            msg = "Repository not found or is private. Check the URL and your access."
        raise OperationError(f"Failed to clone {url}: {msg}", source=url, phase="check")
    rev = subprocess.run(["git", "-C", dest_dir, "rev-parse", "HEAD"], capture_output=True, text=True, timeout=30)
    if rev.returncode != 0:
        return None
    return str(rev.stdout or "").strip() or None


def find_manifest(repo_dir: str) -> str:
    for rel in MANIFEST_SEARCH_PATHS:
        p = os.path.join(repo_dir, rel)
        if os.path.isfile(p):
            return p
    raise InvalidError(
        "profile.toml not found in repository. Searched: " + ", ".join(MANIFEST_SEARCH_PATHS),
        code="manifest_missing",
        path=repo_dir,
    )


def select_repo_files(repo_dir: str) -> List[str]:
    """Root-level regular files worth installing: no hidden files, docs or licences."""
    out: List[str] = []
    for name in sorted(os.listdir(repo_dir)):
        p = os.path.join(repo_dir, name)
        if not os.path.isfile(p) or name == MANIFEST_FILE_NAME:
            continue
        if name.startswith(".") or name.lower() in SKIPPED_REPO_FILES:
            continue
        out.append(name)
    return out


def import_from_url(
    value: str,
    *,
    paths: ZprofPaths,
    config: ConfigStore,
    name_override: Optional[str] = None,
    force: bool = False,
    fetcher: Optional[Fetcher] = None,
    ops: Optional[OpsLogger] = None,
    logger=None,
) -> str:
    """
    Fetch a profile repository and install it. `value` is either github:user/repo
    or a full URL handed to the fetcher unchanged.
    """
    if value.startswith(GITHUB_PREFIX):
        url = github_repo_url(*parse_github_url(value))
    else:
        url = value
    fetch = fetcher or git_clone_fetcher
    if logger:
        logger.info(f"Fetching profile repository {url}")

    scratch = make_scratch_dir(paths, prefix="clone_")
    repo_dir = os.path.join(scratch, "repo")
    try:
        revision = fetch(url, repo_dir)
        manifest_path = find_manifest(repo_dir)
        manifest = load_manifest_from_path(manifest_path)
        name = validate_profile_name(name_override or manifest.profile.name)

        # The manifest always lands at the profile root, wherever the repository keeps it.
        staged = os.path.join(scratch, "staged")
        files = [MANIFEST_FILE_NAME] + select_repo_files(repo_dir)
        try:
            os.makedirs(staged)
            shutil.copy2(manifest_path, os.path.join(staged, MANIFEST_FILE_NAME))
            for rel in files[1:]:
                shutil.copy2(os.path.join(repo_dir, rel), os.path.join(staged, rel))
        except OSError as e:
            raise from_os_error(e, path=repo_dir, phase="check", action="read fetched repository") from e

        source = SourceInfo(source_url=url, commit_hash=revision)
        install_profile_tree(staged, name, files=files, source=source, paths=paths, config=config, force=force, ops=ops, logger=logger)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    if logger:
        logger.info(f"Remote import completed: {name}" + (f" at {revision}" if revision else ""))
    return name
