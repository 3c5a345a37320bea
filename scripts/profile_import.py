from __future__ import annotations

import argparse
import json
import sys

from zprof.core.api import ProfileManager
from zprof.core.archive.remote import GITHUB_PREFIX
from zprof.core.errors import ZprofError
from zprof.core.logger import setup_logging
from zprof.core.paths import ZprofPaths


def main() -> int:
    ap = argparse.ArgumentParser(description="Import a zprof profile from a .zprof archive or github:user/repo")
    ap.add_argument("source", help="Archive path, github:user/repo, or a git URL")
    ap.add_argument("--name", default=None, help="Install under this profile name")
    ap.add_argument("--force", action="store_true", help="Replace an existing profile (it is backed up first)")
    ap.add_argument("--root", default=None, help="Profiles root (default: ~/.zsh-profiles)")
    args = ap.parse_args()

    paths = ZprofPaths.from_env(root=args.root)
    logger = setup_logging(paths.logs_dir)
    mgr = ProfileManager(paths=paths, logger=logger)
    try:
        if args.source.startswith(GITHUB_PREFIX) or "://" in args.source:
            name = mgr.import_from_url(args.source, name=args.name, force=args.force)
        else:
            name = mgr.import_profile(args.source, name=args.name, force=args.force)
    except ZprofError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2
    print(f"Imported profile '{name}'")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
