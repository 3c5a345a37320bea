from __future__ import annotations

import argparse
import json
import sys

from zprof.core.api import ProfileManager
from zprof.core.errors import ZprofError
from zprof.core.logger import setup_logging
from zprof.core.paths import ZprofPaths


def main() -> int:
    ap = argparse.ArgumentParser(description="Delete a zprof profile (a full copy is kept in cache/backups)")
    ap.add_argument("profile")
    ap.add_argument("--root", default=None, help="Profiles root (default: ~/.zsh-profiles)")
    args = ap.parse_args()

    paths = ZprofPaths.from_env(root=args.root)
    logger = setup_logging(paths.logs_dir)
    mgr = ProfileManager(paths=paths, logger=logger)
    try:
        backup = mgr.delete_profile(args.profile)
    except ZprofError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2
    print(f"Deleted '{args.profile}'. Backup: {backup}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
