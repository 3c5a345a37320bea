from __future__ import annotations

import argparse
import json
import sys

from zprof.core.api import ProfileManager
from zprof.core.archive.exporter import format_file_size
from zprof.core.errors import ZprofError
from zprof.core.logger import setup_logging
from zprof.core.paths import ZprofPaths


def main() -> int:
    ap = argparse.ArgumentParser(description="Export a zprof profile to a portable .zprof archive")
    ap.add_argument("profile")
    ap.add_argument("-o", "--output", default=None, help="Archive path (default: ./<profile>.zprof)")
    ap.add_argument("--force", action="store_true", help="Overwrite an existing archive")
    ap.add_argument("--root", default=None, help="Profiles root (default: ~/.zsh-profiles)")
    args = ap.parse_args()

    paths = ZprofPaths.from_env(root=args.root)
    logger = setup_logging(paths.logs_dir)
    mgr = ProfileManager(paths=paths, logger=logger)
    try:
        res = mgr.export_profile(args.profile, destination=args.output, force=args.force)
    except ZprofError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2
    print(f"Exported '{args.profile}' to {res.archive_path} ({format_file_size(res.size_bytes)}, {res.entry_count} entries)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
