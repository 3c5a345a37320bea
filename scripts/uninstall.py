from __future__ import annotations

import argparse
import json
import sys

from zprof.core.api import ProfileManager
from zprof.core.archive.exporter import format_file_size
from zprof.core.errors import ZprofError
from zprof.core.logger import setup_logging
from zprof.core.paths import ZprofPaths
from zprof.core.uninstall.machine import RestoreOption


def main() -> int:
    ap = argparse.ArgumentParser(description="Uninstall zprof after taking a full safety snapshot")
    ap.add_argument("--restore", choices=[o.value for o in RestoreOption], required=True)
    ap.add_argument("--profile", default=None, help="Profile to promote (with --restore promote)")
    ap.add_argument("--keep-backups", action="store_true", help="Keep the backups/ directory")
    ap.add_argument("--check", action="store_true", help="Only run the precondition checks")
    ap.add_argument("--root", default=None, help="Profiles root (default: ~/.zsh-profiles)")
    args = ap.parse_args()

    paths = ZprofPaths.from_env(root=args.root)

    if args.check:
        # read-only: no log directory is created for a check
        report = ProfileManager(paths=paths).validate_uninstall()
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.is_valid() else 2

    logger = setup_logging(paths.logs_dir)
    mgr = ProfileManager(paths=paths, logger=logger)
    try:
        res = mgr.uninstall(RestoreOption(args.restore), profile=args.profile, keep_backups=args.keep_backups)
    except ZprofError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2
    print(f"Safety snapshot: {res.snapshot.backup_path} ({format_file_size(res.snapshot.backup_size)})")
    if res.restore is not None and res.restore.checksum_mismatches:
        print("Checksum mismatches: " + ", ".join(res.restore.checksum_mismatches))
    for path, err in res.cleanup.errors:
        print(f"Could not remove {path}: {err}", file=sys.stderr)
    return 0 if res.cleanup.is_successful() else 1


if __name__ == "__main__":
    raise SystemExit(main())
