#!/usr/bin/env python3
"""
cli.py
Command-line interface for apprip.
Parses arguments, loads config, sets up logging, takes the single-instance
lock and invokes the orchestrator or the restore guide.
"""
from __future__ import annotations
import argparse, os, sys
from pathlib import Path
from .bundle import DEFAULT_CONFIG_PATH, SYSTEM_CONFIG_PATH
from .config import find_config, load_config
from .errors import ConfigError, LockError, SinkError
from .lock import SingleInstanceLock
from .orchestrator import run_plan
from .restore import run_restore
from .sink import PBSSink
from .util import setup_logging


def check_root_access() -> None:
    """Check if running as root and provide a readable error message if not."""
    if os.geteuid() != 0:
        user = os.environ.get('USER', 'mortal')
        print(f"\n🔒 Sorry {user}, apprip needs root privileges to:")
        print(f"   • Talk to the Docker daemon and exec into containers")
        print(f"   • Read bind-mounted host paths of every workload")
        print(f"   • Write the lock file and logs under /run and /var/log")
        print(f"\n✨ Try this instead: sudo {' '.join(sys.argv)}\n")
        sys.exit(1)


def validate_arguments(args) -> None:
    """Validate CLI arguments and provide helpful error messages."""
    if args.command == "restore":
        if not args.snapshot and not args.from_dir:
            print("❌ Error: restore needs a snapshot path or --from-dir")
            print("💡 Hint: list snapshots with 'apprip snapshots'")
            sys.exit(1)
        if args.snapshot and args.from_dir:
            print("❌ Error: use either a snapshot or --from-dir, not both")
            sys.exit(1)
        if args.from_dir and not Path(args.from_dir).is_dir():
            print(f"❌ Error: --from-dir is not a directory: {args.from_dir}")
            sys.exit(1)
        if args.bind and not args.bind.startswith("/"):
            print(f"❌ Error: --bind must be an absolute host path, got {args.bind}")
            sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="apprip",
        description="apprip: application-aware container backup to Proxmox Backup Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="\nBackups need root: apprip talks to the Docker daemon and reads host bind mounts.",
    )
    ap.add_argument(
        "--config",
        default=None,
        help=f"path to apprip.toml (default: {DEFAULT_CONFIG_PATH} then {SYSTEM_CONFIG_PATH})",
    )
    ap.add_argument("--log-level", default=None, help="override runtime.log_level (DEBUG, INFO, ...)")
    sub = ap.add_subparsers(dest="command", required=True)

    b = sub.add_parser("backup", help="dump databases, archive volumes/binds, send to PBS")
    b.add_argument("--dry-run", action="store_true", help="do everything except the PBS upload")
    b.add_argument("--list", action="store_true", help="show discovered workloads and what would happen")

    r = sub.add_parser("restore", help="extract a snapshot and print the restoration guide")
    r.add_argument("snapshot", nargs="?", help="snapshot path, e.g. host/app-server/2025-01-22T15:19:17Z")
    r.add_argument("-d", "--dest", default=None, help="extraction directory (default: restore.dest_dir/apps-restore-*)")
    r.add_argument("--from-dir", default=None, help="use an already-extracted backup directory")
    r.add_argument("-m", "--metadata-only", action="store_true", help="only show the backup metadata")
    r.add_argument("-v", "--volume", default=None, help="guide for this volume only")
    r.add_argument("-b", "--bind", default=None, help="guide for this bind mount only")
    r.add_argument("-D", "--db", default=None, help="guide for this database container only")

    sub.add_parser("snapshots", help="list snapshots in the repository")
    return ap


def main(argv=None) -> int:
    try:
        args = build_parser().parse_args(argv)
        validate_arguments(args)

        needs_root = (
            (args.command == "backup" and not args.list)
            or (args.command == "restore" and not args.from_dir)
        )
        if needs_root:
            check_root_access()

        try:
            cfg_path = find_config(args.config)
            cfg = load_config(cfg_path)
        except FileNotFoundError as e:
            print(f"❌ Error: {e}")
            print(f"💡 Hint: Create {args.config or DEFAULT_CONFIG_PATH} with [pbs] and [backup] sections")
            return 1
        except (ConfigError, ValueError) as e:
            print(f"❌ Error: Invalid configuration file {cfg_path}: {e}")
            return 1

        if args.log_level:
            cfg.log_level = args.log_level
        setup_logging(cfg.log_level, cfg.log_dir if needs_root else None)

        if args.command in ("snapshots", "restore") or (args.command == "backup" and not args.list):
            if not cfg.pbs_repository and not getattr(args, "from_dir", None):
                print("❌ Error: Missing required config: pbs.repository (or pbs.server + pbs.datastore)")
                return 1

        if args.command == "snapshots":
            try:
                print(PBSSink(cfg).list_snapshots())
            except SinkError as e:
                print(f"❌ Error: {e}")
                return 1
            return 0

        if args.command == "restore":
            return run_restore(
                cfg,
                args.snapshot,
                dest=Path(args.dest) if args.dest else None,
                from_dir=Path(args.from_dir) if args.from_dir else None,
                metadata_only=args.metadata_only,
                only_volume=args.volume,
                only_bind=args.bind,
                only_db=args.db,
            )

        if args.list:
            return run_plan(cfg, list_only=True, dry=args.dry_run)
        try:
            with SingleInstanceLock(cfg.lock_file):
                return run_plan(cfg, list_only=False, dry=args.dry_run)
        except LockError as e:
            print(f"❌ Error: {e}")
            return 3

    except KeyboardInterrupt:
        print(f"\n\n⚡ Interrupted by user. Working files were cleaned up.")
        return 130
    except Exception as e:
        print(f"❌ Unexpected error: {e}")
        print(f"💡 Hint: Run 'apprip backup --list' or '--dry-run' first to check configuration")
        return 1


if __name__ == "__main__":
    sys.exit(main())
