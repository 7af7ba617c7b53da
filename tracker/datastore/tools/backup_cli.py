"""
Backup CLI tool for the tracker datastore.

Operator access to the same operations the HTTP API exposes, for use when
the web application is down or from cron.

Usage:
    tracker-datastore [--data-dir PATH] create [--name NAME]
    tracker-datastore [--data-dir PATH] list
    tracker-datastore [--data-dir PATH] delete NAME
    tracker-datastore [--data-dir PATH] restore NAME
    tracker-datastore [--data-dir PATH] migrate

Every command runs the normal startup sequence first (legacy relocation,
schema, migrations), exactly as the server does.

Exit codes:
    0  success
    1  operation failed
    2  invalid arguments or configuration
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace

from ..config import DatastoreConfig
from ..errors import DatastoreError
from ..service import Datastore, open_datastore

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tracker-datastore",
        description="Manage backups of the time-tracker database",
    )
    parser.add_argument("--data-dir", help="Data directory (default: $DATA_DIR or ./data)")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create a backup")
    create.add_argument("--name", help="Backup file name (default: timestamped)")

    commands.add_parser("list", help="List backups, newest first")

    delete = commands.add_parser("delete", help="Delete a backup")
    delete.add_argument("name", help="Backup file name")

    restore = commands.add_parser("restore", help="Restore the database from a backup")
    restore.add_argument("name", help="Backup file name")

    commands.add_parser("migrate", help="Apply schema and migrations, then exit")

    return parser


def _run(datastore: Datastore, args: argparse.Namespace) -> dict | list | None:
    if args.command == "create":
        return datastore.create_backup(args.name).to_dict()
    if args.command == "list":
        return [b.to_dict() for b in datastore.list_backups()]
    if args.command == "delete":
        datastore.delete_backup(args.name)
        return None
    if args.command == "restore":
        return datastore.restore_from_backup(args.name).to_dict()
    if args.command == "migrate":
        return datastore.last_migration.to_dict() if datastore.last_migration else None
    raise ValueError(f"Unknown command: {args.command}")


def _print_result(command: str, result: dict | list | None) -> None:
    if command == "create":
        print(f"Created backup {result['fileName']} ({result['sizeBytes']} bytes)")
    elif command == "list":
        if not result:
            print("No backups")
        for backup in result:
            print(f"{backup['createdAt']}  {backup['sizeBytes']:>12}  {backup['fileName']}")
    elif command == "delete":
        print("Backup deleted")
    elif command == "restore":
        print(f"Restored {len(result['tablesRestored'])} table(s) from {result['fileName']}")
        if result["liveOnlyTables"]:
            print(f"  Untouched (not in backup): {', '.join(result['liveOnlyTables'])}")
        if result["foreignKeyViolations"]:
            print(f"  Warning: {result['foreignKeyViolations']} dangling foreign key reference(s)")
    elif command == "migrate":
        print(f"Applied: {', '.join(result['applied']) or 'nothing'}")
        for step, error in result["failed"].items():
            print(f"  Failed: {step}: {error}")


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the backup tool."""
    args = _build_parser().parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        config = DatastoreConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    if args.data_dir:
        config = replace(config, storage=replace(config.storage, data_dir=args.data_dir))

    try:
        with open_datastore(config) as datastore:
            result = _run(datastore, args)
    except DatastoreError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        _print_result(args.command, result)

    if args.command == "migrate" and result and result["failed"]:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
