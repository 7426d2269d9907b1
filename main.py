#!/usr/bin/env python3
"""
bsa-bridge -- command-line tools for the account migration.

Usage:
  python main.py import users.json
  python main.py import users.json --json
  python main.py create-admin --login admin --email admin@example.org --password 'S3cret!pass'

Environment variables (see core/config.py):
  DATABASE_URL             SQLAlchemy URL of the platform database.
  LMS_ENABLED              false to import users without enrollments.
  COURSE_EXTERNAL_ID_KEY   Course metadata key holding the app-side course id.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from auth.models import ROLE_ADMINISTRATOR, User
from auth.store import UserCreationError, UserStore
from auth.tokens import hash_password
from core.config import get_settings
from importer.parser import ImportFormatError, parse_export
from importer.runner import run_import
from lms.store import CourseStore, build_catalog


def _read_export(path: str) -> str | None:
    """Read the export file. Returns None (after printing why) if unreadable.

    Resolves symlinks and verifies the path is a regular file before reading.
    """
    file_path = Path(path).resolve()
    if not file_path.is_file():
        print(f"  [!] '{path}' is not a readable file.")
        return None
    try:
        return file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"  [!] Could not read file '{path}': {e}")
        return None


def cmd_import(args: argparse.Namespace) -> int:
    content = _read_export(args.path)
    if content is None:
        return 1
    try:
        records = parse_export(content)
    except ImportFormatError as e:
        print(f"  [!] {e}")
        return 1

    settings = get_settings()
    users = UserStore(settings.database_url)
    courses = CourseStore(settings.database_url)
    try:
        catalog = build_catalog(settings, courses, users)
        if not args.json:
            print(f"\nImporting {len(records)} user(s) from {args.path}...")
            if not catalog.available:
                print("  LMS disabled -- users will be imported without enrollments.")
        summary = run_import(records, users, catalog, external_id_key=settings.course_external_id_key)
    finally:
        courses.close()
        users.close()

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
        return 0

    print("─" * 40)
    print(f"  Total:        {summary.total}")
    print(f"  Imported:     {summary.imported}")
    print(f"  Skipped:      {summary.skipped}")
    print(f"  Errors:       {summary.errors}")
    print(f"  Enrollments:  {summary.enrollments_created}")
    if summary.error_details:
        print("\n  Error details:")
        for message in summary.error_details:
            print(f"    - {message}")
    print()
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    settings = get_settings()
    users = UserStore(settings.database_url)
    try:
        user_id = users.create_user(
            User(
                login=args.login,
                email=args.email.strip().lower(),
                display_name=args.login,
                roles=[ROLE_ADMINISTRATOR],
                hashed_password=hash_password(args.password),
            )
        )
    except UserCreationError as e:
        print(f"  [!] {e}")
        return 1
    finally:
        users.close()
    print(f"  Administrator '{args.login}' created (user_id={user_id}).")
    return 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    parser = argparse.ArgumentParser(
        prog="bsa-bridge",
        description="Account migration tools for the BSA app and the learning platform.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py import export.json
  LMS_ENABLED=false python main.py import export.json --json
  python main.py create-admin --login admin --email admin@example.org --password 'S3cret!pass'
        """,
    )
    sub = parser.add_subparsers(dest="command")

    p_import = sub.add_parser("import", help="Import users from an app JSON export")
    p_import.add_argument("path", metavar="PATH", help='JSON file with a top-level "users" array')
    p_import.add_argument("--json", action="store_true", help="Print the summary as JSON")
    p_import.set_defaults(func=cmd_import)

    p_admin = sub.add_parser("create-admin", help="Create an administrator account")
    p_admin.add_argument("--login", required=True)
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--password", required=True)
    p_admin.set_defaults(func=cmd_create_admin)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
