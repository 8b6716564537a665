#!/usr/bin/env python3
"""
Import a sleep export (CSV, JSON or Apple Health export.xml) for one user.

Usage:
    python import_sleep.py <path_to_export> [user_id]

Runs the same pipeline as the `/import` route, printing progress as the
file is scanned. Safe to re-run: nights already stored are overwritten,
never duplicated.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from repo_sleep import SleepLogRepo
from service_import import ImportService
from settings import settings


def print_progress(percent: int) -> None:
    print(f"\r  scanning... {percent:3d}%", end="", flush=True)


def main(export_path: str, user_id: str) -> int:
    print(f"Importing sleep data from: {export_path} (user {user_id})")
    if not os.path.exists(export_path):
        print(f"ERROR: {export_path} not found")
        return 1

    svc = ImportService(SleepLogRepo())
    with open(export_path, "rb") as f:
        result = svc.handle_file_upload(
            os.path.basename(export_path),
            f,
            user_id,
            total_bytes=os.path.getsize(export_path),
            on_progress=print_progress,
        )
    print()

    if result.success:
        print(f"Import complete. Nights written: {result.imported}")
    else:
        print("Import failed.")
    for err in result.errors:
        print(f"  ⚠️  {err}")
    return 0 if result.success else 1


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3):
        print("Usage: python import_sleep.py <path_to_export> [user_id]")
        sys.exit(1)

    user = sys.argv[2] if len(sys.argv) == 3 else settings.default_user
    sys.exit(main(sys.argv[1], user))
