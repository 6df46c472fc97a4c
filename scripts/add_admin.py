#!/usr/bin/env python3
"""
Run first-time setup from the command line: create a clinic and its admin.

Usage:
  python scripts/add_admin.py --username admin --email admin@clinic.test --clinic "Main Clinic" [--url https://clinic.test]
"""
from __future__ import annotations

import argparse
import getpass
import logging
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from thoughtbox.core.config import get_settings
from thoughtbox.core.logging import configure_logging
from thoughtbox.repositories import MemoryStorage, get_storage
from thoughtbox.services.account_service import AccountError, AccountService

logger = logging.getLogger("add_admin")


def main() -> None:
    ap = argparse.ArgumentParser(description="Create the first clinic and admin user")
    ap.add_argument("--username", required=True, help="Admin username (min. 3 chars)")
    ap.add_argument("--email", required=True, help="Admin email")
    ap.add_argument("--clinic", required=True, help="Clinic name")
    ap.add_argument("--url", help="Clinic website")
    ap.add_argument("--password", help="Admin password (prompted when omitted)")
    args = ap.parse_args()

    configure_logging()
    password = args.password or getpass.getpass("Password: ")
    storage = get_storage()
    result = AccountService(storage=storage).setup(args.username, args.email, password, args.clinic, args.url)
    if isinstance(storage, MemoryStorage) and get_settings().memory_snapshot_path:
        storage.save()
    logger.info("Admin %s (id %s) created for clinic %r (id %s)", result.user.username, result.user.id, result.clinic.name, result.clinic.id)
    logger.info("Departments: %s", ", ".join(result.clinic.departments))


if __name__ == "__main__":
    try:
        main()
    except AccountError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
