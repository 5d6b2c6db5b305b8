#!/usr/bin/env python3
from __future__ import annotations

import argparse
import getpass
import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create one staff account in the local account store.",
    )
    parser.add_argument("--email", required=True, help="Login email for the staff member")
    parser.add_argument(
        "--password",
        default=None,
        help="Password to set. Omit to be prompted.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    password = args.password if args.password is not None else getpass.getpass("Password: ")

    # Imported late: the module needs SESSION_SIGNING_SECRET at import time.
    from services.user_access_service import create_account

    try:
        account = create_account(args.email, password)
    except ValueError as exc:
        print(f"Could not create account: {exc}")
        return 1
    print(f"Created {account['email']} userID={account['userID']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
