#!/usr/bin/env python3
"""
Provision the admin account. Safe to run repeatedly.

An existing admin keeps its password unless --reset-password is given.
Identifier and password come from the command line, ADMIN_ROLL_NUMBER /
ADMIN_PASSWORD, or an interactive prompt.
"""
import argparse
import getpass
import sys
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import init_database
from services.auth_service import AuthService
from core.exceptions import ValidationError
import config


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Create or update the admin account")
    parser.add_argument("--roll-number", default=config.ADMIN_ROLL_NUMBER, help="Admin identifier")
    parser.add_argument("--name", default=None, help="Display name")
    parser.add_argument(
        "--reset-password",
        action="store_true",
        help="Overwrite the password of an existing admin",
    )
    return parser.parse_args(argv)


def create_admin(argv=None) -> int:
    """Create the admin user if missing."""
    args = parse_args(argv)

    config.db = init_database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )

    print("Provisioning admin user...")
    print("=" * 50)

    password = config.ADMIN_PASSWORD
    if not password:
        password = getpass.getpass("Password (used only when creating or resetting): ").strip()

    try:
        with config.db.get_session() as db:
            user, created = AuthService.ensure_admin(
                db,
                roll_number=args.roll_number,
                password=password,
                name=args.name,
                reset_password=args.reset_password,
            )
            print(f"\n✓ Admin user {'created' if created else 'already present'}")
            print(f"  Roll number: {user.roll_number}")
            if not created:
                print(f"  Password: {'reset' if args.reset_password else 'unchanged'}")
    except ValidationError as e:
        print(f"\n✗ Error: {e.message}")
        return 1
    finally:
        config.db.engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(create_admin())
