#!/usr/bin/env python3
"""
Database initialization script.

Usage:
    python scripts/init_db.py              # Create tables
    python scripts/init_db.py --reset      # Drop and recreate all tables (DESTRUCTIVE!)
    python scripts/init_db.py --reset -y   # Same, without the confirmation prompt
"""
import argparse

from luno.db.database import init_db


def main():
    parser = argparse.ArgumentParser(description="Initialize the Luno database")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop all tables and recreate (DESTRUCTIVE!)"
    )
    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Skip the confirmation prompt for --reset"
    )

    args = parser.parse_args()

    if args.reset:
        if not args.yes:
            print("⚠️  WARNING: This will delete all data!")
            confirm = input("Type 'yes' to confirm: ")

            if confirm.lower() != "yes":
                print("Aborted.")
                return

        print("Dropping all tables...")
        init_db(drop_all=True)
    else:
        print("Creating database tables...")
        init_db(drop_all=False)

    print("✓ Done!")


if __name__ == "__main__":
    main()
