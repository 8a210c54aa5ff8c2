#!/usr/bin/env python3
"""
Delete stale rows from the email_verifications table.

Expired codes are already unusable (confirmation only matches codes whose
expires_at is in the future); this script just keeps the table small.

Usage:
    python scripts/purge_expired_codes.py [--verified-older-than-days N] [--dry-run]

Environment Variables:
    DATABASE_URL: database connection string (optional, can use .env file)
"""

import argparse
import os
import sys
from datetime import timedelta

# Add parent directory to path so we can import from the project
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal
from services.verification_store import VerificationStore
from utils.logger_factory import new_logger

logger = new_logger("purge_expired_codes")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Purge expired email verification codes")
    parser.add_argument(
        "--verified-older-than-days",
        type=int,
        default=None,
        help="Also delete verified codes consumed more than N days ago",
    )
    parser.add_argument("--dry-run", action="store_true", help="Only count the rows that would be deleted")
    return parser.parse_args(argv)


def purge_expired_codes(db, verified_older_than_days=None, dry_run=False):
    verified_older_than = None
    if verified_older_than_days is not None:
        verified_older_than = timedelta(days=verified_older_than_days)
    store = VerificationStore(db)
    count = store.purge_expired(verified_older_than=verified_older_than, dry_run=dry_run)
    if dry_run:
        logger.info(f"Dry run: {count} verification record(s) would be deleted")
    else:
        logger.info(f"Deleted {count} verification record(s)")
    return count


def main(argv=None):
    args = parse_args(argv)
    db = SessionLocal()
    try:
        purge_expired_codes(db, args.verified_older_than_days, args.dry_run)
    finally:
        db.close()


if __name__ == "__main__":
    try:
        main()
        sys.exit(0)
    except Exception as e:
        logger.error(f"Purge failed: {str(e)}")
        sys.exit(1)
