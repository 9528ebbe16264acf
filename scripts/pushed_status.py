#!/usr/bin/env python3
"""
Report how many contacts and properties have been delivered, and optionally
reset every pushed flag so the next run delivers everything again.

Destination ids (ghl_contact_id / ghl_property_id) are left in place, so a
re-run finds the existing records instead of creating duplicates.

Usage:
    python scripts/pushed_status.py                    # report only
    python scripts/pushed_status.py --reset            # preview the reset (dry run)
    python scripts/pushed_status.py --reset --execute  # actually reset the flags
"""

import argparse
import os
import sys

# Add parent directory to path to import app modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.logging_config import get_logger
from app.models import Contact, Property, db

logger = get_logger(__name__)


def pushed_counts():
    """Pushed / not pushed counts per table."""
    return {
        "contacts": {
            "total": Contact.query.count(),
            "pushed": Contact.query.filter(Contact.pushed.is_(True)).count(),
            "not_pushed": Contact.query.filter(Contact.pushed.is_(False)).count(),
        },
        "properties": {
            "total": Property.query.count(),
            "pushed": Property.query.filter(Property.pushed.is_(True)).count(),
            "not_pushed": Property.query.filter(Property.pushed.is_(False)).count(),
        },
    }


def print_counts(counts):
    for table, row in counts.items():
        print(f"  {table}: {row['pushed']} pushed, {row['not_pushed']} not pushed ({row['total']} total)")


def reset_pushed(execute=False):
    """
    Set pushed back to false on every contact and property.

    Args:
        execute: If True, actually write the change (default: False for safety)

    Returns:
        dict with the counts before the reset and the rows updated
    """
    before = pushed_counts()
    print("\n[INFO] Current status:")
    print_counts(before)

    if not execute:
        print("\n[INFO] Dry run. Would reset "
              f"{before['contacts']['pushed']} contacts and {before['properties']['pushed']} properties.")
        print("[INFO] Run with --reset --execute to actually reset the flags")
        return {"before": before, "contacts_reset": 0, "properties_reset": 0, "executed": False}

    try:
        contacts_reset = (Contact.query.filter(Contact.pushed.is_(True))
                          .update({Contact.pushed: False}, synchronize_session=False))
        properties_reset = (Property.query.filter(Property.pushed.is_(True))
                            .update({Property.pushed: False}, synchronize_session=False))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error("Pushed flag reset failed", error=str(e), exc_info=True)
        print(f"\n[ERROR] Reset failed, changes rolled back: {e}")
        raise

    logger.info("Pushed flags reset", contacts=contacts_reset, properties=properties_reset)
    print(f"\n[SUCCESS] Reset {contacts_reset} contacts and {properties_reset} properties")
    print("\n[INFO] Status after reset:")
    print_counts(pushed_counts())
    return {
        "before": before,
        "contacts_reset": contacts_reset,
        "properties_reset": properties_reset,
        "executed": True,
    }


if __name__ == "__main__":
    from app import create_app

    parser = argparse.ArgumentParser(description="Report or reset delivery pushed flags")
    parser.add_argument("--reset", action="store_true",
                        help="Reset every pushed flag to false (dry run unless --execute)")
    parser.add_argument("--execute", action="store_true",
                        help="Actually write the reset (default: dry run only)")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            reset_pushed(execute=args.execute)
        else:
            print("=" * 80)
            print("DELIVERY STATUS")
            print("=" * 80)
            print_counts(pushed_counts())
