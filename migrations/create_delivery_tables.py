"""
Create the lead delivery tables (users, settings, contacts, properties, jobs,
queue_jobs, webhook_logs) if they are missing.

Usage:
    python migrations/create_delivery_tables.py
    python migrations/create_delivery_tables.py --database-url postgresql://...

The script is idempotent and safe to run multiple times.
"""

import argparse
import os
import sys

from dotenv import load_dotenv

from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError, ProgrammingError

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_SQLITE_PATH = os.path.join(ROOT_DIR, "leads.sqlite")

# Add parent directory to path to import app modules
sys.path.insert(0, ROOT_DIR)

# Load environment variables from a .env file if present
load_dotenv()

TABLES = (
    "users",
    "user_settings",
    "contacts",
    "properties",
    "jobs",
    "queue_jobs",
    "webhook_logs",
)


def normalize_sqlite_path(path: str) -> str:
    """Return a SQLAlchemy-friendly SQLite URL for the given path."""
    if not os.path.isabs(path):
        path = os.path.join(ROOT_DIR, path)
    return f"sqlite:///{path}"


def infer_database_url(cli_url: str = None) -> str:
    """Figure out which database to hit, honoring CLI and environment defaults."""
    candidates = [
        cli_url,
        os.environ.get("DATABASE_URL"),
        os.environ.get("SQLALCHEMY_DATABASE_URI"),
        os.environ.get("LOCAL_DATABASE_URL"),
    ]

    for value in candidates:
        if not value:
            continue

        value = value.strip()
        if value.startswith("postgres://"):
            # SQLAlchemy expects postgresql://
            return value.replace("postgres://", "postgresql://", 1)

        if value.startswith(("postgresql://", "mysql://", "mariadb://", "sqlite://")):
            return value

        # Treat anything else as a filesystem path to a SQLite DB
        return normalize_sqlite_path(value)

    return normalize_sqlite_path(DEFAULT_SQLITE_PATH)


def missing_tables(engine):
    existing = set(inspect(engine).get_table_names())
    return [name for name in TABLES if name not in existing]


def migrate(database_url: str = None) -> bool:
    """Create any delivery table that does not exist yet."""
    from app import create_app
    from app.models import db

    app = create_app({"SQLALCHEMY_DATABASE_URI": infer_database_url(database_url)})

    with app.app_context():
        try:
            missing = missing_tables(db.engine)
            if not missing:
                print("✓ All delivery tables already exist.")
                return True

            print(f"Creating tables: {', '.join(missing)}")
            # create_all skips tables that already exist
            db.create_all()

            still_missing = missing_tables(db.engine)
            if still_missing:
                print(f"✗ Tables not created: {', '.join(still_missing)}. Please verify manually.")
                return False

            print("✓ Migration completed successfully.")
            return True

        except (OperationalError, ProgrammingError) as exc:
            print(f"✗ Database error: {exc}")
            db.session.rollback()
            return False


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Create the lead delivery tables if they are missing."
    )
    parser.add_argument(
        "--database-url",
        help="Override database URL (otherwise inferred from env or defaults).",
    )
    args = parser.parse_args()

    success = migrate(args.database_url)
    sys.exit(0 if success else 1)
