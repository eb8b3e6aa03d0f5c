"""
Create the production scheduler tables if they do not exist yet.

Tables: production_stages, stage_specifications, production_jobs,
job_stage_instances, scheduling_runs.

Usage:
    python migrations/create_scheduler_tables.py [--database-url URL]

The script is idempotent and safe to run multiple times. It inspects the current
schema and only creates the tables that are missing.
"""

import argparse
import os
import sys

from dotenv import load_dotenv

from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError, ProgrammingError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from print_scheduler import create_app
from print_scheduler.models import db

# Load environment variables from a .env file if present
load_dotenv()

SCHEDULER_TABLES = [
    "production_stages",
    "stage_specifications",
    "production_jobs",
    "job_stage_instances",
    "scheduling_runs",
]


def normalize_database_url(value: str) -> str:
    """SQLAlchemy expects postgresql:// rather than postgres://."""
    value = value.strip()
    if value.startswith("postgres://"):
        return value.replace("postgres://", "postgresql://", 1)
    return value


def migrate(database_url: str = None) -> bool:
    """Create any missing scheduler tables."""
    test_config = {"SQLALCHEMY_DATABASE_URI": normalize_database_url(database_url)} if database_url else None
    app = create_app(test_config)

    with app.app_context():
        print(f"Connecting to database: {app.config['SQLALCHEMY_DATABASE_URI'][:50]}...")
        try:
            inspector = inspect(db.engine)
            missing = [t for t in SCHEDULER_TABLES if not inspector.has_table(t)]
            for table in SCHEDULER_TABLES:
                if table not in missing:
                    print(f"✓ Table '{table}' already exists.")

            if not missing:
                print("✓ All scheduler tables exist. Nothing to do.")
                return True

            print(f"Creating {len(missing)} table(s)...")
            tables = [db.metadata.tables[name] for name in missing]
            db.metadata.create_all(bind=db.engine, tables=tables)

            inspector = inspect(db.engine)
            still_missing = [t for t in missing if not inspector.has_table(t)]
            if still_missing:
                print(f"✗ Tables not created: {', '.join(still_missing)}. Please verify manually.")
                return False

            print("\n✓ Migration completed successfully!")
            return True

        except (OperationalError, ProgrammingError) as exc:
            print(f"✗ Database error while creating tables: {exc}")
            return False


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create production scheduler tables.")
    parser.add_argument(
        "--database-url",
        help="Override database URL (otherwise inferred from env or defaults).",
    )
    args = parser.parse_args()

    success = migrate(args.database_url)
    sys.exit(0 if success else 1)
