"""
Migration: Add bureau reporting tables.

Creates the tables owned by the export engine inside an existing platform
database (users, tenancies and payments are already there):
1. reporting_batches - one row per monthly export run
2. reporting_records - immutable exported lines
3. consents - per-tenant reporting consent
4. audit_log - append-only consent and batch events

Existing tables are left untouched.
"""
from typing import Optional

from sqlalchemy import inspect

from bureau_export.config import Settings
from bureau_export.database import Base, build_engine
from bureau_export.models import db_models  # noqa: F401

REPORTING_TABLES = (
    "reporting_batches",
    "reporting_records",
    "consents",
    "audit_log",
)


def run_migration(settings: Optional[Settings] = None):
    """Create any reporting table that does not exist yet."""
    settings = settings or Settings.from_env()
    engine = build_engine(settings.database_url)
    existing = set(inspect(engine).get_table_names())

    for name in REPORTING_TABLES:
        if name in existing:
            print(f"{name} table already exists")
            continue
        Base.metadata.tables[name].create(bind=engine)
        print(f"Created {name} table")

    print("Migration complete")


if __name__ == "__main__":
    run_migration()
