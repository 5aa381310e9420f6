"""
Database initialization script
Creates the database (if missing) and the jobs / job_logs tables

Usage (from backend/):
    python -m database.init_db
    python -m database.init_db --reset    # drop and recreate the job tables
"""
import argparse
import sys
from pathlib import Path

from sqlalchemy import create_engine, text

sys.path.insert(0, str(Path(__file__).parent.parent))
from config import DB_NAME, DB_HOST, DB_PORT, DB_USER, DB_PASSWORD
from database.base import engine, Base
from database import models  # noqa: F401  (registers Job/JobLog on Base)

# Maintenance database used to issue CREATE DATABASE
ADMIN_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/postgres"


def ensure_database() -> bool:
    admin_engine = create_engine(ADMIN_URL, isolation_level="AUTOCOMMIT")
    try:
        with admin_engine.connect() as conn:
            found = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": DB_NAME}
            ).scalar()
            if found:
                print(f"ℹ️  Database '{DB_NAME}' exists")
            else:
                conn.execute(text(f'CREATE DATABASE "{DB_NAME}"'))
                print(f"✅ Created database '{DB_NAME}'")
        return True
    except Exception as e:
        print(f"❌ Cannot create database '{DB_NAME}' on {DB_HOST}:{DB_PORT} as '{DB_USER}': {e}")
        return False
    finally:
        admin_engine.dispose()


def create_tables(reset: bool = False) -> bool:
    try:
        if reset:
            Base.metadata.drop_all(bind=engine)
            print("🗑️  Dropped job tables")
        Base.metadata.create_all(bind=engine)
        print("✅ Tables ready: " + ", ".join(sorted(Base.metadata.tables)))
        return True
    except Exception as e:
        print(f"❌ Cannot create tables: {e}")
        return False


def main(argv=None):
    parser = argparse.ArgumentParser(description="Initialize the job queue database")
    parser.add_argument("--reset", action="store_true", help="drop and recreate jobs/job_logs")
    args = parser.parse_args(argv)

    print(f"🚀 Initializing {DB_NAME} on {DB_HOST}:{DB_PORT}")
    if not ensure_database() or not create_tables(reset=args.reset):
        sys.exit(1)
    print("✅ Done")


if __name__ == "__main__":
    main()
