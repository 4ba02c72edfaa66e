"""
Check the PostgreSQL database for PhotoShare.
Run once before starting the app: python scripts/init_postgres.py

Requires: PostgreSQL installed and running. Create user and database:

  sudo -u postgres psql
  CREATE USER photoshare WITH PASSWORD 'photoshare';
  CREATE DATABASE photoshare_db OWNER photoshare;
  GRANT ALL PRIVILEGES ON DATABASE photoshare_db TO photoshare;
  \q

Then apply backend/alembic/versions before the first start
(DB_INIT_MODE=migrate refuses to boot without alembic_version).
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from photoshare.config import settings

REQUIRED_TABLES = (
    "users",
    "refresh_tokens",
    "api_keys",
    "api_key_logs",
    "rate_limits",
    "albums",
    "album_members",
    "album_invites",
    "audit_events",
)


def main():
    url = settings.get_database_url()
    if not url.startswith("postgresql"):
        print("Database URL is not PostgreSQL. Skipping.")
        return
    try:
        engine = create_engine(url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            existing = set(inspect(conn).get_table_names())
    except SQLAlchemyError as e:
        print(f"Cannot connect to PostgreSQL: {e}")
        print("\nCreate database first:")
        print("  psql -U postgres -c \"CREATE USER photoshare WITH PASSWORD 'photoshare';\"")
        print("  psql -U postgres -c \"CREATE DATABASE photoshare_db OWNER photoshare;\"")
        print("  psql -U postgres -c \"GRANT ALL PRIVILEGES ON DATABASE photoshare_db TO photoshare;\"")
        sys.exit(1)

    missing = [name for name in REQUIRED_TABLES if name not in existing]
    if missing:
        print(f"PostgreSQL connection OK. Missing tables: {', '.join(missing)}")
        print("Apply the Alembic migrations in backend/alembic/versions.")
        sys.exit(1)
    print("PostgreSQL connection OK. Schema present.")


if __name__ == "__main__":
    main()
