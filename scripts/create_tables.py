"""Create database tables in the configured database.

Reads DATABASE_URL (or PG* variables) from .env / environment and creates all
registered ORM tables.

Usage:
  python scripts/create_tables.py
"""

from __future__ import annotations

import pathlib
import sys

from dotenv import load_dotenv
from sqlalchemy import text

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from bingo_engine.config import resolve_database_url  # noqa: E402
from bingo_engine.db import create_app_engine  # noqa: E402
from bingo_engine.models.base import Base  # noqa: E402


def main() -> int:
    """Create all ORM tables in the target database."""

    load_dotenv()
    env_local = PROJECT_ROOT / ".env.local"
    if env_local.exists():
        load_dotenv(dotenv_path=env_local, override=True)

    engine = create_app_engine(resolve_database_url())
    Base.metadata.create_all(bind=engine)

    # create_all() does not add indexes to tables that already exist.
    if engine.dialect.name == "postgresql":
        ddl = [
            "CREATE INDEX IF NOT EXISTS ix_rounds_status_starts_at ON rounds (status, starts_at)",
            "CREATE INDEX IF NOT EXISTS ix_purchases_status_created_at ON purchases (payment_status, created_at)",
            "CREATE INDEX IF NOT EXISTS ix_cards_round_id ON cards (round_id)",
        ]
        with engine.begin() as conn:
            for stmt in ddl:
                conn.execute(text(stmt))

    print("Tables created (or already exist).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
