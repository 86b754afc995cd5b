"""Database migration helpers."""

from __future__ import annotations

import sys

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pricewatch.db.schema import metadata
from pricewatch.db.session import create_engine_from_env


def run_migrations(engine: Engine) -> None:
    """Check connectivity and create any missing tables."""
    with engine.begin() as conn:
        conn.execute(text("SELECT 1"))
        metadata.create_all(conn, checkfirst=True)


def main() -> None:
    engine = create_engine_from_env()
    try:
        run_migrations(engine)
    except SQLAlchemyError as exc:
        print(f"Migration failed: {exc}", file=sys.stderr)
        sys.exit(2)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
