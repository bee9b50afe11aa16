#!/usr/bin/env python3
"""Container entrypoint: wait for the database, migrate, seed the villa catalog, then exec uvicorn."""
import logging
import os
import sys

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger("start_api")

HERE = os.path.dirname(os.path.abspath(__file__))


def migrate(database_url: str) -> None:
    cfg = Config(os.path.join(HERE, "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(cfg, "head")


def seed(database_url: str) -> None:
    # fresh engine: the one built while alembic loaded env.py predates the new tables
    from villa_api.seed import run

    engine = create_engine(database_url, pool_pre_ping=True)
    db = sessionmaker(bind=engine, autoflush=False)()
    try:
        run(db)
    finally:
        db.close()
        engine.dispose()


def main() -> None:
    import wait_for_db  # noqa: F401  (blocks until Postgres answers)
    from villa_api.core.config import settings
    from villa_api.core.logging import configure_logging

    configure_logging()
    migrate(settings.DATABASE_URL)
    seed(settings.DATABASE_URL)

    port = os.getenv("PORT", "8000")
    logger.info("starting uvicorn on port %s", port)
    os.execv(sys.executable, [sys.executable, "-m", "uvicorn", "villa_api.main:app", "--host", "0.0.0.0", "--port", port])


if __name__ == "__main__":
    main()
