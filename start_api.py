#!/usr/bin/env python3
"""Container entrypoint for the RentChain booking API.

Waits for Postgres, applies migrations, prepares the reclamation upload
folder and seeds the demo accounts before handing the process to uvicorn.
The settlement worker and beat run in their own containers (see
rentchain.tasks.celery_app) and do not go through this script.
"""
import logging
import os
import sys

import wait_for_db  # noqa: F401  blocks until the database accepts connections

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rentchain.core.config import settings

logging.basicConfig(level=logging.INFO, format="[start_api] %(message)s")
log = logging.getLogger("start_api")

HERE = os.path.dirname(os.path.abspath(__file__))


def migrate() -> None:
    cfg = Config(os.path.join(HERE, "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    command.upgrade(cfg, "head")
    log.info("schema at head")


def prepare_uploads() -> None:
    os.makedirs(settings.RECLAMATION_UPLOAD_DIR, exist_ok=True)
    log.info("reclamation images go to %s", os.path.abspath(settings.RECLAMATION_UPLOAD_DIR))


def seed() -> None:
    # a fresh engine, so nothing cached while alembic loaded env.py leaks into the app
    engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        from rentchain.seed import run
        run(db)
    finally:
        db.close()
        engine.dispose()


def serve() -> None:
    port = os.getenv("PORT", "8000")
    if settings.SETTLEMENT_SANDBOX:
        log.warning("settlement sandbox is on; payouts return mock transaction hashes")
    log.info("starting uvicorn on port %s (%s)", port, settings.ENV)
    os.execv(
        sys.executable,
        [sys.executable, "-m", "uvicorn", "rentchain.main:app", "--host", "0.0.0.0", "--port", port],
    )


if __name__ == "__main__":
    migrate()
    prepare_uploads()
    seed()
    serve()
