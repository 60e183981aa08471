"""
Database migration entrypoint for the ledger service.

This script runs Alembic migrations up to the latest head revision.
It reads the database connection URI from the ``STATE_STORE_URI``
environment variable or from ``alembic.ini``.  Async driver URLs
(``+asyncpg``, ``+aiosqlite``) are expected; ``alembic/env.py`` runs
the migrations through an async engine.
"""

from __future__ import annotations

import os
import pathlib

from alembic import command
from alembic.config import Config


def run_migrations() -> None:
    base_dir = pathlib.Path(__file__).resolve().parents[1]
    alembic_ini = base_dir / "alembic.ini"
    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(base_dir / "alembic"))
    # Inject the DB URL into the config if provided via environment
    db_url = os.getenv("STATE_STORE_URI")
    if db_url:
        cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


if __name__ == "__main__":
    run_migrations()
