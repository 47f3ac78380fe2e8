"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.database_url` and provides small helpers used by the
application and tests. SQLite is the default for development and tests;
PostgreSQL is used in production through the psycopg driver.
"""

import logging
from pathlib import Path

from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session

from .config import settings
from . import models  # noqa: F401  (registers tables on SQLModel.metadata)

BASE = Path(__file__).resolve().parent.parent
logger = logging.getLogger("visualgit.database")


def build_engine(url: str, echo: bool = False):
    """Create an engine for `url`.

    SQLite connections get `PRAGMA foreign_keys=ON` so ON DELETE CASCADE
    behaves the same as on PostgreSQL.
    """
    if url.startswith("sqlite"):
        eng = create_engine(url, echo=echo, connect_args={"check_same_thread": False})

        @event.listens_for(eng, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return eng
    return create_engine(url, echo=echo, pool_pre_ping=True)


engine = build_engine(settings.database_url, echo=settings.DB_ECHO)


def run_migrations(revision: str = "head"):
    """Apply Alembic migrations up to `revision` against the app database."""
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(BASE / "alembic.ini"))
    cfg.set_main_option("script_location", str(BASE / "migrations"))
    cfg.set_main_option("sqlalchemy.url", settings.database_url.replace("%", "%%"))
    command.upgrade(cfg, revision)


def create_db_and_tables():
    """Create database tables.

    With `MIGRATIONS_RUN=true` the schema is brought to the latest Alembic
    revision; otherwise tables are created straight from SQLModel metadata,
    which is what development and the test-suite use.
    """
    if settings.MIGRATIONS_RUN:
        logger.info("applying migrations to %s", engine.url.render_as_string(hide_password=True))
        run_migrations()
        return
    SQLModel.metadata.create_all(engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
