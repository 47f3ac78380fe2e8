"""Provision and drop a throwaway database for a test run.

`provision` creates a uniquely named database (`<prefix>_<epoch ms>_<6
base36 chars>`), writes its name to a stamp file so other processes of
the same run (e.g. test workers) can find it, and points `DB_NAME` at it.
`teardown` terminates lingering connections, drops the database and
removes the stamp file.

The module reads the `DB_*` variables from the environment mapping it is
given and never imports the application settings: it runs before the
settings object exists so the app engine is built against the new
database.
"""

import logging
import os
import random
import re
import string
import time
from pathlib import Path
from typing import MutableMapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL

BASE = Path(__file__).resolve().parents[2]
DEFAULT_STAMP = BASE / ".test-db-name"
BASE36 = string.digits + string.ascii_lowercase
SAFE_NAME = re.compile(r"^[A-Za-z0-9_]+$")

logger = logging.getLogger("visualgit.disposable_db")


def unique_database_name(prefix: str = "test") -> str:
    suffix = "".join(random.choices(BASE36, k=6))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def read_stamp(stamp_path: Optional[Path] = None) -> Optional[str]:
    """Name recorded in the stamp file, or None when there is no stamp."""
    stamp_path = Path(stamp_path or DEFAULT_STAMP)
    if not stamp_path.exists():
        return None
    return stamp_path.read_text(encoding="utf-8").strip() or None


def _dialect(environ: MutableMapping[str, str]) -> str:
    return environ.get("DB_DIALECT", "sqlite").lower()


def _sqlite_path(name: str, environ: MutableMapping[str, str]) -> Path:
    return Path(environ.get("DB_SQLITE_DIR", str(BASE))) / f"{name}.db"


def admin_url(environ: MutableMapping[str, str]) -> URL:
    """URL of the maintenance database used to create and drop test databases."""
    return URL.create(
        "postgresql+psycopg",
        username=environ.get("DB_USER", "admin"),
        password=environ.get("DB_PASSWORD", "admin"),
        host=environ.get("DB_HOST", "localhost"),
        port=int(environ.get("DB_PORT", "5432")),
        database=environ.get("PG_DATABASE_ADMIN", "postgres"),
    )


def admin_engine(environ: MutableMapping[str, str]):
    return create_engine(admin_url(environ), isolation_level="AUTOCOMMIT")


def _check_name(name: str) -> str:
    # the name is interpolated into DDL
    if not SAFE_NAME.match(name):
        raise ValueError(f"refusing unsafe database name: {name!r}")
    return name


def provision(prefix: str = "test", stamp_path: Optional[Path] = None,
              environ: Optional[MutableMapping[str, str]] = None) -> str:
    """Create the database, record it in the stamp file and export it as `DB_NAME`."""
    environ = os.environ if environ is None else environ
    stamp_path = Path(stamp_path or DEFAULT_STAMP)
    name = _check_name(unique_database_name(prefix))

    if _dialect(environ) == "postgresql":
        engine = admin_engine(environ)
        try:
            with engine.connect() as conn:
                conn.execute(text(f'CREATE DATABASE "{name}"'))
        finally:
            engine.dispose()
    else:
        path = _sqlite_path(name, environ)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch()

    stamp_path.write_text(name, encoding="utf-8")
    environ["ENV"] = "test"
    environ["DB_NAME"] = name
    # an explicit URL would win over DB_NAME
    environ.pop("DATABASE_URL", None)
    logger.info("provisioned test database %s", name)
    return name


def teardown(stamp_path: Optional[Path] = None,
             environ: Optional[MutableMapping[str, str]] = None) -> Optional[str]:
    """Drop the database named in the stamp file; no-op without a stamp.

    The stamp file is removed even when dropping fails.
    """
    environ = os.environ if environ is None else environ
    stamp_path = Path(stamp_path or DEFAULT_STAMP)
    name = read_stamp(stamp_path)
    if name is None:
        stamp_path.unlink(missing_ok=True)
        return None
    try:
        _check_name(name)
        if _dialect(environ) == "postgresql":
            engine = admin_engine(environ)
            try:
                with engine.connect() as conn:
                    conn.execute(
                        text(
                            "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                            "WHERE datname = :name AND pid <> pg_backend_pid()"
                        ),
                        {"name": name},
                    )
                    conn.execute(text(f'DROP DATABASE IF EXISTS "{name}"'))
            finally:
                engine.dispose()
        else:
            _sqlite_path(name, environ).unlink(missing_ok=True)
        logger.info("dropped test database %s", name)
    finally:
        stamp_path.unlink(missing_ok=True)
    return name
