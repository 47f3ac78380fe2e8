"""Apply or roll back the Alembic migrations in migrations/.

Usage:
    python run_migrations.py                 # upgrade to head
    python run_migrations.py --down 0004     # downgrade to revision 0004
    python run_migrations.py --down base     # drop everything
"""
import argparse
from pathlib import Path

from alembic import command
from alembic.config import Config

BASE = Path(__file__).parent


def build_config(url: str = None) -> Config:
    cfg = Config(str(BASE / "alembic.ini"))
    cfg.set_main_option("script_location", str(BASE / "migrations"))
    if url:
        cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return cfg


def run(target: str = "head", down: bool = False, url: str = None):
    """Upgrade to `target`, or downgrade to it when `down` is true.

    Without `url` the database comes from the application settings.
    """
    cfg = build_config(url)
    if down:
        print("Downgrading to:", target)
        command.downgrade(cfg, target)
    else:
        print("Upgrading to:", target)
        command.upgrade(cfg, target)
    print("Migrations applied.")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("target", nargs="?", default="head")
    parser.add_argument("--down", metavar="REVISION", help="downgrade to REVISION instead of upgrading")
    parser.add_argument("--url", help="SQLAlchemy URL; defaults to DATABASE_URL / DB_* settings")
    args = parser.parse_args()
    if args.down:
        run(args.down, down=True, url=args.url)
    else:
        run(args.target, url=args.url)
