from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from casegate.config import DB_FILE, LOG_DIR, settings
from casegate.infrastructure.db.models_sqlalchemy import User

PACKAGE_DIR = Path(__file__).resolve().parent.parent
MIGRATIONS_DIR = PACKAGE_DIR / "infrastructure" / "db" / "migrations"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(log_dir: Path = LOG_DIR, level: int | None = None) -> Path:
    log_path = Path(log_dir) / "casegate.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level if level is None else level)
    for existing in root_logger.handlers:
        if isinstance(existing, RotatingFileHandler) and Path(existing.baseFilename) == log_path.resolve():
            return log_path

    handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    return log_path


def check_startup_prerequisites(db_file: Path = DB_FILE) -> bool:
    logger = logging.getLogger(__name__)
    if not MIGRATIONS_DIR.exists():
        logger.error("Migrations directory is missing: %s", MIGRATIONS_DIR)
        return False
    try:
        test_file = db_file.parent / ".write_test"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
    except OSError:
        logger.exception("Database directory is not writable: %s", db_file.parent)
        return False
    return True


def alembic_config(database_url: str | None = None) -> Config:
    # No ini file: alembic.ini logging sections would replace the handlers set up here.
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", database_url or settings.database_url)
    return cfg


def run_migrations(database_url: str | None = None) -> bool:
    try:
        command.upgrade(alembic_config(database_url), "head")
        return True
    except Exception:  # noqa: BLE001
        logging.getLogger(__name__).exception("Failed to run migrations")
        return False


def has_users(session_factory) -> bool:
    try:
        with session_factory() as session:
            return session.execute(select(User.id).limit(1)).first() is not None
    except SQLAlchemyError:
        logging.getLogger(__name__).exception("Failed to check users")
        return False


def initialize_database(*, database_url: str | None = None, db_file: Path = DB_FILE) -> bool:
    if not check_startup_prerequisites(db_file):
        return False
    return run_migrations(database_url)
