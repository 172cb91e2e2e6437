from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from casegate.bootstrap import startup


def _file_handlers(log_path: Path) -> list[RotatingFileHandler]:
    return [
        handler
        for handler in logging.getLogger().handlers
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_path.resolve()
    ]


def test_configure_logging_installs_one_rotating_handler(tmp_path: Path) -> None:
    root_logger = logging.getLogger()
    previous_level = root_logger.level
    log_path = startup.configure_logging(tmp_path / "logs", logging.INFO)
    try:
        startup.configure_logging(tmp_path / "logs", logging.INFO)
        handlers = _file_handlers(log_path)

        assert len(handlers) == 1
        assert handlers[0].maxBytes == 2_000_000
        assert handlers[0].backupCount == 3

        logging.getLogger("casegate.test").info("case 42 moved")
        handlers[0].flush()
        assert "INFO casegate.test: case 42 moved" in log_path.read_text(encoding="utf-8")
    finally:
        for handler in _file_handlers(log_path):
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(previous_level)


def test_check_startup_prerequisites_handles_write_error(tmp_path: Path, monkeypatch) -> None:
    db_file = tmp_path / "data" / "casegate.db"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    original_write_text = Path.write_text

    def _failing_write(self: Path, data: str, encoding: str = "utf-8", errors: str | None = None) -> int:
        if self.name == ".write_test":
            raise OSError("permission denied")
        kwargs = {"encoding": encoding}
        if errors is not None:
            kwargs["errors"] = errors
        return original_write_text(self, data, **kwargs)

    monkeypatch.setattr(Path, "write_text", _failing_write)

    assert startup.check_startup_prerequisites(db_file) is False


def test_check_startup_prerequisites_accepts_writable_directory(tmp_path: Path) -> None:
    assert startup.check_startup_prerequisites(tmp_path / "casegate.db") is True
    assert not (tmp_path / ".write_test").exists()


def test_has_users_handles_sqlalchemy_error() -> None:
    class _BrokenSession:
        def execute(self, *args, **kwargs):  # noqa: ANN002, ANN003
            raise SQLAlchemyError("db unavailable")

    @contextmanager
    def _session_factory() -> Iterator[Session]:
        yield cast(Session, _BrokenSession())

    assert startup.has_users(_session_factory) is False


def test_run_migrations_reports_failure(monkeypatch) -> None:
    def _boom(*args, **kwargs):  # noqa: ANN002, ANN003
        raise RuntimeError("alembic exploded")

    monkeypatch.setattr(startup.command, "upgrade", _boom)

    assert startup.run_migrations("sqlite:///unused.db") is False
