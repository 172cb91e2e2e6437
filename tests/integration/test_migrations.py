from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, cast

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect, text

from casegate.bootstrap import startup
from casegate.infrastructure.db.engine import get_engine
from casegate.infrastructure.db.models_sqlalchemy import Base
from casegate.infrastructure.db.repositories.user_repo import UserRepository
from casegate.infrastructure.db.session import make_session_scope

MIGRATION_MODULE = "casegate.infrastructure.db.migrations.versions.0001_initial_schema"


def _run_migration(connection, *, fn_name: str) -> None:
    module = cast(Any, importlib.import_module(MIGRATION_MODULE))
    context = MigrationContext.configure(connection)
    operations = Operations(context)
    original_op = module.op
    try:
        module.op = operations
        getattr(module, fn_name)()
    finally:
        module.op = original_op


def _table_names(connection) -> set[str]:
    rows = connection.execute(text("SELECT name FROM sqlite_master WHERE type='table'")).fetchall()
    return {str(row[0]) for row in rows}


def test_initial_schema_upgrade_and_downgrade(tmp_path: Path) -> None:
    db_path = tmp_path / "schema.db"
    engine = create_engine(f"sqlite:///{db_path.as_posix()}", future=True)

    with engine.begin() as connection:
        _run_migration(connection, fn_name="upgrade")
        assert set(Base.metadata.tables) <= _table_names(connection)

        _run_migration(connection, fn_name="downgrade")
        assert not set(Base.metadata.tables) & _table_names(connection)


def test_migrated_schema_matches_models(tmp_path: Path) -> None:
    url = f"sqlite:///{(tmp_path / 'migrated.db').as_posix()}"

    assert startup.run_migrations(url) is True

    inspector = inspect(create_engine(url, future=True))
    for name, table in Base.metadata.tables.items():
        migrated = {column["name"] for column in inspector.get_columns(name)}
        assert migrated == {column.name for column in table.columns}, name


def test_initialize_database_then_seed_a_user(tmp_path: Path) -> None:
    db_file = tmp_path / "casegate.db"
    url = f"sqlite:///{db_file.as_posix()}"

    assert startup.initialize_database(database_url=url, db_file=db_file) is True
    assert startup.run_migrations(url) is True

    session_factory = make_session_scope(get_engine(url, echo=False))
    assert startup.has_users(session_factory) is False
    with session_factory() as session:
        UserRepository().create(session, login="admin", role="admin", full_name="Ada Admin")
    assert startup.has_users(session_factory) is True
