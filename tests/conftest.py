from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

import pytest

# casegate.config creates its directories at import time.
os.environ.setdefault("CASEGATE_DATA_DIR", tempfile.mkdtemp(prefix="casegate-tests-"))

from casegate.application.dto.auth_dto import ActorContext  # noqa: E402
from casegate.infrastructure.db.engine import get_engine  # noqa: E402
from casegate.infrastructure.db.models_sqlalchemy import Base  # noqa: E402
from casegate.infrastructure.db.repositories.case_repo import SurgicalCaseRepository  # noqa: E402
from casegate.infrastructure.db.repositories.user_repo import UserRepository  # noqa: E402
from casegate.infrastructure.db.session import SessionFactory, make_session_scope  # noqa: E402


@pytest.fixture
def tmp_path() -> Generator[Path, None, None]:
    base = Path("pytest_artifacts")
    base.mkdir(parents=True, exist_ok=True)
    path = base / uuid4().hex
    path.mkdir(parents=True, exist_ok=True)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def make_session_factory(db_path: Path) -> SessionFactory:
    engine = get_engine(f"sqlite:///{db_path.as_posix()}", echo=False)
    Base.metadata.create_all(engine)
    return make_session_scope(engine)


@dataclass(frozen=True)
class Staff:
    admin: ActorContext
    surgeon: ActorContext
    other_doctor: ActorContext
    nurse: ActorContext
    technician: ActorContext


def seed_staff(session_factory: SessionFactory) -> Staff:
    repo = UserRepository()
    with session_factory() as session:
        admin = repo.create(session, login="admin", role="admin", full_name="Ada Admin")
        surgeon = repo.create(session, login="surgeon", role="doctor", full_name="Sam Surgeon")
        other = repo.create(session, login="doctor2", role="doctor", full_name="Dana Doctor")
        nurse = repo.create(session, login="nurse", role="nurse", full_name="Nico Nurse")
        tech = repo.create(session, login="tech", role="theater_technician", full_name="Toni Tech")
        return Staff(
            admin=ActorContext(user_id=admin.id, login="admin", role="admin"),
            surgeon=ActorContext(user_id=surgeon.id, login="surgeon", role="doctor"),
            other_doctor=ActorContext(user_id=other.id, login="doctor2", role="doctor"),
            nurse=ActorContext(user_id=nurse.id, login="nurse", role="nurse"),
            technician=ActorContext(user_id=tech.id, login="tech", role="theater_technician"),
        )


def seed_case(
    session_factory: SessionFactory,
    surgeon_id: int,
    *,
    status: str = "DRAFT",
    urgency: str = "ELECTIVE",
    procedure_name: str | None = "Rhinoplasty",
    diagnosis: str | None = "Deviated nasal septum",
    side: str | None = None,
) -> int:
    repo = SurgicalCaseRepository()
    with session_factory() as session:
        patient = repo.create_patient(session, full_name="Pat Patient", sex="F")
        case = repo.create(
            session,
            patient_id=patient.id,
            primary_surgeon_id=surgeon_id,
            urgency=urgency,
            procedure_name=procedure_name,
            side=side,
            diagnosis=diagnosis,
        )
        case.status = status
        return int(case.id)


@pytest.fixture
def session_factory(tmp_path: Path) -> SessionFactory:
    return make_session_factory(tmp_path / "casegate.db")


@pytest.fixture
def staff(session_factory: SessionFactory) -> Staff:
    return seed_staff(session_factory)


@pytest.fixture
def make_case(session_factory: SessionFactory, staff: Staff):
    def _make(**kwargs) -> int:
        return seed_case(session_factory, staff.surgeon.user_id, **kwargs)

    return _make
