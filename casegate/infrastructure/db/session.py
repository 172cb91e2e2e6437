from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from casegate.infrastructure.db.engine import get_engine

SessionFactory = Callable[[], AbstractContextManager[Session]]

engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def make_session_scope(bound_engine: Engine) -> SessionFactory:
    """``session_scope`` bound to another engine (tests, tools)."""
    factory = sessionmaker(bind=bound_engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

    @contextmanager
    def scope() -> Iterator[Session]:
        session: Session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope
