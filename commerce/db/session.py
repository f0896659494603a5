from contextlib import contextmanager
import os
from pathlib import Path
from typing import Callable, ContextManager, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..models.base import Base


SessionFactory = Callable[[], ContextManager[Session]]

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/app.db")


def build_engine(database_url: str = DATABASE_URL, **kwargs) -> Engine:
    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        # sqlite cannot create the parent directory on its own
        db_path = database_url.split("sqlite:///")[-1]
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"timeout": 15, "check_same_thread": False})
    return create_engine(database_url, future=True, **kwargs)


def make_session_factory(engine: Engine) -> SessionFactory:
    maker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def session_scope():
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return session_scope


def init_db(engine: Engine) -> None:
    # importing the package registers every table on Base.metadata
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)


_engine: Optional[Engine] = None
_session_factory: Optional[SessionFactory] = None


def configure(database_url: str) -> SessionFactory:
    global _engine, _session_factory
    _engine = build_engine(database_url)
    init_db(_engine)
    _session_factory = make_session_factory(_engine)
    return _session_factory


@contextmanager
def get_session():
    if _session_factory is None:
        configure(DATABASE_URL)
    with _session_factory() as session:
        yield session
