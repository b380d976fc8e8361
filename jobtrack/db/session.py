from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from jobtrack.core.config import settings


def build_engine(url: Optional[str] = None) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


def build_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine or build_engine(),
    )


def get_db(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    db = (factory or build_session_factory())()
    try:
        yield db
    finally:
        db.close()
