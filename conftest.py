from datetime import datetime, timezone
from typing import Generator

import pytest
from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from jobtrack.core.clock import ManualClock
from jobtrack.db.base import Base
from jobtrack.db.session import build_engine, build_session_factory

# Load environment variables from .env file
load_dotenv()

# Wednesday
START = datetime(2024, 1, 3, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> ManualClock:
    """Virtual clock starting on a Wednesday morning (UTC)."""
    return ManualClock(START)


# Fixture for an in-memory SQLite database for testing
@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """Yield a SQLAlchemy engine for an in-memory SQLite database."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine: Engine) -> sessionmaker:
    return build_session_factory(db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Yield a database session for a single test function."""
    session = session_factory()
    yield session
    session.close()
