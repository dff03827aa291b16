"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database and a clock pinned to
2026-01-30 12:00 UTC unless it moves the clock itself.
"""
import os
import tempfile

# Keep the app module away from real log/database locations when imported
os.environ.setdefault("GAMIFY_DATABASE_URL", "sqlite://")
os.environ.setdefault("GAMIFY_LOG_DIR", tempfile.mkdtemp(prefix="gamify-logs-"))

import pytest
from datetime import date, datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gamify.database import Base
from gamify.models import Task, User
from gamify.services.completion_service import CompletionService, UserLocks
from gamify.services.date_service import DateService
from gamify.services.user_service import UserService


FIXED_NOW = datetime(2026, 1, 30, 12, 0, 0)


class FakeClock:
    """Mutable clock for DateService"""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture
def date_service(clock):
    return DateService(now_func=clock)


@pytest.fixture
def today(clock) -> date:
    return clock.current.date()


@pytest.fixture
def yesterday(today) -> date:
    return today - timedelta(days=1)


@pytest.fixture
def user(db_session) -> User:
    return UserService(db_session).register("alice")


@pytest.fixture
def completion_service(db_session, date_service):
    return CompletionService(db_session, date_service=date_service, locks=UserLocks())


@pytest.fixture
def make_task(db_session, user):
    """Factory for tasks owned by `user` (or another user)"""
    def _make_task(owner: User = None, **fields) -> Task:
        data = {"title": "Test task", "tier": "quick", "difficulty": "medium"}
        data.update(fields)
        task = Task(user_id=(owner or user).id, **data)
        db_session.add(task)
        db_session.commit()
        db_session.refresh(task)
        return task
    return _make_task


def set_progress(db_session, user: User, **fields) -> User:
    """Put a user into a given state directly (test setup only)"""
    for key, value in fields.items():
        setattr(user, key, value)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def set_user_progress(db_session):
    def _set(user: User, **fields) -> User:
        return set_progress(db_session, user, **fields)
    return _set
