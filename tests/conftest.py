import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from storyvault.application.post_lifecycle import PostLifecycleService, PostSubmission
from storyvault.domain.entities import Author, Post
from storyvault.infrastructure.database.database import enable_sqlite_transactions

START_TIME = datetime(2025, 3, 1, 12, 0, 0)


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, start: datetime = START_TIME):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    def set(self, moment: datetime) -> None:
        self.current = moment


class RecordingNotifier:
    """Notification gateway that remembers what it was asked to send."""

    def __init__(self, fail_with: Exception | None = None):
        self.sent: list[tuple[Post, Author]] = []
        self.fail_with = fail_with

    def notify(self, post: Post, author: Author) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((post, author))


def _get_test_database_url() -> str:
    """Get database URL for testing based on environment."""
    if os.getenv("TEST_DATABASE") == "postgresql":
        return os.getenv(
            "DATABASE_URL",
            "postgresql://storyvault_user:storyvault_password"
            "@localhost:5432/storyvault",
        )
    return "sqlite://"  # Default: in-memory SQLite


def make_sqlite_engine(database_url: str = "sqlite://") -> Engine:
    """SQLite engine with the same transaction handling as the application."""
    engine_kwargs = {"poolclass": StaticPool} if database_url == "sqlite://" else {}
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},
        **engine_kwargs,
    )
    enable_sqlite_transactions(engine)
    return engine


@pytest.fixture(name="engine")
def engine_fixture():
    database_url = _get_test_database_url()

    if database_url.startswith("postgresql"):
        engine = create_engine(database_url, pool_pre_ping=True)
    else:
        engine = make_sqlite_engine(database_url)

    SQLModel.metadata.create_all(engine)
    yield engine

    if database_url.startswith("postgresql"):
        SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine: Engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> FixedClock:
    return FixedClock()


@pytest.fixture(name="notifier")
def notifier_fixture() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(name="service")
def service_fixture(
    session: Session, clock: FixedClock, notifier: RecordingNotifier
) -> PostLifecycleService:
    return PostLifecycleService(session, clock=clock, notifier=notifier)


def submission(
    email: str = "alice@example.com",
    author: str = "Alice",
    message: str = "Hello from the test suite",
) -> PostSubmission:
    return PostSubmission(author=author, email=email, message=message)
