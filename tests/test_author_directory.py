import threading

import pytest
from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, select

from conftest import FixedClock, make_sqlite_engine
from storyvault.application.author_directory import AuthorDirectory
from storyvault.infrastructure.database.models import Author as AuthorModel
from storyvault.infrastructure.database.repositories import AuthorRepository


def _directory(session: Session, clock: FixedClock) -> AuthorDirectory:
    return AuthorDirectory(AuthorRepository(session), clock)


def _author_count(session: Session) -> int:
    return session.exec(select(func.count()).select_from(AuthorModel)).one()


def test_creates_new_author(session: Session, clock: FixedClock):
    directory = _directory(session, clock)

    author = directory.find_or_create("alice@example.com", "Alice", "10.0.0.1")
    session.commit()

    assert author is not None
    assert author.id is not None
    assert author.created_at == clock.now()
    assert author.last_post_at is None
    assert _author_count(session) == 1


def test_existing_author_gets_profile_refreshed(session: Session, clock: FixedClock):
    directory = _directory(session, clock)
    first = directory.find_or_create("alice@example.com", "Alice", "10.0.0.1")
    session.commit()
    assert first is not None

    clock.advance(minutes=10)
    again = directory.find_or_create("alice@example.com", "Ally", "10.0.0.2")

    assert again is not None
    assert again.id == first.id
    assert again.name == "Ally"
    assert again.ip_address == "10.0.0.2"
    assert again.updated_at == clock.now()
    assert again.created_at == first.created_at
    assert _author_count(session) == 1


def test_empty_email_or_name_is_refused(session: Session, clock: FixedClock):
    directory = _directory(session, clock)

    assert directory.find_or_create("", "Alice", "10.0.0.1") is None
    assert directory.find_or_create("alice@example.com", "  ", "10.0.0.1") is None
    assert directory.find_by_email("") is None
    assert _author_count(session) == 0


def test_lost_creation_race_adopts_existing_row(
    session: Session, clock: FixedClock, monkeypatch: pytest.MonkeyPatch
):
    repo = AuthorRepository(session)
    directory = AuthorDirectory(repo, clock)
    winner = directory.find_or_create("alice@example.com", "Alice", "10.0.0.1")
    session.commit()
    assert winner is not None

    # Simulate the lookup running before the other request committed
    original_find = repo.find_by_email
    calls = {"count": 0}

    def find_after_first_miss(email: str):
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return original_find(email)

    monkeypatch.setattr(repo, "find_by_email", find_after_first_miss)

    clock.advance(seconds=1)
    loser = directory.find_or_create("alice@example.com", "Alice2", "10.0.0.2")

    assert loser is not None
    assert loser.id == winner.id
    assert loser.name == "Alice2"
    assert calls["count"] == 2
    assert _author_count(session) == 1


def test_storage_failure_returns_none(
    session: Session, clock: FixedClock, monkeypatch: pytest.MonkeyPatch
):
    repo = AuthorRepository(session)
    directory = AuthorDirectory(repo, clock)

    def unavailable(_email: str):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(repo, "find_by_email", unavailable)

    assert directory.find_or_create("alice@example.com", "Alice", "10.0.0.1") is None
    assert directory.find_by_email("alice@example.com") is None


def test_concurrent_creation_yields_one_author(tmp_path, clock: FixedClock):
    engine = make_sqlite_engine(f"sqlite:///{tmp_path / 'race.db'}")
    SQLModel.metadata.create_all(engine)

    workers = 8
    barrier = threading.Barrier(workers)
    results: list[int | None] = []
    errors: list[Exception] = []
    lock = threading.Lock()

    def submit(n: int) -> None:
        try:
            with Session(engine) as session:
                directory = _directory(session, clock)
                barrier.wait(timeout=10)
                author = directory.find_or_create(
                    "shared@example.com", f"Worker{n}", f"10.0.0.{n}"
                )
                session.commit()
                with lock:
                    results.append(author.id if author else None)
        except Exception as e:
            with lock:
                errors.append(e)

    threads = [threading.Thread(target=submit, args=(n,)) for n in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(results) == workers
    assert None not in results
    assert len(set(results)) == 1

    with Session(engine) as session:
        assert _author_count(session) == 1
    engine.dispose()
