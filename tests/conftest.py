"""Pytest fixtures: one in-memory SQLite database per test."""

from __future__ import annotations

import os

# Point the process-wide engine at memory before groupvote is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone
from typing import Callable, Generator, Iterable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from groupvote.database import get_db, init_db, sqlite_pragmas
from groupvote.main import create_app
from groupvote.models.activity import Activity
from groupvote.models.user import User


class ScriptedRng:
    """Stands in for random.Random: choice() returns the scripted symbols in order."""

    def __init__(self, symbols: Iterable[str]) -> None:
        self._symbols = iter(symbols)

    def choice(self, seq):  # noqa: ANN001
        symbol = next(self._symbols)
        assert symbol in seq
        return symbol


@pytest.fixture
def scripted_rng() -> Callable[..., ScriptedRng]:
    def _make(*codes: str) -> ScriptedRng:
        return ScriptedRng("".join(codes))

    return _make


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    sqlite_pragmas(engine)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as s:
        yield s


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_user(session) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(first_name: str = "Ada", last_name: str = "Lovelace", role: str = "user") -> User:
        counter["n"] += 1
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=f"user{counter['n']}@example.com",
            role=role,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_activity(session) -> Callable[..., Activity]:
    def _make(
        name: str,
        latitude: float = 34.0522,
        longitude: float = -118.2437,
        category: str = "food",
        description: str = "",
        created_at: Optional[datetime] = None,
    ) -> Activity:
        activity = Activity(
            name=name,
            description=description,
            latitude=latitude,
            longitude=longitude,
            category=category,
        )
        if created_at is not None:
            activity.created_at = created_at
        session.add(activity)
        session.commit()
        session.refresh(activity)
        return activity

    return _make


@pytest.fixture
def hour_from(now) -> Callable[[int], datetime]:
    def _at(hours: int) -> datetime:
        return now + timedelta(hours=hours)

    return _at


@pytest.fixture
def client(engine) -> Generator[TestClient, None, None]:
    app = create_app(create_tables=False)

    def _get_db():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
