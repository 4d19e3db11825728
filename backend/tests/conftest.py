"""
Shared fixtures.

Every test gets a fresh in-memory SQLite entity store. StaticPool keeps the
single connection alive so the schema survives across sessions.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from credora_indexer.database import get_db, init_db
from credora_indexer.main import app
from credora_indexer.services.indexing import IndexingEngine
from credora_indexer.services.source import InMemoryEventSource
from credora_indexer.services.store import EntityStore
from credora_indexer.services.indexing.daily_stats import DailyStatsAccumulator

from tests.factories import EventSequence


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return EntityStore(db)


@pytest.fixture
def buckets(store):
    return DailyStatsAccumulator(store)


@pytest.fixture
def seq():
    return EventSequence()


@pytest.fixture
def indexer(db):
    """Engine with retry sleeps disabled."""
    return IndexingEngine(db, sleep=lambda seconds: None)


@pytest.fixture
def apply_events(indexer):
    def _apply(*events):
        return indexer.run(InMemoryEventSource(events))
    return _apply


@pytest.fixture
def client(session_factory):
    """API client over the test store. Lifespan (init_db on the real engine) is not run."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
