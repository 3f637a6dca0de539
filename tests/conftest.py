"""Shared fixtures: in-memory SQLite database and an authenticated API client."""

import os

# Must be set before app.core.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TOKENS", '["test-token"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.db import get_db
from app.main import app
from app.models.orm.base import Base

AUTH_HEADERS = {"Authorization": "Bearer test-token"}


@pytest.fixture
def db_engine():
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
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    """API client whose requests use the test database."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    # Not entered as a context manager, so the startup lifespan does not run
    yield TestClient(app, headers=AUTH_HEADERS)
    app.dependency_overrides.clear()


def experiment_payload(**overrides) -> dict:
    payload = {
        "name": "Pricing page headline",
        "description": "Does a price anchor lift checkout?",
        "hypothesis": "Anchoring raises conversion",
        "test_type": "pricing",
        "traffic_allocation": 100,
        "variants": [
            {"variant_name": "control", "traffic_weight": 50, "is_control": True},
            {
                "variant_name": "anchor",
                "traffic_weight": 50,
                "configuration_json": {"anchor_price_cents": 19900},
            },
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_payload():
    return experiment_payload
