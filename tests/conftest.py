"""Shared fixtures: an app over in-memory SQLite with two BOL.ST candlesticks."""

import pytest
from fastapi.testclient import TestClient

from stocker.api import create_app
from stocker.config import Settings
from stocker.database import get_db_session, init_db
from stocker.models import Candlestick

VALID_KEY = "test-api-key"
SECOND_KEY = "second-key"


@pytest.fixture
def app_settings():
    return Settings(_env_file=None, database_url="sqlite://", api_keys=f"{VALID_KEY}, {SECOND_KEY}")


@pytest.fixture
def app(app_settings):
    return create_app(app_settings)


@pytest.fixture
def seed(app):
    """Insert the two reference candlesticks and return their ids."""
    init_db(app.state.engine)
    with get_db_session(app.state.session_factory) as session:
        first = Candlestick(open=100, close=102, high=113, low=97, volume=5000, timestamp=1753038000, symbol="BOL.ST")
        second = Candlestick(open=102, close=104, high=115, low=99, volume=6000, timestamp=1753124400, symbol="BOL.ST")
        session.add_all([first, second])
        session.flush()
        ids = [first.id, second.id]
    return ids


@pytest.fixture
def client(app, seed):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth():
    return {"X-API-Key": VALID_KEY}


@pytest.fixture
def session(app, seed):
    db = app.state.session_factory()
    yield db
    db.close()
