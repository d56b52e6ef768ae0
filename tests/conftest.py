import datetime

import pytest
from fastapi.testclient import TestClient

from checkin_hub.database import create_session_factory, init_db
from checkin_hub.main import create_app
from checkin_hub.settings import Settings

# Wednesday
NOW = datetime.datetime(2024, 5, 15, 9, 30)
TODAY = NOW.date()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'visitors.db'}"


@pytest.fixture
def session_factory(database_url):
    factory = create_session_factory(database_url, timeout=5.0)
    init_db(factory.kw["bind"])
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings(database_url):
    return Settings(database_url=database_url, command_timeout=5.0, send_timeout=2.0)


@pytest.fixture
def app(settings, session_factory):
    return create_app(settings, session_factory)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def notifications(app):
    """Counts visitor-updated notifications fired by the app."""
    fired = []
    app.state.notifier.subscribe(lambda: fired.append(1))
    return fired
