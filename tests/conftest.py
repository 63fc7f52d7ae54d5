from functools import wraps

import pytest
from flask import g

# Patch auth decorators BEFORE importing create_app, so blueprints
# are registered with the mocked versions.
import versemarks.middleware.auth as auth_module

TEST_USER_ID = 'test-user'

_original_require_auth = auth_module.require_auth


def _mock_require_auth(f):
    """Mock require_auth: skip JWT validation, set g.user_id to the test user."""
    @wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = TEST_USER_ID
        g.jwt_payload = {'sub': TEST_USER_ID}
        return f(*args, **kwargs)
    return decorated


# Apply patches before any blueprint imports
auth_module.require_auth = _mock_require_auth

from versemarks import create_app
from versemarks.extensions import db as _db
from versemarks.config import TestConfig
from versemarks.services.events import EventBus


class EventRecorder:
    """Subscriber that keeps every event it sees, in order."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self):
        self.events.clear()


@pytest.fixture
def app():
    """Create a test Flask application with SQLite in-memory database."""
    application = create_app(TestConfig)

    with application.app_context():
        _db.create_all()

        yield application

        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Create a test client with mocked JWT auth."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def control(app):
    return app.extensions['bookmark_control']


@pytest.fixture
def recorder(app):
    """Captures everything published on the app's event bus."""
    rec = EventRecorder()
    app.extensions['event_bus'].subscribe(rec)
    return rec


@pytest.fixture
def bus():
    return EventBus()
