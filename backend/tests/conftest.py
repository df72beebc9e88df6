import os
import sys
from datetime import datetime, timedelta

import pytest

# Ensure the backend root (containing the `chessmatch` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from chessmatch import create_app, db, socketio
from chessmatch.realtime import NAMESPACE


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:3000']
    LOG_LEVEL = 'DEBUG'
    RECONNECT_TIMEOUT_SEC = 0.3
    WAITING_GAME_TTL_SEC = 300
    WAITING_SWEEP_INTERVAL_SEC = 5
    CLOCK_TOLERANCE_SEC = 1


class FakeClock:
    """Settable wall clock (naive UTC)."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def emit(self, event, payload, to=None):
        self.sent.append((event, payload, to))

    def events(self, name=None, to=None):
        return [
            (e, p, t) for (e, p, t) in self.sent
            if (name is None or e == name) and (to is None or t == to)
        ]


class ManualScheduler:
    """Scheduler whose tasks only run when the test fires them."""

    def __init__(self):
        self.armed = {}

    def arm(self, key, delay, action):
        self.armed[key] = (delay, action)

    def cancel(self, key):
        return self.armed.pop(key, None) is not None

    def is_armed(self, key):
        return key in self.armed

    def fire(self, key):
        _, action = self.armed.pop(key)
        action()


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import chessmatch.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def runtime(flask_app):
    return flask_app.extensions['chessmatch']


@pytest.fixture()
def users(flask_app):
    from chessmatch.models import User
    created = {}
    for name in ('alice', 'bob', 'carol'):
        user = User(username=name)
        db.session.add(user)
        created[name] = user
    db.session.commit()
    return {name: user.id for name, user in created.items()}


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def lifecycle(flask_app, fake_clock):
    from chessmatch.services.games.lifecycle import MatchLifecycle
    return MatchLifecycle(clock=fake_clock)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace=NAMESPACE,
        )
        test_client.get_received(NAMESPACE)  # drop the connect greeting
        clients.append(test_client)
        return test_client

    yield make
    for test_client in clients:
        if test_client.is_connected(NAMESPACE):
            test_client.disconnect(namespace=NAMESPACE)


def reload_game(game_id):
    from chessmatch.models import Game
    db.session.expire_all()
    return db.session.get(Game, game_id)
