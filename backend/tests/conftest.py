import os
import sys
import random
import pytest

# Ensure the backend root (containing the `arena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from arena import create_app, db, socketio
from arena.errors import ExternalLookupFailure
from arena.services.directory import DirectoryUser


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    NEYNAR_API_KEY = 'test-key'
    NEYNAR_SIGNER_UUID = ''
    BROADCAST_ENABLED = True
    RESET_DELAY_SEC = 0
    ROSTER_SIZE = 5
    MUTUAL_OPPONENT_PAIRS = '1:2'
    WEAPONS = 'Sword,Axe'
    CORS_ORIGINS = 'http://localhost:3000'


class FakeDirectory:
    """In-memory stand-in for the Neynar directory."""

    def __init__(self):
        self.users = {}
        self.follows = {}
        self.casts = []
        self.down = set()  # names of operations that raise

    def add_user(self, player_id, username):
        user = DirectoryUser(id=player_id, username=username)
        self.users[player_id] = user
        return user

    def _check(self, operation):
        if operation in self.down:
            raise ExternalLookupFailure(f"{operation} unavailable")

    def lookup_users(self, player_ids):
        self._check('lookup')
        return {pid: self.users[pid] for pid in player_ids if pid in self.users}

    def search_user(self, query):
        self._check('search')
        for user in self.users.values():
            if user.username.lower() == query.lower():
                return user
        return None

    def following(self, player_id, limit=5):
        self._check('following')
        return [self.users[pid] for pid in self.follows.get(player_id, []) if pid in self.users][:limit]

    def publish_cast(self, text):
        self._check('cast')
        self.casts.append(text)


class ScriptedRandom:
    """Returns queued values first; with nothing queued, retaliation never triggers."""

    def __init__(self):
        self._fallback = random.Random(1234)
        self.damages = []
        self.rolls = []

    def randint(self, a, b):
        if self.damages:
            return self.damages.pop(0)
        return self._fallback.randint(a, b)

    def random(self):
        if self.rolls:
            return self.rolls.pop(0)
        return 0.99


class TaskRecorder:
    """Collects background tasks instead of starting them."""

    def __init__(self):
        self.tasks = []

    def __call__(self, fn, *args, **kwargs):
        self.tasks.append((fn, args, kwargs))

    def run_all(self):
        tasks, self.tasks = self.tasks, []
        for fn, args, kwargs in tasks:
            fn(*args, **kwargs)
        return len(tasks)


@pytest.fixture()
def directory():
    fake = FakeDirectory()
    for pid, name in [(1, 'alice'), (2, 'bob'), (3, 'cara'), (4, 'dan'), (5, 'erin')]:
        fake.add_user(pid, name)
    fake.follows[1] = [3, 4]
    return fake


@pytest.fixture()
def rng():
    return ScriptedRandom()


@pytest.fixture()
def tasks():
    return TaskRecorder()


@pytest.fixture()
def flask_app(directory, rng, tasks):
    application = create_app(TestConfig, directory=directory, rng=rng, spawn=tasks)
    with application.app_context():
        # Ensure models are imported so tables are created
        import arena.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def services(flask_app):
    return flask_app.extensions['arena']


@pytest.fixture()
def store(services):
    return services.store


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
