import os
import sys
import time
import pytest

# Ensure the backend root (containing the `sketchrounds` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from sketchrounds import create_app, db, socketio
from config import Config


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    CRON_SECRET = 'test-cron-secret'
    TIMER_LOCK_BACKEND = 'database'
    TIMER_CONCURRENCY = 1
    TIMER_BATCH_LIMIT = 50
    DRAWING_GRACE_SEC = 15
    BRIEFING_DURATION_SEC = 20
    RESULTS_DURATION_SEC = 15
    BROADCAST_FULL_SNAPSHOT = True
    TIMER_MONITOR_IN_PROCESS = False
    SOCKETIO_MESSAGE_QUEUE = None


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import sketchrounds.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


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


@pytest.fixture()
def make_user(flask_app):
    from sketchrounds.models import User

    def _make(username, password='password'):
        user = User(username=username)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_game(flask_app, make_user):
    """Create a game in ``status`` whose phase expired ``expired_ago`` seconds ago.

    Pass a negative ``expired_ago`` for a timer still running. ``players``
    active participants are created; the first ``submitted`` of them have a
    drawing on record.
    """
    from sketchrounds.models import Game, Participant, Submission

    counter = {'n': 0}

    def _make(status='drawing', expired_ago=1.0, players=2, submitted=0, duration=60, **fields):
        now = time.time()
        expires_at = (now - expired_ago) if expired_ago is not None else None
        game = Game(
            status=status,
            prompt='a cat riding a bicycle',
            phase_duration=duration,
            phase_started_at=(expires_at - duration) if expires_at is not None else None,
            phase_expires_at=expires_at,
            **fields,
        )
        db.session.add(game)
        db.session.commit()
        for i in range(players):
            counter['n'] += 1
            user = make_user(f"player{counter['n']}")
            db.session.add(Participant(game_id=game.id, user_id=user.id))
            if i < submitted:
                db.session.add(Submission(game_id=game.id, user_id=user.id, drawing_url=f'https://cdn/{i}.png'))
        db.session.commit()
        return game
    return _make


@pytest.fixture()
def reload():
    """Fresh copy of a row after workers wrote to it through their own sessions."""
    def _reload(model, pk):
        db.session.expire_all()
        return db.session.get(model, pk)
    return _reload
