import os
import sys
import pytest

# Ensure the backend root (containing the `bankroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bankroom import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = []
    MIN_PLAYERS = 2
    MAX_PLAYERS = 8
    MIN_INITIAL_BALANCE = 1000
    MAX_INITIAL_BALANCE = 1000000000
    MAX_AMOUNT = 1000000000000
    ROOM_CODE_MAX_ATTEMPTS = 20
    PAY_LINK_SCHEME = 'bankgame'
    PAY_LINK_BASE_URL = 'https://bankgame.app'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import bankroom.models  # noqa: F401
        db.create_all()
    # Requests push their own app context, so Flask-Login state in `g` does
    # not leak between callers; sqlite:// keeps one shared connection.
    yield application
    with application.app_context():
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file backed SQLite database, where every thread gets its own connection."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'ledger.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'check_same_thread': False, 'timeout': 30}}

    application = create_app(FileConfig)
    with application.app_context():
        import bankroom.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture()
def app_ctx(flask_app):
    """Application context for calling services directly."""
    with flask_app.app_context():
        yield flask_app
        db.session.remove()


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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


def auth_headers(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture()
def sign_in(client):
    """Create an anonymous profile (optionally named); returns (profile, headers)."""

    def _sign_in(name=None, avatar='🎩'):
        data = client.post('/api/auth/anonymous').get_json()
        headers = auth_headers(data['token'])
        if name:
            client.put('/api/profile', json={'display_name': name, 'avatar': avatar}, headers=headers)
        return data['profile'], headers

    return _sign_in


@pytest.fixture()
def profiles(app_ctx):
    """Profiles created straight in the database for operation level tests."""
    from bankroom.models import Profile, new_id

    def _make(*names):
        made = []
        for name in names:
            profile = Profile(display_name=name, auth_token=new_id())
            db.session.add(profile)
            made.append(profile)
        db.session.commit()
        return made

    return _make
