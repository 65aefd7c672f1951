from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from bankroom.main import main
    flask_app.register_blueprint(main)

    from bankroom.api.auth import auth
    flask_app.register_blueprint(auth, url_prefix='/api')

    from bankroom.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    # Register Socket.IO event handlers (fan-out subscriptions)
    from bankroom.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login: callers authenticate with the bearer token issued to
    # their anonymous profile; no cookie session is involved.
    from bankroom.services.identity import find_profile_by_token, token_from_header

    @login_manager.request_loader
    def load_profile_from_request(req):
        token = token_from_header(req.headers.get('Authorization'))
        return find_profile_by_token(token) if token else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Sessão não encontrada. Tente novamente.', 'code': 'unauthorized'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the ledger tables."""
        import bankroom.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
