from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS', [])
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Register blueprints
    from chessmatch.main import main
    flask_app.register_blueprint(main)

    from chessmatch.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from chessmatch.errors import GameError

    @flask_app.errorhandler(GameError)
    def handle_game_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    # One runtime per process: seat table, draw offers, countdowns
    from chessmatch.services.games import GameRuntime
    runtime = GameRuntime(flask_app, socketio)
    flask_app.extensions['chessmatch'] = runtime

    from chessmatch.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from chessmatch.services.games.scheduler import start_waiting_sweep
    start_waiting_sweep(flask_app, socketio, runtime.lobby)

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from chessmatch.models import User
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            for name in ['alice', 'bob', 'carol']:
                db.session.add(User(username=name))

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
