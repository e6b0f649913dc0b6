from flask import Flask
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
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    _init_match_services(flask_app)

    # Import and register blueprints here
    from cardduel.main import main
    flask_app.register_blueprint(main)

    from cardduel.api.lobby import lobby
    flask_app.register_blueprint(lobby, url_prefix='/api')

    # Importing here ensures the handlers bind to the initialized socketio instance
    from cardduel.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database tables."""
        from cardduel import models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('rooms-expire')
    def rooms_expire_command():
        """Marks waiting private rooms past their expiry as expired."""
        from cardduel.services import rooms
        with flask_app.app_context():
            count = rooms.expire_stale_rooms()
            print(f'Expired {count} private room(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(rooms_expire_command)

    return flask_app


def _init_match_services(flask_app):
    """Build the match orchestrator and the matchmaking queue for this app."""
    from cardduel.services.games import scheduler
    from cardduel.services.games.engine import MatchTimings
    from cardduel.services.games.orchestrator import MatchService
    from cardduel.services.games.scoring import StatsRecorder
    from cardduel.services.matchmaking import MatchmakingQueue

    cfg = flask_app.config
    # Timers are runtime-only; tests drive them by hand unless explicitly enabled
    if cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'):
        spawn = scheduler.discard_spawn
    else:
        spawn = scheduler.BackgroundSpawner(socketio, flask_app.logger,
                                            heartbeat=float(cfg.get('TIMER_HEARTBEAT_SEC', 0)))

    def publish(handle, event, payload):
        socketio.emit(event, payload, to=handle, namespace='/ws')

    flask_app.extensions['match_service'] = MatchService(
        timings=MatchTimings.from_config(cfg),
        publish=publish,
        stats=StatsRecorder(flask_app),
        spawn=spawn,
        logger=flask_app.logger,
    )
    flask_app.extensions['matchmaking'] = MatchmakingQueue()
