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


def _split(raw):
    return [item.strip() for item in (raw or '').split(',') if item.strip()]


def create_app(config_class=Config, directory=None, rng=None, spawn=None):
    """Build the application.

    ``directory``, ``rng`` and ``spawn`` replace the Neynar client, the
    damage RNG and the background-task launcher; tests pass fakes for them.
    """
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.config['WEAPON_CATALOG'] = _split(flask_app.config.get('WEAPONS', ''))

    allowed_origins = _split(flask_app.config.get('CORS_ORIGINS', ''))
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from arena.errors import GameError

    @flask_app.errorhandler(GameError)
    def handle_game_error(err):
        if err.status_code >= 500:
            flask_app.logger.error(f"[error] {err.__class__.__name__}: {err.message}")
        return jsonify(err.to_dict()), err.status_code

    _init_services(flask_app, directory=directory, rng=rng, spawn=spawn)

    from arena.api.state import state
    flask_app.register_blueprint(state, url_prefix='/api')

    from arena.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    from arena.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @flask_app.route('/')
    def index():
        return jsonify({'message': 'Welcome to the Arena game server!'})

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the key-value tables."""
        import arena.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('reset-hp')
    @click.argument('player_ids', nargs=-1, type=int, required=True)
    def reset_hp_command(player_ids):
        """Sets HP back to 100 for the given player ids."""
        with flask_app.app_context():
            flask_app.extensions['arena'].store.reset_hp(player_ids)
            print(f'Reset HP for {len(player_ids)} player(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(reset_hp_command)

    return flask_app


def _init_services(flask_app, directory=None, rng=None, spawn=None):
    from arena.services.broadcast import BroadcastQueue
    from arena.services.directory import NeynarDirectory
    from arena.services.game import GameServices
    from arena.services.game.engine import AttackEngine
    from arena.services.game.scheduler import ResetScheduler
    from arena.services.game.session import SessionManager, parse_pairings
    from arena.socketio_events import emit_to_session
    from arena.store import KeyValueStore

    cfg = flask_app.config
    store = KeyValueStore()
    directory = directory or NeynarDirectory.from_config(cfg)
    engine = AttackEngine(store, rng=rng)
    broadcaster = BroadcastQueue(directory, enabled=bool(cfg.get('BROADCAST_ENABLED', True)))
    scheduler = ResetScheduler(flask_app, spawn=spawn)
    sessions = SessionManager(
        store,
        directory,
        engine,
        broadcaster,
        scheduler,
        reset_delay=float(cfg.get('RESET_DELAY_SEC', 5)),
        roster_size=int(cfg.get('ROSTER_SIZE', 5)),
        pairings=parse_pairings(cfg.get('MUTUAL_OPPONENT_PAIRS', '')),
        notify=emit_to_session,
    )
    flask_app.extensions['arena'] = GameServices(
        store=store,
        directory=directory,
        engine=engine,
        broadcaster=broadcaster,
        scheduler=scheduler,
        sessions=sessions,
    )
    # Tests drain the queue themselves
    if not cfg.get('TESTING'):
        broadcaster.start(socketio)
