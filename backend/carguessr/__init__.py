from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

ENGINE_KEY = 'carguessr.engine'


def get_engine():
    """The GameEngine owned by the current app."""
    return current_app.extensions[ENGINE_KEY]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Build the game engine; tests may inject their own listing provider
    from carguessr.listings import InMemoryListingProvider
    from carguessr.services.challenges import ChallengeService
    from carguessr.services.game.engine import GameEngine
    from carguessr.services.game.settings import GameSettings
    from carguessr.services.leaderboard.store import LeaderboardStore

    settings = GameSettings.from_config(flask_app.config)
    provider = flask_app.config.get('LISTING_PROVIDER')
    if provider is None:
        provider = InMemoryListingProvider.from_cache_files({
            'easy': flask_app.config.get('LISTINGS_EASY_PATH'),
            'hard': flask_app.config.get('LISTINGS_HARD_PATH'),
        })
    flask_app.extensions[ENGINE_KEY] = GameEngine(
        provider,
        settings,
        store=LeaderboardStore(settings),
        challenges=ChallengeService(settings),
    )

    # Import and register blueprints here
    from carguessr.api.game import api
    flask_app.register_blueprint(api, url_prefix='/api')

    from carguessr.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the database schema."""
        import carguessr.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    @click.command('migrate-leaderboard')
    @click.argument('source_path', type=click.Path(exists=True, dir_okay=False))
    def migrate_leaderboard_command(source_path):
        """Imports a legacy leaderboard.json into the database (safe to re-run)."""
        from carguessr.errors import GameError
        with flask_app.app_context():
            try:
                count = flask_app.extensions[ENGINE_KEY].migrate_legacy_leaderboard(source_path)
            except GameError as exc:
                raise click.ClickException(exc.message)
            print(f'Migrated {count} leaderboard entries from {source_path}')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(migrate_leaderboard_command)

    return flask_app
