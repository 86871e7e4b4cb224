from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from betpool.main import main
    flask_app.register_blueprint(main)

    from betpool.api.rounds import rounds
    from betpool.api.settlement import settlement
    from betpool.api.ranking import ranking
    from betpool.api.notifications import notifications
    flask_app.register_blueprint(rounds, url_prefix='/api/rounds')
    flask_app.register_blueprint(settlement, url_prefix='/api')
    flask_app.register_blueprint(ranking, url_prefix='/api/ranking')
    flask_app.register_blueprint(notifications, url_prefix='/api/notifications')

    from betpool.services.settlement.errors import SettlementError

    @flask_app.errorhandler(SettlementError)
    def handle_settlement_error(exc):
        if exc.status_code >= 500:
            flask_app.logger.error(f"[error] {exc.__class__.__name__}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    from betpool.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from betpool.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    _register_commands(flask_app)

    return flask_app


def _register_commands(flask_app):

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from betpool.seed import seed_demo_data
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            seed_demo_data()
            click.echo('Database has been reset and seeded!')

    @click.command('rounds-tick')
    def rounds_tick_command():
        """Runs one round lifecycle pass (status transitions, pending notifications)."""
        from betpool.services.settlement.scheduler import run_lifecycle_pass
        with flask_app.app_context():
            statuses = run_lifecycle_pass(flask_app)
            for round_id, status in statuses.items():
                click.echo(f'round {round_id}: {status}')

    @click.command('recompute-points')
    def recompute_points_command():
        """Rescores every finished match and rebuilds user totals from bets."""
        from betpool.services.settlement.coordinator import recompute_all_points
        with flask_app.app_context():
            rescored = recompute_all_points()
            click.echo(f'Rescored {rescored} bets.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(rounds_tick_command)
    flask_app.cli.add_command(recompute_points_command)
