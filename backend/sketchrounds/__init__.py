from flask import Flask, jsonify
from flask.cli import AppGroup
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
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Socket.IO rooms are the pub/sub channel; a message queue fans out across processes
    socketio.init_app(
        flask_app,
        cors_allowed_origins=allowed_origins,
        message_queue=flask_app.config.get('SOCKETIO_MESSAGE_QUEUE'),
    )

    from sketchrounds.main import main
    flask_app.register_blueprint(main)

    from sketchrounds.api.timers import timers
    flask_app.register_blueprint(timers, url_prefix='/api/timers')

    from sketchrounds.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from sketchrounds.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    flask_app.cli.add_command(_timers_cli(flask_app))

    return flask_app


def _timers_cli(flask_app):
    timers_cli = AppGroup('timers', help='Phase timer maintenance commands.')

    @timers_cli.command('tick')
    def tick_command():
        """Run one monitoring tick and print the result."""
        from sketchrounds.services.timers.monitor import run_tick
        result = run_tick(flask_app)
        click.echo(result.to_dict())

    @timers_cli.command('watch')
    @click.option('--interval', type=int, default=None, help='Seconds between ticks.')
    def watch_command(interval):
        """Tick forever, like the hosted cron would (local development)."""
        from sketchrounds.services.timers.monitor import TimerMonitor
        monitor = TimerMonitor(interval=interval)
        click.echo(f'Monitoring every {monitor.interval_for(flask_app)}s, Ctrl+C to stop')
        try:
            monitor.run_forever(flask_app)
        except KeyboardInterrupt:
            monitor.stop()

    @timers_cli.command('locks')
    def locks_command():
        """Show advisory lock leases."""
        from sketchrounds.services.timers.locks import lease_status
        rows = lease_status()
        if not rows:
            click.echo('No advisory locks held')
        for row in rows:
            click.echo(
                f"{row['lock_key']} by={row['acquired_by']} age={row['age_seconds']}s "
                f"timeout={row['timeout_seconds']}s stuck={row['is_stuck']}"
            )

    @timers_cli.command('unlock')
    def unlock_command():
        """Force-release leases older than their timeout."""
        from sketchrounds.services.timers.locks import cleanup_stale_leases
        count = cleanup_stale_leases()
        click.echo(f'Released {count} stale lock(s)')

    return timers_cli
