"""QR Attendance service - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)


def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Attendance store, remote sync and backup
    setup_attendance(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'QR Attendance',
            'version': '1.0.0'
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from qr_attendance.api.auth import auth_bp
    from qr_attendance.api.sessions import sessions_bp
    from qr_attendance.api.attendance import attendance_bp
    from qr_attendance.api.reports import reports_bp
    from qr_attendance.api.backups import backups_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(reports_bp, url_prefix='/api/reports')
    app.register_blueprint(backups_bp, url_prefix='/api/backups')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from qr_attendance.utils.helpers import handle_error
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return handle_error(e, e.code)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error("Internal server error", 500)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.getLogger('qr_attendance').setLevel(level)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)
        logging.getLogger('qr_attendance').addHandler(file_handler)

        app.logger.setLevel(level)
        app.logger.info('QR Attendance startup')


def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models so metadata is complete
        from qr_attendance.models import User, StorageItem  # noqa: F401

        if app.testing or app.config.get('SNAPSHOT_STORAGE') == 'database':
            db.create_all()


def setup_attendance(app: Flask) -> None:
    """Create the attendance store and the services around it."""
    from qr_attendance.services.attendance_store import AttendanceStore
    from qr_attendance.services.backup_service import BackupService
    from qr_attendance.services.local_storage import create_storage
    from qr_attendance.services.sync_service import RemoteSyncAdapter

    storage = create_storage(app.config.get('SNAPSHOT_STORAGE', 'database'))
    backup = BackupService.from_config(app.config, storage)
    sync = RemoteSyncAdapter.from_config(app.config, fallback=backup)
    store = AttendanceStore.from_config(app.config, storage, sync)

    def log_change():
        app.logger.debug('Attendance store changed')

    store.subscribe(log_change)

    app.extensions['attendance_store'] = store
    app.extensions['backup_service'] = backup


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('create-instructor')
    @click.option('--admin', is_flag=True, help='Create an administrator instead')
    def create_instructor(admin):
        """Create an instructor account."""
        from qr_attendance.services.auth_service import AuthService

        email = click.prompt('Email')
        name = click.prompt('Name')
        password = click.prompt('Password', hide_input=True, confirmation_prompt=True)

        user, error = AuthService.create_staff(
            email=email,
            password=password,
            name=name,
            role='admin' if admin else 'instructor'
        )
        if error:
            click.echo(f'Error creating account: {error}')
            return
        click.echo(f'Account created: {user.email} ({user.role.value})')

    @app.cli.command('replay-outbox')
    def replay_outbox():
        """Push queued remote writes again."""
        store = app.extensions['attendance_store']
        backup = app.extensions['backup_service']

        result = backup.replay_outbox(store.sync)
        click.echo(
            f"Replayed {result['total']} writes: "
            f"{result['successful']} synced, {result['failed']} still pending"
        )
        for error in result['errors']:
            click.echo(f'  {error}')
