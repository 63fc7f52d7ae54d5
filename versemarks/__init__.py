import logging
import os
import sys

from flask import Flask, current_app, jsonify
from .extensions import db, migrate
from .config import DevConfig, ProdConfig


def _configure_logging(app):
    """Set up structured logging for production."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    ))
    level = logging.INFO if not app.debug else logging.DEBUG
    app.logger.setLevel(level)
    app.logger.addHandler(handler)
    engine_logger = logging.getLogger('versemarks')
    engine_logger.setLevel(level)
    if not engine_logger.handlers:
        engine_logger.addHandler(handler)
    logging.getLogger('gunicorn.error').setLevel(level)


def _ensure_schema(app):
    """Create missing tables on startup.

    Only runs when CREATE_SCHEMA_ON_STARTUP is set; production deployments
    go through Flask-Migrate instead.
    """
    if not app.config.get('CREATE_SCHEMA_ON_STARTUP'):
        return
    with app.app_context():
        try:
            db.create_all()
            app.logger.info('Schema check completed')
        except Exception as e:
            db.session.rollback()
            app.logger.warning('Schema check failed: %s', e)


def _init_bookmark_control(app):
    from .services.bookmark_control import BookmarkControl
    from .services.events import EventBus
    from .services.repository import BookmarkRepository, BookmarkSortOrder, PreferenceStore

    bus = EventBus()
    control = BookmarkControl(
        BookmarkRepository(db.session),
        PreferenceStore(db.session),
        bus,
        speak_label_name=app.config['SPEAK_LABEL_NAME'],
        speak_label_preference_key=app.config['SPEAK_LABEL_PREFERENCE_KEY'],
        default_order=BookmarkSortOrder.parse(app.config['DEFAULT_BOOKMARK_SORT_ORDER']),
    )
    app.extensions['event_bus'] = bus
    app.extensions['bookmark_control'] = control
    return control


def get_bookmark_control():
    """The BookmarkControl bound to the current app."""
    return current_app.extensions['bookmark_control']


def get_event_bus():
    return current_app.extensions['event_bus']


def create_app(config=None):
    app = Flask(__name__, static_folder=None)

    if config is None:
        config = ProdConfig if os.environ.get('FLASK_ENV') == 'production' else DevConfig
    app.config.from_object(config)

    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so they are registered with SQLAlchemy (needed for migrations)
    from . import models  # noqa: F401

    _ensure_schema(app)
    _init_bookmark_control(app)

    from flask_cors import CORS
    CORS(app)

    # Register blueprints
    from .api import register_blueprints, register_error_handlers
    register_blueprints(app)
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/healthz')
    def health_check():
        try:
            db.session.execute(db.text('SELECT 1'))
            return jsonify(status='healthy'), 200
        except Exception:
            app.logger.exception('Health check failed')
            return jsonify(status='unhealthy'), 503

    return app
