"""
Flask extensions initialization.
"""
import logging
from contextlib import contextmanager

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import text

logger = logging.getLogger(__name__)

# Database
db = SQLAlchemy()

# Migrations
migrate = Migrate()


def init_database(app) -> None:
    """
    Explicit database startup step.

    Binds the engine to the app and, when AUTO_CREATE_TABLES is set
    (development and testing), creates any missing tables. Called once from
    create_app() so no request ever triggers connection setup.
    """
    db.init_app(app)
    migrate.init_app(app, db)

    if app.config.get('AUTO_CREATE_TABLES'):
        from . import models  # noqa: F401  (register tables on the metadata)
        with app.app_context():
            db.create_all()
            logger.info('Database tables ensured for %s', app.config.get('SQLALCHEMY_DATABASE_URI'))


def check_database_health() -> dict:
    """Run a trivial query against the bound engine."""
    try:
        db.session.execute(text('SELECT 1'))
        return {'status': 'connected'}
    except Exception as e:
        logger.error(f'Database health check failed: {e}')
        db.session.rollback()
        return {'status': 'error', 'error': 'database unavailable'}


@contextmanager
def unit_of_work():
    """
    Scope one atomic write against the database.

    Commits when the block exits cleanly; rolls back and re-raises otherwise.

    Usage:
        with unit_of_work() as session:
            session.add(entry)
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
