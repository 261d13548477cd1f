from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
from contextlib import contextmanager
import logging

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    from .config.settings import load_settings, validate_settings

    app = Flask(__name__)
    app.config.update(load_settings())

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    level = logging.getLevelName(app.config.get('LOG_LEVEL', 'INFO'))
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)
    logging.getLogger('repairdesk').setLevel(level)
    for problem in validate_settings(app.config):
        app.logger.warning('Configuration problem: %s', problem)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    # Register every mapped table on Base.metadata before relationships configure
    from .models import authz, client, ticket, parts_order, reminder, time_log, billing  # noqa: F401

    from .routes.auth import auth_bp
    from .routes.clients import clients_bp, devices_bp
    from .routes.tickets import tickets_bp
    from .routes.parts_orders import parts_bp
    from .routes.reminders import reminders_bp
    from .routes.time_logs import time_bp
    from .routes.billing import billing_bp
    from .routes.dashboard import dashboard_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(clients_bp, url_prefix='/clients')
    app.register_blueprint(devices_bp, url_prefix='/devices')
    app.register_blueprint(tickets_bp, url_prefix='/tickets')
    app.register_blueprint(parts_bp, url_prefix='/parts-orders')
    app.register_blueprint(reminders_bp, url_prefix='/reminders')
    app.register_blueprint(time_bp, url_prefix='/time-logs')
    app.register_blueprint(billing_bp, url_prefix='/billing')
    app.register_blueprint(dashboard_bp, url_prefix='/dashboard')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        # a request aborted part way through must not leave pending changes for the next commit
        SessionLocal.rollback()
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()


@contextmanager
def transaction():
    """Run a multi-statement unit of work on the scoped session.

    Commits on success; any exception rolls the whole unit back and propagates.

    Example:
        with transaction() as session:
            session.execute(delete(RepairNote).where(...))
            session.delete(ticket)
    """
    session = get_db()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
