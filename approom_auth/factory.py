"""Application factory for the approom auth service."""

from typing import Optional
import logging

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException, InternalServerError

from . import config, routes
from .context import EXTENSION_KEY, build_context
from .mail import Mailer
from .services import util

logger = logging.getLogger(__name__)


def create_web_app(mailer: Optional[Mailer] = None,
                   **overrides: object) -> Flask:
    """Initialize and configure the auth application."""
    app = Flask('approom_auth')
    app.config.from_object(config)
    app.config.update(overrides)
    logging.getLogger().setLevel(app.config['LOGLEVEL'])

    util.init_app(app)
    app.extensions[EXTENSION_KEY] = build_context(app.config, mailer)
    app.register_blueprint(routes.blueprint)

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):  # type: ignore
        return jsonify({'reason': error.description}), error.code

    @app.errorhandler(SQLAlchemyError)
    def handle_store_error(error: SQLAlchemyError):  # type: ignore
        logger.critical('Store unavailable: %s', error)
        return handle_http_error(InternalServerError())

    if app.config['CREATE_DB']:
        with app.app_context():
            util.create_all()

    return app
