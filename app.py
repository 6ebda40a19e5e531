# app.py
import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix
from config import Config

# blueprints
from routes.auth import auth_bp
from routes.dispatch import dispatch_bp
from services.works_token import WorksTokenManager


def _setup_logging(app):
    log_path = app.config.get("LOG_FILE") or os.path.join(os.path.dirname(__file__), "debug.log")
    handler = RotatingFileHandler(
        log_path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    ))
    # root & app logger
    logging.getLogger().addHandler(handler)
    logging.getLogger().setLevel(logging.DEBUG)
    app.logger.addHandler(handler)
    app.logger.setLevel(logging.DEBUG)
    app.logger.propagate = False


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # behind a reverse proxy (nginx etc.)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    if not app.config.get("TESTING"):
        _setup_logging(app)

    # one token manager per process; the dispatcher is built lazily on top of it
    app.extensions["works_token"] = WorksTokenManager.from_config(app.config)

    app.register_blueprint(auth_bp)       # /, /login, /callback, /api/token, /logout
    app.register_blueprint(dispatch_bp)   # /api/send

    return app
