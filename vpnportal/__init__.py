import logging
import os
import sqlite3
from decimal import Decimal

from flask import Flask, jsonify

from .errors import LedgerError
from .extensions import db, login_manager, migrate
from .log_scrub import install_ip_scrubber


def _load_config(app, config_object):
    if config_object is not None:
        app.config.from_object(config_object)
        return

    # Load config by environment
    env = os.getenv("FLASK_ENV", "development").lower()
    cfg = {
        "production": "config.ProductionConfig",
        "testing": "config.TestingConfig",
    }.get(env, "config.DevelopmentConfig")
    app.config.from_object(cfg)

    if env == "production":
        missing = []
        if not os.getenv("SECRET_KEY"):
            missing.append("SECRET_KEY")
        if not os.getenv("DATABASE_URL"):
            missing.append("DATABASE_URL")

        if missing:
            raise RuntimeError("Missing required production settings: " + ", ".join(missing))


def _configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app.logger.setLevel(level)
    logging.getLogger("vpnportal").setLevel(level)
    # Webhook source IPs are stored, never logged
    install_ip_scrubber(app.logger)


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    # ensure instance folder exists (Flask-managed)
    os.makedirs(app.instance_path, exist_ok=True)

    _load_config(app, config_object)

    # If using sqlite and path is relative, force it into instance_path
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if (uri.startswith("sqlite:///") and not uri.startswith("sqlite:////")
            and ":memory:" not in uri):
        db_file = os.path.join(app.instance_path, "app.db")
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///" + db_file.replace("\\", "/")

    _configure_logging(app)

    # Init extensions
    db.init_app(app)
    sqlite3.register_adapter(Decimal, lambda d: str(d))
    login_manager.init_app(app)
    migrate.init_app(app, db)

    from . import models  # noqa: F401  (registers mappers for Alembic)
    from . import auth  # noqa: F401  (user loader)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(err):
        return jsonify(err.to_dict()), err.status_code

    # Blueprints
    from vpnportal.admin import admin_bp
    from vpnportal.payments import payments_bp

    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)

    from vpnportal.cli import ledger_cli
    app.cli.add_command(ledger_cli)

    return app
