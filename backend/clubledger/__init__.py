# backend/clubledger/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate, notifications


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.from_mapping(test_config)

    # Bounded wait on the SQLite database lock; other backends use lock_timeout
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        engine_options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        connect_args = dict(engine_options.get("connect_args") or {})
        connect_args.setdefault("timeout", float(app.config["LOCK_TIMEOUT_SECONDS"]))
        connect_args.setdefault("check_same_thread", False)
        engine_options["connect_args"] = connect_args
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    notifications.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.highscore_service import register_highscore_refresh
    register_highscore_refresh(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.articles import articles_bp
    from .routes.customers import customers_bp
    from .routes.sales import sales_bp
    from .routes.highscore import highscore_bp
    from .routes.reports import reports_bp
    from .routes.documents import documents_bp
    from .routes.accounting import accounting_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(articles_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(highscore_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(accounting_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
