# backend/stockflow/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, event_bus


def _engine_options(app: Flask) -> dict:
    """
    Bind the Store deadlines to the driver.

    SQLite: a writer waits at most WRITE_DEADLINE_SECONDS for the database lock.
    PostgreSQL: every statement is capped at READ_DEADLINE_SECONDS; writers
    tighten it per transaction (services.concurrency.begin_write).
    """
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    connect_args = dict(options.get("connect_args") or {})

    if uri.startswith("sqlite"):
        connect_args.setdefault("timeout", app.config["WRITE_DEADLINE_SECONDS"])
    elif uri.startswith("postgresql"):
        read_ms = int(app.config["READ_DEADLINE_SECONDS"] * 1000)
        connect_args.setdefault("options", f"-c statement_timeout={read_ms}")

    options["connect_args"] = connect_args
    options.setdefault("pool_pre_ping", not uri.startswith("sqlite"))
    return options


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    if not app.config.get("CREDENTIAL_SIGNING_KEY") and not app.config.get("TESTING"):
        raise RuntimeError("CREDENTIAL_SIGNING_KEY is not set")

    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app)

    # Initialize extensions
    db.init_app(app)
    event_bus.init_app(app)

    # Import models so metadata is complete before create_all
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.ledger import incomes_bp, expenses_bp
    from .routes.purchases import purchases_bp
    from .routes.transfers import transfers_bp
    from .routes.alerts import alerts_bp
    from .routes.events import events_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(incomes_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(alerts_bp)
    app.register_blueprint(events_bp)

    allowed_origins = {
        origin.strip()
        for origin in (app.config.get("CLIENT_ORIGIN") or "").split(",")
        if origin.strip()
    }

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
