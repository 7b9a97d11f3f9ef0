# backend/dinepos/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .services.order_events import OrderChangeFeed
from .services.inventory_manager import InventoryRegistry


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Order stream first: inventory managers subscribe to it
    OrderChangeFeed().init_app(app)
    InventoryRegistry().init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.admin import admin_bp
    from .routes.restaurants import restaurants_bp, users_bp
    from .routes.pos import pos_bp, restaurant_id_bp
    from .routes.catalog import catalog_bp
    from .routes.inventory import inventory_bp
    from .routes.orders import orders_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(restaurants_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(pos_bp)
    app.register_blueprint(restaurant_id_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)

    allowed_origins = {
        origin.strip()
        for origin in app.config.get("CORS_ORIGINS", "").split(",")
        if origin.strip()
    }

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
