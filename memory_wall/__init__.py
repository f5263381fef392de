import click
from flask import Flask
from flask_cors import CORS

from config import Config
from memory_wall.extensions import db, migrate

ALLOWED_HEADERS = ["Content-Type", "x-host-id", "x-user-id", "x-admin-passcode"]


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    origins = [o.strip() for o in str(app.config.get("CORS_ORIGINS") or "*").split(",") if o.strip()]
    CORS(
        app,
        resources={r"/api/*": {"origins": origins}},
        allow_headers=ALLOWED_HEADERS,
        expose_headers=["Content-Disposition"],
    )
    db.init_app(app)
    migrate.init_app(app, db)

    # models must be imported before create_all / migrations see the tables
    with app.app_context():
        from memory_wall import models  # noqa: F401

    from memory_wall.services.blob import init_blob_store
    init_blob_store(app)

    from memory_wall.errors import register_error_handlers
    register_error_handlers(app)

    # ------ Mounting Blueprints --------- #

    from memory_wall.routes.events import events_bp
    app.register_blueprint(events_bp, url_prefix="/api/events")

    from memory_wall.routes.media import media_bp
    app.register_blueprint(media_bp, url_prefix="/api/events")

    from memory_wall.routes.export import export_bp
    app.register_blueprint(export_bp, url_prefix="/api/events")

    from memory_wall.routes.webhooks import webhook_bp
    app.register_blueprint(webhook_bp, url_prefix="/api/webhooks")

    from memory_wall.routes.health import health_bp
    app.register_blueprint(health_bp, url_prefix="/api")

    @app.cli.command("init-db")
    def init_db_command():
        """Create the events and media tables."""
        db.create_all()
        click.echo("Initialized the database.")

    return app
