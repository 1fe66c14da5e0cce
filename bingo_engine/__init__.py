"""Bingo round engine: Flask application package."""

from __future__ import annotations

from typing import Any

from dotenv import load_dotenv
from flask import Flask


def create_app(config_overrides: dict[str, Any] | None = None, **collaborators: Any) -> Flask:
    """Application factory.

    Args:
        config_overrides: values applied on top of the APP_ENV config.
        collaborators: optional ``notifier``, ``rng`` or ``sender`` replacing
            the configured ones (used by tests).

    Returns:
        Configured Flask application.
    """
    load_dotenv()

    from bingo_engine.cli import register_cli
    from bingo_engine.config import get_config
    from bingo_engine.container import build_services
    from bingo_engine.db import init_db
    from bingo_engine.error_handlers import register_error_handlers
    from bingo_engine.logging_config import configure_logging
    from bingo_engine.routes.cards import cards_bp
    from bingo_engine.routes.health import health_bp
    from bingo_engine.routes.purchases import purchases_bp
    from bingo_engine.routes.rounds import rounds_bp

    app = Flask(__name__)
    app.config.from_object(get_config())
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)
    init_db(app)
    register_error_handlers(app)

    app.extensions["bingo"] = build_services(app.config, app.extensions["session_factory"], **collaborators)

    app.register_blueprint(health_bp)
    app.register_blueprint(rounds_bp)
    app.register_blueprint(cards_bp)
    app.register_blueprint(purchases_bp)

    register_cli(app)

    return app
