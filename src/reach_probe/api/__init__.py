"""Flask application exposing the reachability probe."""

from __future__ import annotations

from typing import Optional

from flask import Flask

from ..config import AppConfig
from ..probe.controller import SessionFactory
from .routes import SERVER_ERROR_MESSAGE, STATUS_CODES, build_connection_blueprint


def create_app(
    config: Optional[AppConfig] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
) -> Flask:
    config = config or AppConfig()
    app = Flask(__name__)
    app.config["REACH_PROBE"] = config
    app.register_blueprint(
        build_connection_blueprint(config.probe, session_factory),
        url_prefix="/api/connection",
    )

    return app


__all__ = ["create_app", "SERVER_ERROR_MESSAGE", "STATUS_CODES"]
