from __future__ import annotations

from flask import Flask
from flask_cors import CORS

from billsplit.api.routes import api_bp
from billsplit.config import Config
from billsplit.log import configure_logging, level_from_name


def create_app(config: object = Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config)
    configure_logging(level_from_name(app.config.get("LOG_LEVEL")))
    CORS(app)  # ok for MVP; tighten later

    app.register_blueprint(api_bp)
    return app
