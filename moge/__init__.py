from __future__ import annotations

from pathlib import Path

from flask import Flask, jsonify
from dotenv import load_dotenv

from .config import Config
from .extensions import csrf, db, login_manager, migrate
from .db_utils import ensure_database_schema
from .services.errors import ManuscriptServiceError


BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    register_extensions(app)
    register_blueprints(app)
    register_error_handlers(app)

    with app.app_context():
        ensure_database_schema()

    return app


def register_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)


def register_blueprints(app: Flask) -> None:
    from .auth import bp as auth_bp
    from .exports import bp as exports_bp
    from .main import bp as main_bp
    from .manuscripts import bp as manuscripts_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(manuscripts_bp)
    app.register_blueprint(exports_bp)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ManuscriptServiceError)
    def handle_service_error(exc: ManuscriptServiceError):
        return jsonify({"error": str(exc)}), exc.status_code

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        return jsonify({"error": "Sign in to continue."}), 401
