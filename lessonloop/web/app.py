"""
Flask application factory for the LessonLoop JSON API.
"""

import logging
import os

from flask import Flask, g, jsonify, request

from lessonloop.config import load_config, load_or_generate_secret_key
from lessonloop.database import get_engine, init_db
from lessonloop.errors import LessonLoopError
from lessonloop.file_storage import get_file_storage
from lessonloop.identity import TokenIdentityProvider
from lessonloop.web.blueprints import register_blueprints

logger = logging.getLogger(__name__)


def create_app(config=None):
    """
    Create and configure the Flask application.

    Args:
        config: Application config dict (paths, auth, cors, llm).
                If None, loads from config.yaml.

    Returns:
        Configured Flask app instance
    """
    app = Flask(__name__)

    if config is None:
        config = load_config()

    app.config["APP_CONFIG"] = config

    # Token signing key: environment first, then .env (generated on first run)
    secret_key = os.environ.get("SECRET_KEY")
    if not secret_key:
        env_path = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".env"))
        secret_key = load_or_generate_secret_key(env_path)
    app.config["SECRET_KEY"] = secret_key

    app.config["MAX_CONTENT_LENGTH"] = 16 * 1024 * 1024  # class material uploads
    app.json.sort_keys = False

    auth_config = config.get("auth", {})
    app.config["IDENTITY_PROVIDER"] = TokenIdentityProvider(
        secret_key, ttl_seconds=auth_config.get("token_ttl_seconds", 86400)
    )

    # Create a single engine for the app lifetime.
    # DATABASE_URL (env var) takes precedence over the SQLite path in config.
    database_url = os.environ.get("DATABASE_URL")
    db_path = config.get("paths", {}).get("database_file", "lessonloop.db")
    engine = get_engine(url=database_url) if database_url else get_engine(db_path)
    init_db(engine)
    app.config["DB_ENGINE"] = engine
    app.config["FILE_STORAGE"] = get_file_storage(config)

    @app.teardown_appcontext
    def close_db_session(exception):
        """Close the database session at the end of each request."""
        session = g.pop("db_session", None)
        if session is not None:
            session.close()

    @app.errorhandler(LessonLoopError)
    def handle_domain_error(error):
        if error.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, error.message)
        return jsonify({"msg": error.message}), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({"msg": "Not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({"msg": "Method not allowed"}), 405

    @app.errorhandler(413)
    def handle_too_large(error):
        return jsonify({"msg": "File too large"}), 413

    @app.errorhandler(500)
    def handle_server_error(error):
        original = getattr(error, "original_exception", None) or error
        logger.exception("Unhandled error on %s %s: %s", request.method, request.path, original)
        return jsonify({"msg": "Server error"}), 500

    allowed_origin = config.get("cors", {}).get("allowed_origin")

    @app.after_request
    def add_cors_headers(response):
        if allowed_origin:
            response.headers["Access-Control-Allow-Origin"] = allowed_origin
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization, x-auth-token"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
            response.headers["Vary"] = "Origin"
        return response

    register_blueprints(app)

    return app
