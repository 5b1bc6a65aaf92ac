# FILE: ecoaction-backend/main.py

from flask import Flask
from dotenv import load_dotenv
from pydantic import ValidationError

from logging_config import setup_logging
from extensions import limiter
from models import db
from errors import EcoActionError
from dependencies import build_workflow, DATABASE_URL, REDIS_URL
from api.error_utils import create_error_response, handle_exception, not_found_error

# --- SETUP & CONFIG ---
load_dotenv()


def create_app(config=None, workflow=None):
    """
    Builds the Flask app. Tests pass their own config and a workflow wired to fakes;
    gunicorn runs `main:create_app()` and gets the production wiring.
    """
    setup_logging()
    app = Flask(__name__)
    app.config.update(
        SQLALCHEMY_DATABASE_URI=DATABASE_URL,
        RATELIMIT_STORAGE_URI=REDIS_URL or "memory://",
        # Ten photos at the per-image cap, plus the text fields.
        MAX_CONTENT_LENGTH=110 * 1024 * 1024,
    )
    if config:
        app.config.update(config)

    # --- Initialize Extensions ---
    db.init_app(app)
    limiter.init_app(app)
    with app.app_context():
        db.create_all()

    app.extensions['submission_workflow'] = workflow or build_workflow()

    # --- Register Blueprints ---
    from api.submissions import submissions_bp
    from api.status import status_bp

    app.register_blueprint(submissions_bp, url_prefix='/api')
    app.register_blueprint(status_bp, url_prefix='/')

    register_error_handlers(app)
    return app


def register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        details = e.errors(include_url=False, include_context=False, include_input=False)
        return create_error_response("BAD_REQUEST", "Request validation failed", details, status_code=400)

    @app.errorhandler(EcoActionError)
    def handle_workflow_error(e):
        return create_error_response(e.error_code, str(e), status_code=e.status_code)

    @app.errorhandler(404)
    def resource_not_found(e):
        """Handles 404 Not Found errors for a clean API response."""
        return not_found_error("The requested resource was not found.")

    @app.errorhandler(413)
    def payload_too_large(e):
        return create_error_response("PAYLOAD_TOO_LARGE", status_code=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return create_error_response("RATE_LIMITED", f"Rate limit exceeded: {e.description}", status_code=429)

    @app.errorhandler(500)
    def internal_server_error(e):
        """Handles unexpected 500 Internal Server Errors for a clean API response."""
        return handle_exception(getattr(e, "original_exception", None) or e, "request handling")
