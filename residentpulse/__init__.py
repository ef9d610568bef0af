import os
import json

from flask import Flask, jsonify

# Local/dev reads .env; production gets env vars from the platform
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    load_dotenv(".env", override=True)

from .config import get_config
from .extensions import db, migrate, login_manager, limiter, mail
from .security import init_security
from .observability import init_logging, init_sentry

PROD_LIKE = ("staging", "production")
REQUIRED_IN_PROD = ("SECRET_KEY", "DATABASE_URL", "ANTHROPIC_API_KEY", "EMAIL_WEBHOOK_SECRET")


def _current_env() -> str:
    return (os.getenv("APP_ENV", "development") or "development").lower()


def _configure_limit_storage(app, app_env):
    """Route limits and chat windows share redis when prod-like, memory otherwise."""
    if app_env not in PROD_LIKE:
        app.config.setdefault("RATELIMIT_STORAGE_URI", "memory://")
        return
    redis_url = os.environ.get("REDIS_URL")
    if not redis_url:
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")
    app.config["RATELIMIT_STORAGE_URI"] = redis_url
    if app.config.get("CHAT_RATELIMIT_STORAGE_URI") == "memory://":
        app.config["CHAT_RATELIMIT_STORAGE_URI"] = redis_url


def _register_error_handlers(app):
    from .services.errors import RateLimited, ServiceError

    @app.errorhandler(ServiceError)
    def service_error(e):
        db.session.rollback()
        headers = {}
        if isinstance(e, RateLimited) and e.retry_after is not None:
            headers["Retry-After"] = str(int(e.retry_after))
        if e.status >= 500:
            app.logger.error(json.dumps({"event": "service_error", "code": e.code, "message": e.message}))
        return jsonify(e.to_dict()), e.status, headers

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "not_found", "message": "Not Found"}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "method_not_allowed", "message": "Method Not Allowed"}, 405

    @app.errorhandler(429)
    def route_limit_hit(e):
        # Flask-Limiter route limits; chat windows raise RateLimited instead
        return {"error": "rate_limited", "message": "Too Many Requests"}, 429

    @app.errorhandler(500)
    def server_error(e):
        return {"error": "internal_error", "message": "Internal Server Error"}, 500


def create_app(config_overrides=None):
    app_env = _current_env()
    app = Flask(__name__, template_folder="templates")
    app.config.from_object(get_config())
    _configure_limit_storage(app, app_env)
    if config_overrides:
        app.config.update(config_overrides)

    if app_env in PROD_LIKE:
        missing = [name for name in REQUIRED_IN_PROD if not (os.getenv(name) or app.config.get(name))]
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    init_logging(app)
    init_sentry(app)
    if app_env in PROD_LIKE:
        init_security(app)

    db.init_app(app)
    migrate.init_app(app, db, directory="migrations")
    login_manager.init_app(app)
    limiter.init_app(app)
    mail.init_app(app)

    # Engine collaborators; tests swap these on app.extensions
    from .services.ai import AIClient
    from .services.chat_limits import SessionRateLimiter
    from .services.tasks import TaskRunner
    app.extensions["ai_client"] = AIClient.from_config(app.config)
    app.extensions["chat_rate_limiter"] = SessionRateLimiter.from_config(app.config)
    TaskRunner(app)

    from .blueprints.api import bp as api_bp
    from .blueprints.webhooks import bp as webhooks_bp
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")

    @limiter.exempt
    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    _register_error_handlers(app)

    from .cli import register_cli
    register_cli(app)

    return app
