import os
import logging
from logging.config import dictConfig

from flask import g, has_request_context, request

# Resident-entered fields that must not leave the process
_PII_KEYS = ("email", "message", "nps_score", "token")


class RequestContextFilter(logging.Filter):
    """Stamp tenant and path onto every record so JSON lines can be grouped per client."""

    def filter(self, record):
        if has_request_context():
            record.client_id = getattr(g, "client_id", None)
            record.path = request.path
        else:
            record.client_id = None
            record.path = None
        return True


def init_logging(app):
    app_env = (os.getenv("APP_ENV", "development") or "development").lower()
    level = (app.config.get("LOG_LEVEL") or "INFO").upper()
    if app_env not in ("staging", "production"):
        app.logger.setLevel(getattr(logging, level, logging.INFO))
        return

    dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request": {"()": RequestContextFilter}},
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(client_id)s %(path)s %(message)s",
            },
        },
        "handlers": {
            "stdout": {"class": "logging.StreamHandler", "formatter": "json", "filters": ["request"]},
        },
        "root": {"level": level, "handlers": ["stdout"]},
    })


def scrub_event(event, hint=None):
    """Sentry before_send: drop survey answers and addresses from captured request bodies."""
    data = (event.get("request") or {}).get("data")
    if isinstance(data, dict):
        for key in _PII_KEYS:
            if key in data:
                data[key] = "[scrubbed]"
    return event


def init_sentry(app):
    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES", "0.0")),
        environment=os.getenv("APP_ENV", "development"),
        send_default_pii=False,
        before_send=scrub_event,
    )
    app.logger.info("sentry enabled")
