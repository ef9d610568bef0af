import os

from dotenv import dotenv_values

# Local .env is a fallback for the database URL only; real env vars win
_DOTENV = dotenv_values(".env")


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class BaseConfig:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-not-secure")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _DOTENV.get("DATABASE_URL") or "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Admin dashboard session
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True

    # Route limits are opt-in per endpoint
    RATELIMIT_DEFAULT = None
    RATELIMIT_HEADERS_ENABLED = True

    # Outbound mail (invitations, reminders, admin notices)
    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _flag("MAIL_USE_TLS", "true")
    MAIL_USE_SSL = _flag("MAIL_USE_SSL")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "ResidentPulse <residentpulse@local.test>")
    MAIL_SUPPRESS_SEND = _flag("MAIL_SUPPRESS_SEND")
    EMAIL_WEBHOOK_SECRET = os.getenv("EMAIL_WEBHOOK_SECRET")

    # Absolute links: admins land on the dashboard, board members on the survey front-end
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")
    SURVEY_BASE_URL = os.getenv("SURVEY_BASE_URL", "http://localhost:5173")
    SITE_NAME = os.getenv("SITE_NAME", "ResidentPulse")
    INVITE_TOKEN_SALT = os.getenv("INVITE_TOKEN_SALT", "invite-token-v1")

    # Anthropic Messages API
    ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
    ANTHROPIC_API_URL = os.getenv("ANTHROPIC_API_URL", "https://api.anthropic.com/v1/messages")
    ANTHROPIC_API_VERSION = os.getenv("ANTHROPIC_API_VERSION", "2023-06-01")
    AI_CHAT_MODEL = os.getenv("AI_CHAT_MODEL", "claude-haiku-4-5-20251001")
    AI_ANALYSIS_MODEL = os.getenv("AI_ANALYSIS_MODEL", "claude-sonnet-4-5-20250929")
    AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))

    # Survey rounds
    ROUND_DURATION_DAYS = int(os.getenv("ROUND_DURATION_DAYS", "30"))
    # Outbound provider allows ~2 sends/second
    INVITE_SEND_DELAY_SECONDS = float(os.getenv("INVITE_SEND_DELAY_SECONDS", "0.5"))
    SCHEDULER_HOUR_UTC = int(os.getenv("SCHEDULER_HOUR_UTC", "9"))

    # Per-session chat window
    CHAT_RATE_LIMIT = os.getenv("CHAT_RATE_LIMIT", "10 per minute")
    CHAT_RATELIMIT_STORAGE_URI = os.getenv("CHAT_RATELIMIT_STORAGE_URI", "memory://")

    TASKS_EAGER = _flag("TASKS_EAGER")
    TASK_WORKERS = int(os.getenv("TASK_WORKERS", "4"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    MAIL_SUPPRESS_SEND = True


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "WARNING")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    FORCE_HTTPS = _flag("FORCE_HTTPS", "true")


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    MAIL_SUPPRESS_SEND = True
    INVITE_SEND_DELAY_SECONDS = 0.0
    TASKS_EAGER = True


_ENV_MAP = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "staging": ProductionConfig,
    "testing": TestingConfig,
}


def get_config():
    env = os.environ.get("APP_ENV", "development").lower()
    return _ENV_MAP.get(env, DevelopmentConfig)
