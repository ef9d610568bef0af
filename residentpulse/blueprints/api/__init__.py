from flask import Blueprint

bp = Blueprint("api", __name__, url_prefix="/api")

from . import sessions, rounds, alerts  # noqa: E402,F401
