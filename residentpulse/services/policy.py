from functools import wraps
from flask import jsonify, g
from flask_login import current_user

def current_client_id():
    return getattr(g, "client_id", None)

def require_client_admin(fn):
    """Logged-in ClientAdmin only; the admin's client becomes g.client_id."""
    @wraps(fn)
    def _wrap(*args, **kwargs):
        if not getattr(current_user, "is_authenticated", False):
            return _deny(401)
        client_id = getattr(current_user, "client_id", None)
        if not client_id:
            return _deny(403)
        g.client_id = client_id
        return fn(*args, **kwargs)
    return _wrap

def _deny(code: int):
    return jsonify({"error": {401: "unauthorized", 403: "forbidden"}[code], "message": "Admin login required"}), code
