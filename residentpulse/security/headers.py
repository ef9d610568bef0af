from flask_talisman import Talisman

# Responses are JSON only; nothing should load from or frame them
API_CSP = {
    "default-src": ["'none'"],
    "frame-ancestors": ["'none'"],
}


def init_security(app):
    """HTTPS, HSTS and a deny-all CSP. Enabled for staging and production."""
    Talisman(
        app,
        content_security_policy=API_CSP,
        force_https=app.config.get("FORCE_HTTPS", True),
        strict_transport_security=True,
        session_cookie_secure=True,
        frame_options="DENY",
        referrer_policy="no-referrer",
    )
