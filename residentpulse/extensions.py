from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager, current_user
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_mail import Mail

db = SQLAlchemy()
migrate = Migrate()
mail = Mail()
# JSON API: no login_view, unauthorized responses come from policy.require_client_admin
login_manager = LoginManager()


def _tenant_or_ip():
    """Admin traffic shares one bucket per client; resident survey traffic is keyed by IP."""
    if getattr(current_user, "is_authenticated", False):
        return f"client:{current_user.client_id}"
    return get_remote_address()


# Storage URI is set in create_app() before init_app
limiter = Limiter(key_func=_tenant_or_ip)
