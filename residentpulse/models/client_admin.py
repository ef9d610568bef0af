from flask_login import UserMixin
from sqlalchemy import func
from residentpulse.extensions import db, login_manager

class ClientAdmin(db.Model, UserMixin):
    __tablename__ = "client_admins"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    email = db.Column(db.String(320), nullable=False, unique=True)
    first_name = db.Column(db.String(120), nullable=True)
    last_name = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=func.now())

    def get_id(self) -> str:
        return str(self.id)

@login_manager.user_loader
def load_admin(admin_id: str):
    try:
        return db.session.get(ClientAdmin, int(admin_id))
    except Exception:
        return None
