from sqlalchemy import UniqueConstraint
from residentpulse.extensions import db
from residentpulse.utils.helpers import utcnow

class Setting(db.Model):
    """Key/value settings; client_id NULL is the global row."""
    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(120), nullable=False)
    value = db.Column(db.Text, nullable=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=True, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("key", "client_id", name="uq_settings_key_client"),
    )
