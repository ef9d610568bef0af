from sqlalchemy import func
from residentpulse.extensions import db

class Client(db.Model):
    """A property-management company (tenant). Every other row hangs off client_id."""
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, server_default="active")

    created_at = db.Column(db.DateTime, nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        db.CheckConstraint("status IN ('active','inactive')", name="ck_clients_status_valid"),
    )

    def __repr__(self) -> str:
        return f"<Client id={self.id} company_name={self.company_name!r}>"
