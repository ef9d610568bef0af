from sqlalchemy import func, UniqueConstraint
from residentpulse.extensions import db

class BoardMember(db.Model):
    """Survey respondent: an HOA/condo board member scoped to one client."""
    __tablename__ = "board_members"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = db.Column(db.String(120), nullable=True)
    last_name = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(320), nullable=False)
    community_name = db.Column(db.String(255), nullable=True)
    community_id = db.Column(db.Integer, db.ForeignKey("communities.id", ondelete="SET NULL"), nullable=True, index=True)
    management_company = db.Column(db.String(255), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    invitation_token = db.Column(db.String(255), nullable=True, unique=True)
    invitation_token_expires = db.Column(db.DateTime, nullable=True)
    last_invited_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("client_id", "email", name="uq_board_members_client_email"),
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.email

    def __repr__(self) -> str:
        return f"<BoardMember id={self.id} email={self.email} client_id={self.client_id}>"
